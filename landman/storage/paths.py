"""
Path generation for downloaded document storage.
All paths are relative to ARTIFACT_ROOT:
  tasks/{task_id}/documents/{document_number}.{ext}
"""

import re
from pathlib import Path

UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_name(value: str) -> str:
    """Filesystem-safe version of a portal document number."""
    cleaned = UNSAFE_CHARS.sub("_", value.strip()).strip("._")
    return cleaned or "document"


def task_document_dir(task_id: str) -> str:
    return f"tasks/{task_id}/documents"


def downloaded_document_path(task_id: str, document_number: str, extension: str = "pdf") -> str:
    """Path for a document downloaded from the portal."""
    return f"{task_document_dir(task_id)}/{safe_name(document_number)}.{extension}"


def ensure_parent_dirs(artifact_root: str, relative_path: str) -> Path:
    """Create parent directories and return the full absolute path."""
    full_path = Path(artifact_root) / relative_path
    full_path.parent.mkdir(parents=True, exist_ok=True)
    return full_path
