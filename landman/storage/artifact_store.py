"""
Storage for downloaded portal documents.
Local filesystem (volume mount) under ARTIFACT_ROOT.
"""

from pathlib import Path

import structlog

from landman.storage.paths import ensure_parent_dirs

logger = structlog.get_logger(__name__)


class ArtifactStore:
    """
    Save and load downloaded documents.
    All paths are relative to the store root; the relative path is what
    gets recorded on the review as file_path.
    """

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def save_bytes(self, relative_path: str, data: bytes) -> str:
        """Save raw bytes, replacing any earlier copy. Returns the relative path."""
        full_path = ensure_parent_dirs(str(self.root), relative_path)
        full_path.write_bytes(data)
        logger.info("document_saved", path=relative_path, size_bytes=len(data))
        return relative_path

    def load_bytes(self, relative_path: str) -> bytes:
        full_path = self.root / relative_path
        if not full_path.exists():
            raise FileNotFoundError(f"Document not found: {relative_path}")
        return full_path.read_bytes()
