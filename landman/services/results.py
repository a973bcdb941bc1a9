"""
Search result ingestion and review-list use cases.

Results arrive from the scheduler (insert-or-ignore) or from the owner:
manual entry and CSV/JSON uploads are upserts keyed on
(task, document number).
"""

import csv
import io
import json
import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from landman.errors import NotFoundError, UnauthorizedError, ValidationError
from landman.models.enums import ResultStatus, values
from landman.models.tables import SearchResult
from landman.observability.metrics import search_results_ingested_total
from landman.pipeline.date_parser import parse_recording_date
from landman.services.tasks import get_owned_task
from landman.stores.results import SearchResultStore
from landman.stores.tasks import SearchTaskStore

logger = structlog.get_logger(__name__)

# Accepted spellings per column, first match wins
COLUMN_ALIASES = {
    "document_number": ("document_number", "documentNumber", "Document Number", "doc_num"),
    "recording_date": ("recording_date", "recordingDate", "Recording Date", "date"),
    "grantor": ("grantor", "Grantor", "seller"),
    "grantee": ("grantee", "Grantee", "buyer"),
    "document_type": ("document_type", "documentType", "Document Type", "type"),
    "legal_description": ("legal_description", "legalDescription", "Legal Description"),
    "page_count": ("page_count", "pageCount", "Page Count"),
    "portal_url": ("portal_url", "portalUrl", "url", "link"),
}

JSON_TYPES = {"application/json", "text/json"}
CSV_TYPES = {"text/csv", "application/csv", "application/vnd.ms-excel"}


def _pick(row: dict, aliases: tuple) -> Optional[str]:
    for key in aliases:
        value = row.get(key)
        if value not in (None, ""):
            return value
    return None


def _page_count(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 1


def normalize_document(row: dict) -> Optional[dict]:
    """Map an uploaded or submitted row onto result columns. None if it has no document number."""
    doc = {column: _pick(row, aliases) for column, aliases in COLUMN_ALIASES.items()}
    number = doc["document_number"]
    if number is None or not str(number).strip():
        return None
    doc["document_number"] = str(number).strip()
    doc["recording_date"] = parse_recording_date(doc["recording_date"])
    doc["page_count"] = _page_count(doc["page_count"])
    for key in ("grantor", "grantee", "document_type", "legal_description", "portal_url"):
        if doc[key] is not None:
            doc[key] = str(doc[key]).strip() or None
    return doc


def parse_upload(filename: Optional[str], content_type: Optional[str], content: bytes) -> list[dict]:
    """Decode an uploaded results file into raw rows."""
    name = (filename or "").lower()
    kind = (content_type or "").split(";")[0].strip().lower()

    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("Upload must be UTF-8 encoded")

    generic = not kind or kind == "application/octet-stream"

    if kind in JSON_TYPES or (generic and name.endswith(".json")):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON upload: {e}")
        if isinstance(parsed, dict):
            parsed = parsed.get("documents") or parsed.get("results") or []
        if not isinstance(parsed, list):
            raise ValidationError("JSON upload must be a list of documents")
        return [row for row in parsed if isinstance(row, dict)]

    if kind in CSV_TYPES or (generic and name.endswith(".csv")):
        reader = csv.DictReader(io.StringIO(text))
        return [row for row in reader if any((v or "").strip() for v in row.values() if isinstance(v, str))]

    raise ValidationError(f"Unsupported file type: {content_type or filename}")


class ResultService:

    def __init__(self, session: AsyncSession):
        self.session = session
        self.tasks = SearchTaskStore(session)
        self.store = SearchResultStore(session)

    async def submit_manual_results(
        self,
        task_id: uuid.UUID,
        user_id: uuid.UUID,
        documents: list[dict],
    ) -> list[SearchResult]:
        await get_owned_task(self.tasks, task_id, user_id)
        return await self._ingest(task_id, documents, source="manual")

    async def upload_results(
        self,
        task_id: uuid.UUID,
        user_id: uuid.UUID,
        filename: Optional[str],
        content_type: Optional[str],
        content: bytes,
    ) -> list[SearchResult]:
        await get_owned_task(self.tasks, task_id, user_id)
        rows = parse_upload(filename, content_type, content)
        return await self._ingest(task_id, rows, source="upload")

    async def _ingest(self, task_id: uuid.UUID, rows: list[dict], source: str) -> list[SearchResult]:
        ids = []
        skipped = 0
        for row in rows:
            doc = normalize_document(row)
            if doc is None:
                skipped += 1
                continue
            ids.append(await self.store.upsert(task_id, doc))

        stored = {r.id: r for r in await self.store.get_many(ids)}
        search_results_ingested_total.labels(source=source).inc(len(ids))
        logger.info(
            "results_ingested",
            task_id=str(task_id),
            source=source,
            stored=len(ids),
            skipped=skipped,
        )
        return [stored[i] for i in dict.fromkeys(ids) if i in stored]

    async def list_results(
        self,
        task_id: uuid.UUID,
        user_id: uuid.UUID,
        status: Optional[str] = None,
    ) -> list[SearchResult]:
        await get_owned_task(self.tasks, task_id, user_id)
        if status is not None and status not in values(ResultStatus):
            raise ValidationError(f"Invalid result status: {status}")
        return await self.store.list_for_task(task_id, [status] if status else None)

    async def results_for_review(self, task_id: uuid.UUID, user_id: uuid.UUID) -> list[SearchResult]:
        await get_owned_task(self.tasks, task_id, user_id)
        return await self.store.list_for_task(
            task_id,
            [ResultStatus.NEW.value, ResultStatus.MARKED_FOR_REVIEW.value],
        )

    async def get_owned_result(self, result_id: uuid.UUID, user_id: uuid.UUID) -> SearchResult:
        found = await self.store.get_with_owner(result_id)
        if found is None:
            raise NotFoundError(f"Search result {result_id} not found")
        result, owner_id = found
        if owner_id != user_id:
            raise UnauthorizedError(f"Search result {result_id} belongs to another user")
        return result

    async def set_result_status(
        self,
        result_id: uuid.UUID,
        user_id: uuid.UUID,
        status: str,
        notes: Optional[str] = None,
    ) -> SearchResult:
        if status not in values(ResultStatus):
            raise ValidationError(f"Invalid result status: {status}")
        await self.get_owned_result(result_id, user_id)
        return await self.store.set_status(result_id, status, notes)

    async def exclude_result(
        self,
        result_id: uuid.UUID,
        user_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> SearchResult:
        return await self.set_result_status(result_id, user_id, ResultStatus.EXCLUDED.value, reason)
