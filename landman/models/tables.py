"""
SQLAlchemy ORM models.
Status columns are plain strings guarded by check constraints so the same
schema runs on PostgreSQL and on SQLite in tests.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from landman.models.database import Base
from landman.models.enums import (
    AIAssessment,
    AIOutcome,
    PartyRole,
    ResultStatus,
    TaskStatus,
    UserDecision,
    values,
)

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _in_check(column: str, enum_cls, name: str, nullable: bool = False) -> CheckConstraint:
    allowed = ", ".join(f"'{v}'" for v in values(enum_cls))
    clause = f"{column} IN ({allowed})"
    if nullable:
        clause = f"{column} IS NULL OR {clause}"
    return CheckConstraint(clause, name=name)


# ────────────────────────────────────────────────────────────
# PORTALS
# ────────────────────────────────────────────────────────────
class Portal(Base):
    __tablename__ = "portals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="1"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class PortalCredential(Base):
    __tablename__ = "portal_credentials"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    portal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("portals.id", ondelete="CASCADE"), nullable=False
    )
    username: Mapped[str] = mapped_column(Text, nullable=False)
    # Fernet token, never stored or logged in clear text
    encrypted_password: Mapped[str] = mapped_column(Text, nullable=False)
    credential_label: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="1"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    portal = relationship("Portal")

    __table_args__ = (
        UniqueConstraint("user_id", "portal_id", name="uq_credential_user_portal"),
    )


# ────────────────────────────────────────────────────────────
# SEARCH TASKS
# ────────────────────────────────────────────────────────────
class SearchTask(Base):
    __tablename__ = "search_tasks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    portal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("portals.id"), nullable=False
    )
    county_id: Mapped[int] = mapped_column(Integer, nullable=False)
    party_name: Mapped[str] = mapped_column(Text, nullable=False)
    party_role: Mapped[str] = mapped_column(
        String(16), nullable=False, default=PartyRole.BOTH.value, server_default=PartyRole.BOTH.value
    )
    date_from: Mapped[date] = mapped_column(Date, nullable=False)
    date_to: Mapped[date] = mapped_column(Date, nullable=False)
    legal_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    document_reference: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[int] = mapped_column(
        Integer, nullable=False, default=5, server_default="5"
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=TaskStatus.QUEUED.value, server_default=TaskStatus.QUEUED.value
    )
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    portal = relationship("Portal")
    results = relationship("SearchResult", back_populates="task", cascade="all, delete-orphan")

    __table_args__ = (
        _in_check("status", TaskStatus, "ck_search_tasks_status"),
        _in_check("party_role", PartyRole, "ck_search_tasks_party_role"),
        CheckConstraint("priority BETWEEN 1 AND 10", name="ck_search_tasks_priority"),
        Index("idx_search_tasks_claim", "status", "priority", "created_at"),
        Index("idx_search_tasks_user", "user_id"),
        Index("idx_search_tasks_org", "organization_id"),
    )


# ────────────────────────────────────────────────────────────
# SEARCH RESULTS
# ────────────────────────────────────────────────────────────
class SearchResult(Base):
    __tablename__ = "search_results"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    search_task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("search_tasks.id", ondelete="CASCADE"), nullable=False
    )
    document_number: Mapped[str] = mapped_column(Text, nullable=False)
    recording_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    grantor: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    grantee: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    document_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    legal_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    page_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    portal_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(24), nullable=False, default=ResultStatus.NEW.value, server_default=ResultStatus.NEW.value
    )
    review_notes: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    task = relationship("SearchTask", back_populates="results")
    reviews = relationship("DocumentReview", back_populates="result", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("search_task_id", "document_number", name="uq_result_task_document"),
        _in_check("status", ResultStatus, "ck_search_results_status"),
        Index("idx_search_results_task", "search_task_id"),
    )


# ────────────────────────────────────────────────────────────
# DOCUMENT REVIEWS
# ────────────────────────────────────────────────────────────
class DocumentReview(Base):
    __tablename__ = "document_reviews"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    search_result_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("search_results.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    # AI stage
    ai_assessment: Mapped[str] = mapped_column(
        String(24), nullable=False, default=AIAssessment.PENDING.value,
        server_default=AIAssessment.PENDING.value,
    )
    ai_confidence: Mapped[Optional[Decimal]] = mapped_column(Numeric(4, 3), nullable=True)
    ai_evidence: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_relevant_pages: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_quotes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    ai_outcome: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    ai_assessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Human stage
    user_decision: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    user_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_confirmed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="0"
    )

    # Download stage
    marked_for_download: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="0"
    )
    downloaded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    file_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    result = relationship("SearchResult", back_populates="reviews")

    __table_args__ = (
        UniqueConstraint("search_result_id", "user_id", name="uq_review_result_user"),
        _in_check("ai_assessment", AIAssessment, "ck_reviews_ai_assessment"),
        _in_check("ai_outcome", AIOutcome, "ck_reviews_ai_outcome", nullable=True),
        _in_check("user_decision", UserDecision, "ck_reviews_user_decision", nullable=True),
        CheckConstraint(
            "downloaded_at IS NULL OR marked_for_download", name="ck_reviews_download_marked"
        ),
        Index("idx_document_reviews_result", "search_result_id"),
        Index("idx_document_reviews_user", "user_id"),
    )
