"""
Python enums for the status and assessment columns.
Values MUST match the check constraints in tables.py exactly.
"""

from enum import Enum


class TaskStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    PAUSED = "paused"
    FAILED = "failed"


TERMINAL_TASK_STATUSES = frozenset({TaskStatus.COMPLETED.value, TaskStatus.FAILED.value})


class PartyRole(str, Enum):
    GRANTOR = "grantor"
    GRANTEE = "grantee"
    BOTH = "both"


class ResultStatus(str, Enum):
    NEW = "new"
    MARKED_FOR_REVIEW = "marked_for_review"
    EXCLUDED = "excluded"


class AIAssessment(str, Enum):
    MEETS_CRITERIA = "meets_criteria"
    PROBABLE_MATCH = "probable_match"
    EXCLUDE = "exclude"
    PENDING = "pending"


class AIOutcome(str, Enum):
    """How the last assessment attempt ended. NULL means not yet processed."""
    ASSESSED = "assessed"
    UNPARSEABLE = "unparseable"
    FAILED = "failed"


class UserDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_REVIEW = "needs_review"


class DownloadJobStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


def values(enum_cls) -> list[str]:
    """All string values of an enum, in declaration order."""
    return [member.value for member in enum_cls]
