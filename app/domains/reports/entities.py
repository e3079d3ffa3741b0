from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class ContentType(str, Enum):
    POST = "post"
    COMMENT = "comment"
    IMAGE = "image"
    PROFILE = "profile"
    OTHER = "other"


class ReportType(str, Enum):
    ILLEGAL = "illegal"
    POLICY_VIOLATION = "policy_violation"


class ReportStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"
    DUPLICATE = "duplicate"  # только при приеме жалобы


OPEN_STATUSES = (ReportStatus.PENDING.value, ReportStatus.IN_REVIEW.value)

_STATUS_RANK = {
    ReportStatus.PENDING: 0,
    ReportStatus.IN_REVIEW: 1,
    ReportStatus.RESOLVED: 2,
}


def can_advance(current: ReportStatus, new: ReportStatus) -> bool:
    """Report status only moves forward; duplicate is terminal."""
    if current == ReportStatus.DUPLICATE or new == ReportStatus.DUPLICATE:
        return False
    return _STATUS_RANK[new] >= _STATUS_RANK[current]


class SlaLane(str, Enum):
    IMMEDIATE = "immediate"
    ILLEGAL = "illegal"
    POLICY_VIOLATION = "policy_violation"


class Priority:
    IMMEDIATE = 100  # CSAM, self-harm, imminent danger
    HIGH = 75  # illegal content, trusted flaggers
    ELEVATED = 50  # several reports on the same content
    NORMAL = 25
    LOW = 10


class TrustedFlaggerStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REVOKED = "revoked"


@dataclass
class ReportSubmission:
    content_id: str
    content_type: str
    report_type: str
    explanation: str
    good_faith_declaration: bool
    jurisdiction: Optional[str] = None
    legal_reference: Optional[str] = None
    content_locator: Optional[str] = None
    reporter_contact: Optional[str] = None
    evidence_urls: List[str] = field(default_factory=list)


@dataclass
class PriorityClassification:
    priority: int
    lane: SlaLane
    reason: str


@dataclass
class SubmissionResult:
    report_id: str
    status: ReportStatus
    priority: int
    sla_deadline: datetime
    content_hash: str
    duplicate_of_report_id: Optional[str] = None
