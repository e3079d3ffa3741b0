from enum import Enum


class AppealType(str, Enum):
    CONTENT_REMOVAL = "content_removal"
    ACCOUNT_ACTION = "account_action"
    GEO_RESTRICTION = "geo_restriction"


class AppealStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"
    ESCALATED_TO_ODS = "escalated_to_ods"


ACTIVE_APPEAL_STATUSES = (AppealStatus.PENDING.value, AppealStatus.IN_REVIEW.value)


class AppealOutcome(str, Enum):
    UPHELD = "upheld"  # the appellant wins, the original decision is reversed
    REJECTED = "rejected"
    PARTIAL = "partial"


class OdsStatus(str, Enum):
    SUBMITTED = "submitted"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    EXPIRED = "expired"
    WITHDRAWN = "withdrawn"


class OdsBodyStatus(str, Enum):
    CERTIFIED = "certified"
    SUSPENDED = "suspended"
    REVOKED = "revoked"


MIN_APPEAL_WINDOW_DAYS = 7
