from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class ModerationAction(str, Enum):
    NO_ACTION = "no_action"
    QUARANTINE = "quarantine"
    GEO_BLOCK = "geo_block"
    REMOVE = "remove"
    SUSPEND_USER = "suspend_user"
    RATE_LIMIT = "rate_limit"
    SHADOW_BAN = "shadow_ban"


# restrictions that target the author rather than the content
USER_ACTIONS = (
    ModerationAction.SUSPEND_USER,
    ModerationAction.RATE_LIMIT,
    ModerationAction.SHADOW_BAN,
)


class DecisionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    EXECUTED = "executed"
    REVERSED = "reversed"


class DecisionGround(str, Enum):
    ILLEGAL = "illegal"
    TERMS = "terms"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


@dataclass
class DecisionRequest:
    action: str
    policy_violations: List[str]
    reasoning: str
    evidence: List[str] = field(default_factory=list)
    decision_ground: Optional[str] = None
    legal_reference: Optional[str] = None
    facts_and_circumstances: Optional[str] = None
    territorial_scope: List[str] = field(default_factory=list)
    duration_days: Optional[int] = None
    automated_detection: bool = False
    automated_decision: bool = False


DEFAULT_REDRESS = ["internal_appeal", "out_of_court_settlement", "judicial_remedy"]
