from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class VerificationMethod(str, Enum):
    ACTIVE_KEY = "active_key"
    OVERLAP_KEY = "overlap_key"


class VerificationDetail(str, Enum):
    OK = "ok"
    EVENT_NOT_FOUND = "event_not_found"
    KEY_NOT_FOUND = "key_not_found"
    KEY_NOT_VALID_AT_TIMESTAMP = "key_not_valid_at_timestamp"
    SECRET_UNAVAILABLE = "secret_unavailable"
    SIGNATURE_MISMATCH = "signature_mismatch"


class PartitionStatus(str, Enum):
    OPEN = "open"
    SEALED = "sealed"
    EXPIRED = "expired"


class IntegrityStatus(str, Enum):
    HEALTHY = "HEALTHY"
    SIGNATURE_VIOLATION = "SIGNATURE_VIOLATION"
    PARTITION_SECURITY_RISK = "PARTITION_SECURITY_RISK"


@dataclass
class VerificationResult:
    event_id: str
    valid: bool
    detail: VerificationDetail
    key_version: Optional[str] = None
    method: Optional[VerificationMethod] = None


@dataclass
class PartitionVerification:
    partition_id: str
    valid: bool
    record_count: int
    checksum_matches: bool
    manifest_signature_valid: bool
    invalid_event_ids: List[str] = field(default_factory=list)


@dataclass
class IntegrityReport:
    status: IntegrityStatus
    checked_events: int
    invalid_event_ids: List[str]
    unsealed_partitions: List[str]
    checked_at: datetime
