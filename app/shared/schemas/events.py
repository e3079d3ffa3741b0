# app/shared/schemas/events.py
"""
Typed audit payloads. Each producer records one of these instead of a
free-form dict; the ledger signs `payload()` together with the envelope.
"""
from datetime import datetime
from typing import ClassVar, List, Literal, Optional

from pydantic import BaseModel, ConfigDict


class AuditMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_type: str
    pii_tagged: ClassVar[bool] = False

    def payload(self) -> dict:
        return self.model_dump(mode="json", exclude={"event_type"})


class ReportSubmitted(AuditMetadata):
    event_type: Literal["report_submitted"] = "report_submitted"
    content_id: str
    content_type: str
    report_type: str
    priority: int
    sla_deadline: datetime
    trusted_flagger: bool
    duplicate_of_report_id: Optional[str] = None


class ReportClaimed(AuditMetadata):
    event_type: Literal["report_claimed"] = "report_claimed"
    moderator_id: str
    expires_at: datetime


class DecisionMade(AuditMetadata):
    event_type: Literal["decision_made"] = "decision_made"
    report_id: str
    action: str
    policy_violations: List[str]
    requires_supervisor_approval: bool
    statement_of_reasons_id: Optional[str] = None


class DecisionApproved(AuditMetadata):
    event_type: Literal["decision_approved"] = "decision_approved"
    supervisor_id: str


class ActionExecuted(AuditMetadata):
    event_type: Literal["action_executed"] = "action_executed"
    execution_id: str
    action: str
    content_id: str
    user_id: str
    reason_code: str
    expires_at: Optional[datetime] = None
    territorial_scope: List[str] = []


class DecisionReversed(AuditMetadata):
    event_type: Literal["decision_reversed"] = "decision_reversed"
    reason: str
    appeal_id: Optional[str] = None


class AppealFiled(AuditMetadata):
    event_type: Literal["appeal_filed"] = "appeal_filed"
    decision_id: str
    appeal_type: str
    deadline: datetime


class AppealReviewStarted(AuditMetadata):
    event_type: Literal["appeal_review_started"] = "appeal_review_started"
    reviewer_id: str


class AppealResolved(AuditMetadata):
    event_type: Literal["appeal_resolved"] = "appeal_resolved"
    outcome: str
    reviewer_id: str


class OdsEscalated(AuditMetadata):
    event_type: Literal["ods_escalated"] = "ods_escalated"
    escalation_id: str
    ods_body_id: str
    target_resolution_date: datetime


class OdsCaseUpdated(AuditMetadata):
    event_type: Literal["ods_case_updated"] = "ods_case_updated"
    status: str
    outcome: Optional[str] = None


class SlaAlertRaised(AuditMetadata):
    event_type: Literal["sla_alert_created"] = "sla_alert_created"
    alert_id: str
    alert_level: str
    severity: str


class SlaAlertAcknowledged(AuditMetadata):
    event_type: Literal["sla_alert_acknowledged"] = "sla_alert_acknowledged"
    report_id: str


class SlaBreachEscalated(AuditMetadata):
    event_type: Literal["sla_breach_escalated"] = "sla_breach_escalated"
    incident_id: str
    breach_duration_hours: float
    severity: str
    escalated_to: List[str]


class SlaIncidentClosed(AuditMetadata):
    event_type: Literal["sla_incident_closed"] = "sla_incident_closed"
    root_cause: str


class SorCreated(AuditMetadata):
    event_type: Literal["sor_created"] = "sor_created"
    decision_id: str
    decision_ground: str
    legal_reference: Optional[str] = None
    category: List[str]


class SorSubmitted(AuditMetadata):
    event_type: Literal["sor_submitted"] = "sor_submitted"
    transparency_db_id: str
    attempts: int


class LegalHoldApplied(AuditMetadata):
    event_type: Literal["legal_hold_applied"] = "legal_hold_applied"
    hold_id: str
    reason: str
    legal_basis: str
    affected_event_count: int
    review_date: Optional[datetime] = None


class CourtOrderReceived(AuditMetadata):
    event_type: Literal["court_order_received"] = "court_order_received"
    hold_id: str
    court_order_reference: str


class LegalHoldReleased(AuditMetadata):
    event_type: Literal["legal_hold_released"] = "legal_hold_released"
    hold_id: str
    reason: str


class PartitionSealed(AuditMetadata):
    event_type: Literal["partition_sealed"] = "partition_sealed"
    record_count: int
    checksum: str
    signing_key_version: str


class PartitionExpired(AuditMetadata):
    event_type: Literal["partition_expired"] = "partition_expired"
    record_count: int


class SigningKeyRotated(AuditMetadata):
    event_type: Literal["signing_key_rotated"] = "signing_key_rotated"
    previous_version: Optional[str] = None
    new_version: str
    overlap_seconds: int
    reason: str


class AuditIntegrityCheck(AuditMetadata):
    event_type: Literal["audit_integrity_check"] = "audit_integrity_check"
    status: str
    invalid_signatures: int
    unsealed_partitions: int
