# app/domains/appeals/service.py
"""
Internal complaint handling and out-of-court dispute settlement (ODS).

    pending -> in_review -> resolved
    pending | in_review -> escalated_to_ods

One active appeal per (decision, user) and one escalation per appeal are
enforced by unique indexes; the service turns index violations into
ConflictError.
"""
import uuid
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.domains.appeals import repository
from app.domains.appeals.entities import (
    ACTIVE_APPEAL_STATUSES,
    MIN_APPEAL_WINDOW_DAYS,
    AppealOutcome,
    AppealStatus,
    AppealType,
    OdsBodyStatus,
    OdsStatus,
)
from app.domains.appeals.models import Appeal, OdsBody, OdsEscalation
from app.domains.audit.service import AuditLedger, audit_ledger
from app.domains.auth.entities import Actor, Role
from app.domains.auth.service import require_role
from app.domains.moderation import repository as moderation_repository
from app.domains.moderation.entities import DecisionStatus
from app.domains.moderation.executor import ActionExecutor, action_executor
from app.shared.schemas.events import (
    AppealFiled,
    AppealResolved,
    AppealReviewStarted,
    OdsCaseUpdated,
    OdsEscalated,
)
from app.shared.utils import clock
from app.shared.utils.logger import get_logger

logger = get_logger(__name__)


def appeal_window() -> timedelta:
    return timedelta(days=max(MIN_APPEAL_WINDOW_DAYS, settings.APPEAL_WINDOW_DAYS))


class AppealsService:
    def __init__(self, executor: Optional[ActionExecutor] = None, ledger: Optional[AuditLedger] = None):
        self.executor = executor or action_executor
        self.ledger = ledger or audit_ledger

    async def file_appeal(
        self,
        actor: Actor,
        decision_id: str,
        appeal_type: str,
        counter_arguments: str,
        supporting_evidence: Iterable[str] = (),
    ) -> Appeal:
        errors = {}
        if appeal_type not in {t.value for t in AppealType}:
            errors["appeal_type"] = "must be content_removal, account_action or geo_restriction"
        if not (counter_arguments or "").strip():
            errors["counter_arguments"] = "required"
        if errors:
            raise ValidationError(errors)

        async with get_db() as db:
            decision = await moderation_repository.get_decision(db, decision_id)
            if decision is None:
                raise NotFoundError(f"Decision {decision_id} not found")
            if decision.user_id != actor.id:
                raise AuthorizationError("Only the affected user can appeal a decision")
            if decision.status != DecisionStatus.EXECUTED.value:
                raise InvalidStateError(
                    f"Decision {decision_id} is {decision.status}; only executed decisions can be appealed"
                )
            if await repository.active_appeal(db, decision_id, actor.id) is not None:
                raise ConflictError(f"An appeal against decision {decision_id} is already open")

            now = clock.utcnow()
            appeal = Appeal(
                id=str(uuid.uuid4()),
                original_decision_id=decision_id,
                user_id=actor.id,
                appeal_type=appeal_type,
                counter_arguments=counter_arguments.strip(),
                supporting_evidence=list(supporting_evidence),
                status=AppealStatus.PENDING.value,
                submitted_at=now,
                deadline=now + appeal_window(),
            )
            db.add(appeal)
            try:
                await db.flush()
            except IntegrityError:
                raise ConflictError(f"An appeal against decision {decision_id} is already open")

            await self.ledger.record(
                db,
                AppealFiled(decision_id=decision_id, appeal_type=appeal_type, deadline=appeal.deadline),
                actor=actor,
                target_type="appeal",
                target_id=appeal.id,
                action="file",
            )
        logger.info(f"Appeal {appeal.id} filed against {decision_id}, due {appeal.deadline.isoformat()}")
        return appeal

    async def start_review(self, actor: Actor, appeal_id: str) -> Appeal:
        require_role(actor, Role.MODERATOR, Role.SUPERVISOR)
        async with get_db() as db:
            appeal = await self._get_appeal(db, appeal_id)
            if appeal.status != AppealStatus.PENDING.value:
                raise InvalidStateError(f"Appeal {appeal_id} is {appeal.status}")
            decision = await moderation_repository.get_decision(db, appeal.original_decision_id)
            if actor.id in (decision.moderator_id, decision.supervisor_id):
                raise AuthorizationError("The original moderator or supervisor cannot review this appeal")

            appeal.status = AppealStatus.IN_REVIEW.value
            appeal.reviewer_id = actor.id
            await self.ledger.record(
                db,
                AppealReviewStarted(reviewer_id=actor.id),
                actor=actor,
                target_type="appeal",
                target_id=appeal.id,
                action="review",
            )
        return appeal

    async def resolve_appeal(self, actor: Actor, appeal_id: str, outcome: str, reasoning: str) -> Appeal:
        require_role(actor, Role.MODERATOR, Role.SUPERVISOR)
        errors = {}
        if outcome not in {o.value for o in AppealOutcome}:
            errors["decision"] = "must be upheld, rejected or partial"
        if not (reasoning or "").strip():
            errors["reasoning"] = "required when an outcome is set"
        if errors:
            raise ValidationError(errors)

        async with get_db() as db:
            appeal = await self._get_appeal(db, appeal_id)
            if appeal.status != AppealStatus.IN_REVIEW.value:
                raise InvalidStateError(f"Appeal {appeal_id} is {appeal.status}, expected in_review")
            if appeal.reviewer_id != actor.id and Role.ADMIN not in actor.roles:
                raise AuthorizationError(f"Appeal {appeal_id} is assigned to another reviewer")

            now = clock.utcnow()
            appeal.decision = outcome
            appeal.decision_reasoning = reasoning.strip()
            appeal.status = AppealStatus.RESOLVED.value
            appeal.resolved_at = now

            if outcome == AppealOutcome.UPHELD.value:
                decision = await moderation_repository.get_decision(db, appeal.original_decision_id)
                await self.executor.revert(
                    db,
                    decision,
                    reason=f"Appeal upheld: {appeal.decision_reasoning}",
                    actor=actor,
                    appeal_id=appeal.id,
                )

            await self.ledger.record(
                db,
                AppealResolved(outcome=outcome, reviewer_id=actor.id),
                actor=actor,
                target_type="appeal",
                target_id=appeal.id,
                action="resolve",
            )
        logger.info(f"Appeal {appeal_id} resolved: {outcome}")
        return appeal

    # --- ODS ----------------------------------------------------------------

    async def escalate_to_ods(self, actor: Actor, appeal_id: str, ods_body_id: str) -> OdsEscalation:
        async with get_db() as db:
            appeal = await self._get_appeal(db, appeal_id)
            if appeal.user_id != actor.id and not actor.has_any(Role.MODERATOR, Role.SUPERVISOR):
                raise AuthorizationError("Only the appellant or staff can escalate an appeal")
            if appeal.status == AppealStatus.ESCALATED_TO_ODS.value:
                raise ConflictError(f"Appeal {appeal_id} is already escalated")
            if appeal.status not in ACTIVE_APPEAL_STATUSES:
                raise InvalidStateError(f"Appeal {appeal_id} is {appeal.status} and cannot be escalated")
            if await repository.escalation_for_appeal(db, appeal_id) is not None:
                raise ConflictError(f"Appeal {appeal_id} is already escalated")

            body = await repository.get_ods_body(db, ods_body_id)
            if body is None:
                raise NotFoundError(f"ODS body {ods_body_id} not found")
            if body.status != OdsBodyStatus.CERTIFIED.value:
                raise ValidationError({"ods_body_id": f"{body.name} is {body.status}, not certified"})

            now = clock.utcnow()
            escalation = OdsEscalation(
                id=str(uuid.uuid4()),
                appeal_id=appeal_id,
                ods_body_id=ods_body_id,
                status=OdsStatus.SUBMITTED.value,
                submitted_at=now,
                target_resolution_date=now + timedelta(days=settings.ODS_TARGET_RESOLUTION_DAYS),
                platform_action_required=False,
                platform_action_completed=False,
            )
            db.add(escalation)
            try:
                await db.flush()
            except IntegrityError:
                raise ConflictError(f"Appeal {appeal_id} is already escalated")

            appeal.status = AppealStatus.ESCALATED_TO_ODS.value
            appeal.ods_escalation_id = escalation.id
            appeal.ods_body_name = body.name
            appeal.ods_submitted_at = now
            await self.ledger.record(
                db,
                OdsEscalated(
                    escalation_id=escalation.id,
                    ods_body_id=ods_body_id,
                    target_resolution_date=escalation.target_resolution_date,
                ),
                actor=actor,
                target_type="appeal",
                target_id=appeal_id,
                action="escalate",
            )
        logger.info(f"Appeal {appeal_id} escalated to {body.name}")
        return escalation

    async def update_ods_case(
        self,
        actor: Actor,
        escalation_id: str,
        status: Optional[str] = None,
        case_number: Optional[str] = None,
        outcome: Optional[str] = None,
        outcome_summary: Optional[str] = None,
        actual_resolution_date: Optional[datetime] = None,
        platform_action_required: Optional[bool] = None,
        platform_action_completed: Optional[bool] = None,
    ) -> OdsEscalation:
        require_role(actor, Role.MODERATOR, Role.SUPERVISOR)
        if status is not None and status not in {s.value for s in OdsStatus}:
            raise ValidationError({"status": f"unknown ODS status {status}"})
        actual_resolution_date = clock.to_naive_utc(actual_resolution_date)

        async with get_db() as db:
            escalation = await repository.get_escalation(db, escalation_id)
            if escalation is None:
                raise NotFoundError(f"ODS escalation {escalation_id} not found")
            if actual_resolution_date is not None and actual_resolution_date < escalation.submitted_at:
                raise ValidationError(
                    {"actual_resolution_date": "cannot be earlier than the submission date"}
                )

            now = clock.utcnow()
            if status is not None:
                escalation.status = status
                if status == OdsStatus.RESOLVED.value and actual_resolution_date is None:
                    actual_resolution_date = escalation.actual_resolution_date or now
            if case_number is not None:
                escalation.case_number = case_number
            if outcome is not None:
                escalation.outcome = outcome
            if outcome_summary is not None:
                escalation.outcome_summary = outcome_summary
            if actual_resolution_date is not None:
                escalation.actual_resolution_date = actual_resolution_date
            if platform_action_required is not None:
                escalation.platform_action_required = platform_action_required
            if platform_action_completed is not None:
                escalation.platform_action_completed = platform_action_completed
                escalation.platform_action_completed_at = now if platform_action_completed else None

            if escalation.actual_resolution_date is not None:
                appeal = await repository.get_appeal(db, escalation.appeal_id)
                appeal.ods_resolved_at = escalation.actual_resolution_date

            await self.ledger.record(
                db,
                OdsCaseUpdated(status=escalation.status, outcome=escalation.outcome),
                actor=actor,
                target_type="ods_escalation",
                target_id=escalation.id,
                action="update",
            )
        return escalation

    async def register_ods_body(
        self,
        actor: Actor,
        name: str,
        jurisdictions: Iterable[str],
        specialization: Iterable[str] = (),
        submission_url: Optional[str] = None,
        contact_email: Optional[str] = None,
    ) -> OdsBody:
        require_role(actor, Role.ADMIN)
        if not (name or "").strip():
            raise ValidationError({"name": "required"})
        async with get_db() as db:
            if await repository.get_ods_body_by_name(db, name) is not None:
                raise ConflictError(f"ODS body {name} already registered")
            body = OdsBody(
                id=str(uuid.uuid4()),
                name=name.strip(),
                jurisdictions=sorted({j.upper() for j in jurisdictions}),
                specialization=list(specialization),
                submission_url=submission_url,
                contact_email=contact_email,
                status=OdsBodyStatus.CERTIFIED.value,
            )
            db.add(body)
        return body

    async def list_certified_bodies(self, jurisdiction: Optional[str] = None) -> List[OdsBody]:
        async with get_db() as db:
            bodies = await repository.certified_bodies(db)
        if jurisdiction:
            wanted = jurisdiction.upper()
            bodies = [b for b in bodies if wanted in (b.jurisdictions or []) or "EU" in (b.jurisdictions or [])]
        return bodies

    async def get_appeal(self, appeal_id: str) -> Appeal:
        async with get_db() as db:
            return await self._get_appeal(db, appeal_id)

    async def _get_appeal(self, db, appeal_id: str) -> Appeal:
        appeal = await repository.get_appeal(db, appeal_id)
        if appeal is None:
            raise NotFoundError(f"Appeal {appeal_id} not found")
        return appeal


appeals_service = AppealsService()
