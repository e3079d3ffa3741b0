# app/domains/moderation/service.py
"""
Claim / decision workflow.

    pending --claim--> in_review --decision executed--> resolved

A claim is a single row per report. Acquisition is one conditional upsert
that only overwrites a lapsed claim (or refreshes our own), so two moderators
racing for the same report cannot both win.
"""
import uuid
from datetime import timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import (
    AlreadyClaimedError,
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.domains.audit.service import AuditLedger, audit_ledger
from app.domains.auth.entities import SYSTEM_ACTOR, Actor, Role
from app.domains.auth.service import require_role
from app.domains.content.store import ContentStore, content_store
from app.domains.moderation import repository
from app.domains.moderation.entities import (
    DEFAULT_REDRESS,
    USER_ACTIONS,
    DecisionGround,
    DecisionRequest,
    DecisionStatus,
    ModerationAction,
)
from app.domains.moderation.models import ModerationClaim, ModerationDecision, StatementOfReasons
from app.domains.reports import repository as report_repository
from app.domains.reports.entities import ReportStatus
from app.domains.reports.models import ContentReport
from app.domains.reports.service import advance_report
from app.domains.transparency.service import SorExportQueue, sor_export_queue
from app.shared.schemas.events import DecisionApproved, DecisionMade, ReportClaimed, SorCreated
from app.shared.utils import clock
from app.shared.utils.logger import get_logger

logger = get_logger(__name__)


def check_statement_consistency(decision_ground: str, legal_reference: Optional[str]) -> None:
    if decision_ground not in {g.value for g in DecisionGround}:
        raise ValidationError({"decision_ground": "must be illegal or terms"})
    if decision_ground == DecisionGround.ILLEGAL.value and not (legal_reference or "").strip():
        raise ValidationError({"legal_reference": "required when the decision ground is illegal"})


class ModerationService:
    def __init__(
        self,
        store: Optional[ContentStore] = None,
        ledger: Optional[AuditLedger] = None,
        export_queue: Optional[SorExportQueue] = None,
    ):
        self.store = store or content_store
        self.ledger = ledger or audit_ledger
        self.export_queue = export_queue or sor_export_queue

    # --- claims -----------------------------------------------------------

    async def claim(self, actor: Actor, report_id: str, ttl: Optional[timedelta] = None) -> ModerationClaim:
        require_role(actor, Role.MODERATOR, Role.SUPERVISOR)
        ttl = ttl or timedelta(minutes=settings.CLAIM_TTL_MINUTES)
        if ttl <= timedelta(0):
            raise ValidationError({"ttl": "must be positive"})

        async with get_db() as db:
            report = await report_repository.get_report(db, report_id)
            if report is None:
                raise NotFoundError(f"Report {report_id} not found")
            if report.status not in (ReportStatus.PENDING.value, ReportStatus.IN_REVIEW.value):
                raise InvalidStateError(f"Report {report_id} is {report.status} and cannot be claimed")

            now = clock.utcnow()
            claim = await repository.try_acquire_claim(
                db, str(uuid.uuid4()), report_id, actor.id, now, now + ttl
            )
            if claim is None:
                holder = await repository.get_claim(db, report_id)
                logger.warning(f"Claim on {report_id} by {actor.id} refused: held by {holder.moderator_id}")
                raise AlreadyClaimedError(report_id, holder.moderator_id, holder.expires_at)

            advance_report(report, ReportStatus.IN_REVIEW)
            await self.ledger.record(
                db,
                ReportClaimed(moderator_id=actor.id, expires_at=claim.expires_at),
                actor=actor,
                target_type="content_report",
                target_id=report_id,
                action="claim",
            )

        logger.info(f"Report {report_id} claimed by {actor.id} until {claim.expires_at.isoformat()}")
        return claim

    async def release_claim(self, actor: Actor, report_id: str) -> None:
        """Give up a claim early; the row lapses immediately."""
        require_role(actor, Role.MODERATOR, Role.SUPERVISOR)
        async with get_db() as db:
            claim = await repository.get_claim(db, report_id)
            if claim is None or claim.moderator_id != actor.id:
                raise AuthorizationError(f"{actor.id} does not hold the claim on {report_id}")
            claim.expires_at = clock.utcnow()

    # --- decisions --------------------------------------------------------

    async def record_decision(self, actor: Actor, report_id: str, request: DecisionRequest) -> ModerationDecision:
        require_role(actor, Role.MODERATOR, Role.SUPERVISOR)
        try:
            action = ModerationAction(request.action)
        except ValueError:
            raise ValidationError({"action": f"unknown action {request.action}"})
        errors = {}
        if not (request.reasoning or "").strip():
            errors["reasoning"] = "required"
        if action != ModerationAction.NO_ACTION and not request.policy_violations:
            errors["policy_violations"] = "at least one violation is required"
        if action == ModerationAction.GEO_BLOCK and not request.territorial_scope:
            errors["territorial_scope"] = "geo_block needs at least one territory"
        if request.duration_days is not None and request.duration_days <= 0:
            errors["duration_days"] = "must be positive"
        if errors:
            raise ValidationError(errors)

        async with get_db() as db:
            report = await report_repository.get_report(db, report_id)
            if report is None:
                raise NotFoundError(f"Report {report_id} not found")

            claim = await repository.get_claim(db, report_id)
            if claim is None or claim.moderator_id != actor.id:
                logger.warning(f"Decision on {report_id} by {actor.id} refused: not the claim holder")
                raise AuthorizationError(f"{actor.id} does not hold the claim on report {report_id}")
            if report.status != ReportStatus.IN_REVIEW.value:
                raise InvalidStateError(f"Report {report_id} is {report.status}, expected in_review")
            if await repository.live_decision_for_report(db, report_id) is not None:
                raise ConflictError(f"Report {report_id} already has a decision")

            user_id = await self.store.get_author_id(db, report.content_id)
            if user_id is None and report.content_type == "profile":
                user_id = report.content_id
            if action in USER_ACTIONS and user_id is None:
                raise ValidationError({"content_id": "cannot resolve the affected user"})

            requires_approval = (
                settings.SUPERVISOR_APPROVAL_REQUIRED and action.value in settings.HIGH_IMPACT_ACTIONS
            )
            decision = ModerationDecision(
                id=str(uuid.uuid4()),
                report_id=report_id,
                moderator_id=actor.id,
                action=action.value,
                policy_violations=list(request.policy_violations),
                reasoning=request.reasoning.strip(),
                evidence=list(request.evidence),
                content_id=report.content_id,
                user_id=user_id,
                duration_days=request.duration_days,
                territorial_scope=sorted({t.upper() for t in request.territorial_scope}),
                status=DecisionStatus.PENDING.value,
                requires_supervisor_approval=requires_approval,
            )
            db.add(decision)
            try:
                await db.flush()
            except IntegrityError:
                raise ConflictError(f"Report {report_id} already has a decision")

            statement = None
            if action != ModerationAction.NO_ACTION:
                statement = await self.create_statement_of_reasons(db, decision, report, request)

            await self.ledger.record(
                db,
                DecisionMade(
                    report_id=report_id,
                    action=decision.action,
                    policy_violations=decision.policy_violations,
                    requires_supervisor_approval=requires_approval,
                    statement_of_reasons_id=statement.id if statement else None,
                ),
                actor=actor,
                target_type="moderation_decision",
                target_id=decision.id,
                action="decide",
            )

        logger.info(
            f"Decision {decision.id} on report {report_id}: {decision.action}"
            f"{' (awaiting supervisor)' if requires_approval else ''}"
        )
        return decision

    async def create_statement_of_reasons(
        self,
        db: AsyncSession,
        decision: ModerationDecision,
        report: ContentReport,
        request: DecisionRequest,
    ) -> StatementOfReasons:
        ground = request.decision_ground or (
            DecisionGround.ILLEGAL.value if report.report_type == "illegal" else DecisionGround.TERMS.value
        )
        legal_reference = request.legal_reference
        if legal_reference is None and ground == DecisionGround.ILLEGAL.value:
            legal_reference = report.legal_reference
        check_statement_consistency(ground, legal_reference)

        statement = StatementOfReasons(
            id=str(uuid.uuid4()),
            decision_id=decision.id,
            decision_ground=ground,
            legal_reference=legal_reference,
            content_type=report.content_type,
            category=list(decision.policy_violations),
            facts_and_circumstances=(request.facts_and_circumstances or decision.reasoning).strip(),
            automated_detection=request.automated_detection,
            automated_decision=request.automated_decision,
            territorial_scope=list(decision.territorial_scope),
            redress=list(DEFAULT_REDRESS),
            created_at=clock.utcnow(),
        )
        db.add(statement)
        await db.flush()
        decision.statement_of_reasons_id = statement.id
        await self.ledger.record(
            db,
            SorCreated(
                decision_id=decision.id,
                decision_ground=ground,
                legal_reference=legal_reference,
                category=statement.category,
            ),
            actor=SYSTEM_ACTOR,
            target_type="statement_of_reasons",
            target_id=statement.id,
            action="create",
        )
        await self.export_queue.enqueue(db, statement)
        return statement

    async def approve_decision(self, actor: Actor, decision_id: str) -> ModerationDecision:
        require_role(actor, Role.SUPERVISOR)
        async with get_db() as db:
            decision = await repository.get_decision(db, decision_id)
            if decision is None:
                raise NotFoundError(f"Decision {decision_id} not found")
            if decision.moderator_id == actor.id:
                raise AuthorizationError("A supervisor cannot approve their own decision")
            if decision.status != DecisionStatus.PENDING.value:
                raise InvalidStateError(f"Decision {decision_id} is {decision.status}")
            if not decision.requires_supervisor_approval:
                raise InvalidStateError(f"Decision {decision_id} does not need approval")

            decision.status = DecisionStatus.APPROVED.value
            decision.supervisor_id = actor.id
            decision.approved_at = clock.utcnow()
            await self.ledger.record(
                db,
                DecisionApproved(supervisor_id=actor.id),
                actor=actor,
                target_type="moderation_decision",
                target_id=decision.id,
                action="approve",
            )
        logger.info(f"Decision {decision_id} approved by {actor.id}")
        return decision

    async def get_decision(self, decision_id: str) -> ModerationDecision:
        async with get_db() as db:
            decision = await repository.get_decision(db, decision_id)
        if decision is None:
            raise NotFoundError(f"Decision {decision_id} not found")
        return decision

    async def get_statement(self, decision_id: str) -> Optional[StatementOfReasons]:
        async with get_db() as db:
            return await repository.get_statement(db, decision_id)

    async def active_restrictions(self, user_id: str) -> List:
        async with get_db() as db:
            return await repository.active_restrictions(db, user_id, clock.utcnow())


moderation_service = ModerationService()
