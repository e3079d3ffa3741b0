# app/domains/moderation/executor.py
"""
Action execution engine.

`execute()` is the only way a decision touches content or accounts. The
execution row is inserted first with ON CONFLICT (decision_id) DO NOTHING; the
caller that gets the row back applies the side effects, everyone else gets the
existing record. Side effects, the execution row, the decision/report status
change, the notification and the audit event share one transaction.
"""
import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.domains.audit.service import AuditLedger, audit_ledger
from app.domains.auth import repository as account_repository
from app.domains.auth.entities import SYSTEM_ACTOR, Actor, Role
from app.domains.auth.service import require_role
from app.domains.content.store import ContentStore, content_store
from app.domains.moderation import repository
from app.domains.moderation.entities import DecisionStatus, ModerationAction, NotificationStatus
from app.domains.moderation.models import (
    ActionExecution,
    ModerationDecision,
    ModerationNotification,
    UserRateLimit,
    UserShadowBan,
    UserSuspension,
)
from app.domains.reports import repository as report_repository
from app.domains.reports.entities import ReportStatus
from app.domains.reports.service import advance_report
from app.shared.schemas.events import ActionExecuted, DecisionReversed
from app.shared.utils import clock
from app.shared.utils.logger import get_logger

logger = get_logger(__name__)


def reason_code_for(decision: ModerationDecision) -> str:
    return ",".join(sorted(decision.policy_violations)) or decision.action


class ActionExecutor:
    def __init__(self, store: Optional[ContentStore] = None, ledger: Optional[AuditLedger] = None):
        self.store = store or content_store
        self.ledger = ledger or audit_ledger
        self._handlers = {
            ModerationAction.NO_ACTION: self._apply_no_action,
            ModerationAction.QUARANTINE: self._apply_quarantine,
            ModerationAction.GEO_BLOCK: self._apply_geo_block,
            ModerationAction.REMOVE: self._apply_remove,
            ModerationAction.RATE_LIMIT: self._apply_rate_limit,
            ModerationAction.SHADOW_BAN: self._apply_shadow_ban,
            ModerationAction.SUSPEND_USER: self._apply_suspension,
        }

    async def execute(self, actor: Actor, decision_id: str) -> ActionExecution:
        require_role(actor, Role.MODERATOR, Role.SUPERVISOR, Role.SYSTEM)

        async with get_db() as db:
            existing = await repository.get_execution(db, decision_id)
            if existing is not None:
                logger.info(f"Decision {decision_id} already executed; returning original record")
                return existing

            decision = await repository.get_decision(db, decision_id)
            if decision is None:
                raise NotFoundError(f"Decision {decision_id} not found")
            if decision.status == DecisionStatus.REVERSED.value:
                raise InvalidStateError(f"Decision {decision_id} was reversed")
            if decision.requires_supervisor_approval and decision.status == DecisionStatus.PENDING.value:
                raise InvalidStateError(f"Decision {decision_id} is awaiting supervisor approval")

            action = ModerationAction(decision.action)
            now = clock.utcnow()
            duration_days = decision.duration_days or settings.ACTION_DEFAULT_DURATION_DAYS.get(action.value)
            expires_at = now + timedelta(days=duration_days) if duration_days else None

            execution_id = str(uuid.uuid4())
            created = await repository.insert_execution(
                db,
                {
                    "id": execution_id,
                    "decision_id": decision.id,
                    "action": action.value,
                    "content_id": decision.content_id,
                    "user_id": decision.user_id,
                    "reason_code": reason_code_for(decision),
                    "duration_days": duration_days,
                    "expires_at": expires_at,
                    "territorial_scope": list(decision.territorial_scope or []),
                    "executed_by": actor.id,
                    "executed_at": now,
                },
            )
            execution = await repository.get_execution(db, decision.id)
            if not created:
                logger.info(f"Decision {decision_id} executed concurrently; returning winner's record")
                return execution

            handler = self._handlers.get(action)
            if handler is None:
                raise AssertionError(f"No handler for moderation action {action!r}")
            await handler(db, decision, execution)

            decision.status = DecisionStatus.EXECUTED.value
            decision.executed_at = now
            report = await report_repository.get_report(db, decision.report_id)
            advance_report(report, ReportStatus.RESOLVED)

            if report.trusted_flagger and action != ModerationAction.NO_ACTION:
                flagger = await report_repository.get_trusted_flagger(db, report.reporter_id)
                if flagger is not None:
                    flagger.upheld_decisions = (flagger.upheld_decisions or 0) + 1

            if decision.user_id:
                self._schedule_notification(db, decision, action.value, now)

            await self.ledger.record(
                db,
                ActionExecuted(
                    execution_id=execution.id,
                    action=action.value,
                    content_id=execution.content_id,
                    user_id=execution.user_id or "",
                    reason_code=execution.reason_code,
                    expires_at=execution.expires_at,
                    territorial_scope=execution.territorial_scope,
                ),
                actor=actor,
                target_type="moderation_decision",
                target_id=decision.id,
                action="execute",
            )

        logger.info(f"Decision {decision_id} executed: {action.value} by {actor.id}")
        return execution

    # --- dispatch -----------------------------------------------------------

    async def _apply_no_action(self, db, decision, execution):
        return None

    async def _apply_quarantine(self, db, decision, execution):
        if not await self.store.quarantine(db, decision.content_id):
            self._content_missing(decision, execution)

    async def _apply_geo_block(self, db, decision, execution):
        if not execution.territorial_scope:
            raise ValidationError({"territorial_scope": "geo_block needs at least one territory"})
        await self.store.add_geo_blocks(
            db, decision.content_id, execution.territorial_scope, execution.reason_code
        )

    async def _apply_remove(self, db, decision, execution):
        removed = await self.store.soft_delete(
            db, decision.content_id, execution.executed_by, execution.reason_code
        )
        if not removed:
            self._content_missing(decision, execution)

    def _content_missing(self, decision, execution):
        logger.warning(
            f"Decision {decision.id}: content {decision.content_id} is gone from the store, "
            f"{execution.action} recorded without a content side effect"
        )

    def _restriction_values(self, decision, execution) -> dict:
        return {
            "id": str(uuid.uuid4()),
            "user_id": decision.user_id,
            "decision_id": decision.id,
            "reason_code": execution.reason_code,
            "starts_at": execution.executed_at,
            "expires_at": execution.expires_at,
        }

    async def _apply_rate_limit(self, db, decision, execution):
        db.add(
            UserRateLimit(
                posts_per_hour=settings.RATE_LIMIT_POSTS_PER_HOUR,
                **self._restriction_values(decision, execution),
            )
        )

    async def _apply_shadow_ban(self, db, decision, execution):
        db.add(UserShadowBan(**self._restriction_values(decision, execution)))

    async def _apply_suspension(self, db, decision, execution):
        db.add(UserSuspension(**self._restriction_values(decision, execution)))
        await account_repository.suspend_user(db, decision.user_id, execution.expires_at)

    # --- reversal -------------------------------------------------------------

    async def revert(
        self,
        db: AsyncSession,
        decision: ModerationDecision,
        reason: str,
        actor: Actor = SYSTEM_ACTOR,
        appeal_id: Optional[str] = None,
    ) -> ModerationDecision:
        """Undo the side effects of an executed decision (upheld appeal)."""
        if decision.status == DecisionStatus.REVERSED.value:
            return decision
        now = clock.utcnow()
        execution = await repository.get_execution(db, decision.id)

        if execution is not None and execution.reverted_at is None:
            action = ModerationAction(execution.action)
            if action == ModerationAction.QUARANTINE:
                await self.store.release_quarantine(db, execution.content_id)
            elif action == ModerationAction.REMOVE:
                await self.store.restore(db, execution.content_id)
            elif action == ModerationAction.GEO_BLOCK:
                await self.store.remove_geo_blocks(db, execution.content_id, execution.reason_code)
            else:
                await repository.lift_restrictions(db, decision.id, now)
                if action == ModerationAction.SUSPEND_USER and execution.user_id:
                    await account_repository.lift_suspension(db, execution.user_id)
            execution.reverted_at = now

        decision.status = DecisionStatus.REVERSED.value
        decision.reversed_at = now
        decision.reversal_reason = reason
        if decision.user_id:
            self._schedule_notification(db, decision, "decision_reversed", now)

        await self.ledger.record(
            db,
            DecisionReversed(reason=reason, appeal_id=appeal_id),
            actor=actor,
            target_type="moderation_decision",
            target_id=decision.id,
            action="reverse",
        )
        logger.info(f"Decision {decision.id} reversed: {reason}")
        return decision

    # --- notifications --------------------------------------------------------

    def _schedule_notification(self, db: AsyncSession, decision: ModerationDecision, action: str, now) -> None:
        db.add(
            ModerationNotification(
                id=str(uuid.uuid4()),
                user_id=decision.user_id,
                decision_id=decision.id,
                action=action,
                scheduled_for=now + timedelta(seconds=settings.NOTIFICATION_DELAY_SECONDS),
                status=NotificationStatus.PENDING.value,
                attempts=0,
            )
        )

    async def record_delivery_result(
        self, notification_id: str, success: bool, error: Optional[str] = None
    ) -> ModerationNotification:
        """Status callback from the delivery collaborator."""
        async with get_db() as db:
            notification = await repository.get_notification(db, notification_id)
            if notification is None:
                raise NotFoundError(f"Notification {notification_id} not found")
            if notification.status == NotificationStatus.PENDING.value:
                self._apply_delivery_result(notification, success, error, clock.utcnow())
        return notification

    def _apply_delivery_result(
        self, notification: ModerationNotification, success: bool, error: Optional[str], now
    ) -> None:
        notification.attempts = (notification.attempts or 0) + 1
        if success:
            notification.status = NotificationStatus.SENT.value
            notification.sent_at = now
            notification.last_error = None
        elif notification.attempts >= settings.NOTIFICATION_MAX_ATTEMPTS:
            notification.status = NotificationStatus.FAILED.value
            notification.last_error = error
            logger.error(
                f"Notification {notification.id} parked after {notification.attempts} attempts: {error}"
            )
        else:
            notification.last_error = error
            notification.scheduled_for = now + timedelta(
                seconds=settings.NOTIFICATION_DELAY_SECONDS * (2 ** notification.attempts)
            )
            logger.warning(f"Notification {notification.id} delivery failed, retrying: {error}")

    async def expire_unanswered_notifications(self, limit: int = 100) -> int:
        """
        Count a missing delivery callback as a failed attempt.

        Runs periodically; notifications still pending long after their
        scheduled time are rescheduled with backoff or parked as failed.
        """
        now = clock.utcnow()
        cutoff = now - timedelta(seconds=settings.NOTIFICATION_CALLBACK_TIMEOUT_SECONDS)
        async with get_db() as db:
            stale = await repository.due_notifications(db, cutoff, limit)
            for notification in stale:
                self._apply_delivery_result(notification, False, "no delivery callback", now)
        return len(stale)

    async def due_notifications(self, limit: int = 100):
        async with get_db() as db:
            return await repository.due_notifications(db, clock.utcnow(), limit)


action_executor = ActionExecutor()
