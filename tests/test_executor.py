import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from app.core.database import get_db
from app.core.exceptions import InvalidStateError
from app.domains.audit.service import audit_ledger
from app.domains.auth import repository as account_repository
from app.domains.auth.entities import Actor
from app.domains.content.models import ContentItem
from app.domains.content.store import content_store
from app.domains.moderation import executor as executor_module
from app.domains.moderation import repository
from app.domains.moderation.entities import DecisionRequest, DecisionStatus, NotificationStatus
from app.domains.moderation.executor import action_executor
from app.domains.moderation.models import ActionExecution, ModerationNotification, UserRateLimit
from app.domains.moderation.service import moderation_service
from app.domains.reports import repository as report_repository
from app.domains.reports.entities import ReportStatus
from app.domains.reports.service import report_intake_service
from factories import (
    ADMIN,
    AUTHOR,
    MODERATOR,
    SUPERVISOR,
    decided_report,
    executed_decision,
    policy_notice,
    run,
    seed_content,
    submit,
)


async def _content(content_id="post-1"):
    async with get_db() as db:
        return await db.get(ContentItem, content_id)


async def _notifications(decision_id):
    async with get_db() as db:
        result = await db.execute(
            select(ModerationNotification)
            .filter(ModerationNotification.decision_id == decision_id)
            .order_by(ModerationNotification.scheduled_for)
        )
        return list(result.scalars().all())


async def _revert(decision_id, reason="appeal upheld"):
    async with get_db() as db:
        decision = await repository.get_decision(db, decision_id)
        return await action_executor.revert(db, decision, reason)


def test_quarantine_execution_is_idempotent(frozen_clock, content):
    report_id, decision, execution = run(executed_decision("quarantine"))
    again = run(action_executor.execute(MODERATOR, decision.id))
    assert again.id == execution.id

    item = run(_content())
    assert item.quarantined and item.visibility == "limited"
    assert run(moderation_service.get_decision(decision.id)).status == DecisionStatus.EXECUTED.value
    report = run(report_intake_service.get_report(report_id))
    assert report.status == ReportStatus.RESOLVED.value
    assert report.resolved_at == frozen_clock.now

    notifications = run(_notifications(decision.id))
    assert len(notifications) == 1
    assert notifications[0].user_id == AUTHOR.id
    assert notifications[0].scheduled_for == frozen_clock.now + timedelta(seconds=60)

    async def executed_events():
        async with get_db() as db:
            events = await audit_ledger.events_for_target(db, "moderation_decision", decision.id)
            return [e.event_type for e in events]

    assert run(executed_events()) == ["decision_made", "action_executed"]


def test_concurrent_execution_applies_once(content):
    _, decision = run(decided_report("quarantine"))

    async def race():
        return await asyncio.gather(
            action_executor.execute(MODERATOR, decision.id),
            action_executor.execute(MODERATOR, decision.id),
        )

    first, second = run(race())
    assert first.id == second.id

    async def count():
        async with get_db() as db:
            executions = await db.execute(select(func.count()).select_from(ActionExecution))
            notifications = await db.execute(select(func.count()).select_from(ModerationNotification))
            return executions.scalar_one(), notifications.scalar_one()

    assert run(count()) == (1, 1)


def test_geo_block_adds_territories(content):
    _, decision, execution = run(executed_decision("geo_block", territorial_scope=["de", "at"]))
    assert execution.territorial_scope == ["AT", "DE"]

    async def territories():
        async with get_db() as db:
            return await content_store.geo_blocked_territories(db, "post-1")

    assert run(territories()) == ["AT", "DE"]
    run(_revert(decision.id))
    assert run(territories()) == []


def test_remove_soft_deletes_and_revert_restores(frozen_clock, content):
    _, decision, execution = run(executed_decision("remove"))
    item = run(_content())
    assert item.deleted_at == frozen_clock.now
    assert item.deletion_reason == "spam"

    reverted = run(_revert(decision.id))
    assert reverted.status == DecisionStatus.REVERSED.value
    assert run(_content()).deleted_at is None
    assert [n.action for n in run(_notifications(decision.id))] == ["remove", "decision_reversed"]


def test_repeat_removal_by_another_actor_keeps_the_original_record(frozen_clock, content):
    _, decision, execution = run(executed_decision("remove"))
    removed_at = frozen_clock.now

    frozen_clock.advance(minutes=5)
    again = run(action_executor.execute(SUPERVISOR, decision.id))
    assert again.id == execution.id
    assert again.executed_by == MODERATOR.id
    assert again.executed_at == removed_at

    item = run(_content())
    assert item.deleted_at == removed_at
    assert item.deleted_by == MODERATOR.id

    async def trail():
        async with get_db() as db:
            executions = await db.execute(select(func.count()).select_from(ActionExecution))
            events = await audit_ledger.events_for_target(db, "moderation_decision", decision.id)
            return executions.scalar_one(), [e.event_type for e in events].count("action_executed")

    assert run(trail()) == (1, 1)


def test_action_on_vanished_content_still_executes(content, monkeypatch):
    _, decision = run(decided_report("quarantine"))

    async def drop_content():
        async with get_db() as db:
            await db.delete(await db.get(ContentItem, "post-1"))

    run(drop_content())
    warnings = []
    monkeypatch.setattr(executor_module.logger, "warning", warnings.append)

    execution = run(action_executor.execute(MODERATOR, decision.id))
    assert execution.action == "quarantine"
    assert run(moderation_service.get_decision(decision.id)).status == DecisionStatus.EXECUTED.value
    assert len(warnings) == 1
    assert "post-1" in warnings[0]


def test_suspension_is_applied_and_lifted(frozen_clock, content):
    _, decision, execution = run(executed_decision("suspend_user"))
    assert execution.expires_at == frozen_clock.now + timedelta(days=7)

    async def account():
        async with get_db() as db:
            return await account_repository.get_user(db, AUTHOR.id)

    user = run(account())
    assert user.suspended and user.suspension_expires_at == execution.expires_at
    assert len(run(moderation_service.active_restrictions(AUTHOR.id))) == 1

    run(_revert(decision.id))
    assert not run(account()).suspended
    assert run(moderation_service.active_restrictions(AUTHOR.id)) == []


def test_rate_limit_and_shadow_ban_durations(frozen_clock, content):
    _, _, limited = run(executed_decision("rate_limit"))
    assert limited.expires_at == frozen_clock.now + timedelta(days=7)

    run(seed_content("post-2"))
    _, _, banned = run(executed_decision("shadow_ban", notice=policy_notice("post-2"), duration_days=3))
    assert banned.expires_at == frozen_clock.now + timedelta(days=3)

    async def rate_limit():
        async with get_db() as db:
            result = await db.execute(select(UserRateLimit).filter(UserRateLimit.user_id == AUTHOR.id))
            return result.scalar_one()

    assert run(rate_limit()).posts_per_hour == 1
    assert len(run(moderation_service.active_restrictions(AUTHOR.id))) == 2


def test_restrictions_lapse_at_expiry(frozen_clock, content):
    run(executed_decision("rate_limit"))
    frozen_clock.advance(days=8)
    assert run(moderation_service.active_restrictions(AUTHOR.id)) == []


def test_reversed_decision_cannot_execute(content):
    _, decision = run(decided_report("quarantine"))
    run(_revert(decision.id, "withdrawn"))
    with pytest.raises(InvalidStateError):
        run(action_executor.execute(MODERATOR, decision.id))


def test_trusted_flagger_upheld_count(content):
    run(report_intake_service.register_trusted_flagger(ADMIN, "user-ngo", "NGO"))
    report_id = run(submit(reporter=Actor(id="user-ngo"))).report_id
    run(moderation_service.claim(MODERATOR, report_id))

    decision = run(
        moderation_service.record_decision(
            MODERATOR, report_id, DecisionRequest("quarantine", ["spam"], "Spam network")
        )
    )
    run(action_executor.execute(MODERATOR, decision.id))

    async def flagger():
        async with get_db() as db:
            return await report_repository.get_trusted_flagger(db, "user-ngo")

    assert run(flagger()).upheld_decisions == 1


def test_failed_notifications_retry_then_park(frozen_clock, content):
    _, decision, _ = run(executed_decision("quarantine"))
    notification = run(_notifications(decision.id))[0]

    first = run(action_executor.record_delivery_result(notification.id, False, "mailbox full"))
    assert first.status == NotificationStatus.PENDING.value
    assert first.attempts == 1
    assert first.scheduled_for == frozen_clock.now + timedelta(seconds=120)

    second = run(action_executor.record_delivery_result(notification.id, False, "mailbox full"))
    assert second.scheduled_for == frozen_clock.now + timedelta(seconds=240)

    parked = run(action_executor.record_delivery_result(notification.id, False, "mailbox full"))
    assert parked.status == NotificationStatus.FAILED.value
    assert parked.last_error == "mailbox full"

    # late callbacks do not revive a parked notification
    late = run(action_executor.record_delivery_result(notification.id, True))
    assert late.status == NotificationStatus.FAILED.value


def test_delivered_notification_is_sent(frozen_clock, content):
    _, decision, _ = run(executed_decision("quarantine"))
    notification = run(_notifications(decision.id))[0]
    sent = run(action_executor.record_delivery_result(notification.id, True))
    assert sent.status == NotificationStatus.SENT.value
    assert sent.sent_at == frozen_clock.now


def test_unanswered_notifications_count_as_failed_attempts(frozen_clock, content):
    _, decision, _ = run(executed_decision("quarantine"))
    assert len(run(action_executor.due_notifications())) == 0

    frozen_clock.advance(seconds=61)
    assert len(run(action_executor.due_notifications())) == 1
    assert run(action_executor.expire_unanswered_notifications()) == 0

    frozen_clock.advance(seconds=900)
    assert run(action_executor.expire_unanswered_notifications()) == 1
    notification = run(_notifications(decision.id))[0]
    assert notification.attempts == 1
    assert notification.last_error == "no delivery callback"
