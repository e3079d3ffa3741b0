from datetime import timedelta

import pytest

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    ValidationError,
)
from app.domains.appeals import repository
from app.domains.appeals.entities import AppealStatus, OdsStatus
from app.domains.appeals.service import appeal_window, appeals_service
from app.domains.audit.service import audit_ledger
from app.domains.auth.entities import Actor
from app.domains.content.models import ContentItem
from app.domains.moderation.entities import DecisionStatus
from app.domains.moderation.service import moderation_service
from factories import (
    ADMIN,
    AUTHOR,
    MODERATOR,
    OTHER_MODERATOR,
    REPORTER,
    SUPERVISOR,
    decided_report,
    executed_decision,
    run,
)


def _file(decision_id, actor=AUTHOR):
    return appeals_service.file_appeal(
        actor, decision_id, "content_removal", "The post was satire, not spam"
    )


def _appeal_for(action="quarantine"):
    _, decision, _ = run(executed_decision(action))
    return decision, run(_file(decision.id))


def _register_body(name="Appeals Centre Europe", jurisdictions=("eu",)):
    return run(appeals_service.register_ods_body(ADMIN, name, jurisdictions, ["content_moderation"]))


def test_appeal_window_never_drops_below_seven_days(monkeypatch):
    monkeypatch.setattr(settings, "APPEAL_WINDOW_DAYS", 3)
    assert appeal_window() == timedelta(days=7)
    monkeypatch.setattr(settings, "APPEAL_WINDOW_DAYS", 14)
    assert appeal_window() == timedelta(days=14)


def test_upheld_appeal_reverses_the_decision(frozen_clock, content):
    decision, appeal = _appeal_for("quarantine")
    assert appeal.status == AppealStatus.PENDING.value
    assert appeal.deadline == frozen_clock.now + timedelta(days=7)

    with pytest.raises(AuthorizationError):
        run(appeals_service.start_review(MODERATOR, appeal.id))

    in_review = run(appeals_service.start_review(OTHER_MODERATOR, appeal.id))
    assert in_review.reviewer_id == OTHER_MODERATOR.id

    resolved = run(
        appeals_service.resolve_appeal(OTHER_MODERATOR, appeal.id, "upheld", "Satire is permitted")
    )
    assert resolved.status == AppealStatus.RESOLVED.value
    assert resolved.decision == "upheld"

    reversed_decision = run(moderation_service.get_decision(decision.id))
    assert reversed_decision.status == DecisionStatus.REVERSED.value
    assert reversed_decision.reversal_reason == "Appeal upheld: Satire is permitted"

    async def content_and_trail():
        async with get_db() as db:
            item = await db.get(ContentItem, "post-1")
            events = await audit_ledger.events_for_target(db, "appeal", appeal.id)
            return item, [e.event_type for e in events]

    item, trail = run(content_and_trail())
    assert not item.quarantined
    assert trail == ["appeal_filed", "appeal_review_started", "appeal_resolved"]


def test_rejected_appeal_leaves_decision_in_place(content):
    decision, appeal = _appeal_for()
    run(appeals_service.start_review(OTHER_MODERATOR, appeal.id))
    run(appeals_service.resolve_appeal(OTHER_MODERATOR, appeal.id, "rejected", "Clear spam pattern"))
    assert run(moderation_service.get_decision(decision.id)).status == DecisionStatus.EXECUTED.value

    # a closed appeal does not block a new one
    assert run(_file(decision.id)).status == AppealStatus.PENDING.value


def test_only_one_active_appeal_per_decision(content):
    decision, _ = _appeal_for()
    with pytest.raises(ConflictError):
        run(_file(decision.id))


def test_only_affected_user_can_appeal(content):
    _, decision, _ = run(executed_decision())
    with pytest.raises(AuthorizationError):
        run(_file(decision.id, actor=REPORTER))


def test_unexecuted_decision_cannot_be_appealed(content):
    _, decision = run(decided_report())
    with pytest.raises(InvalidStateError):
        run(_file(decision.id))


def test_appeal_input_is_validated(content):
    _, decision, _ = run(executed_decision())
    with pytest.raises(ValidationError) as exc:
        run(appeals_service.file_appeal(AUTHOR, decision.id, "refund", " "))
    assert set(exc.value.errors) == {"appeal_type", "counter_arguments"}


def test_approving_supervisor_cannot_review(content):
    decision, appeal = _appeal_for("remove")
    assert decision.requires_supervisor_approval
    with pytest.raises(AuthorizationError):
        run(appeals_service.start_review(SUPERVISOR, appeal.id))


def test_resolution_rules(content):
    _, appeal = _appeal_for()
    with pytest.raises(InvalidStateError):
        run(appeals_service.resolve_appeal(OTHER_MODERATOR, appeal.id, "rejected", "Too early"))

    run(appeals_service.start_review(OTHER_MODERATOR, appeal.id))
    with pytest.raises(ValidationError) as exc:
        run(appeals_service.resolve_appeal(OTHER_MODERATOR, appeal.id, "maybe", ""))
    assert set(exc.value.errors) == {"decision", "reasoning"}

    third = Actor(id="mod-eve", roles=MODERATOR.roles)
    with pytest.raises(AuthorizationError):
        run(appeals_service.resolve_appeal(third, appeal.id, "rejected", "Not mine to decide"))


def test_escalation_to_certified_ods_body(frozen_clock, content):
    body = _register_body()
    _, appeal = _appeal_for()

    escalation = run(appeals_service.escalate_to_ods(AUTHOR, appeal.id, body.id))
    assert escalation.status == OdsStatus.SUBMITTED.value
    assert escalation.target_resolution_date == frozen_clock.now + timedelta(days=90)

    escalated = run(appeals_service.get_appeal(appeal.id))
    assert escalated.status == AppealStatus.ESCALATED_TO_ODS.value
    assert escalated.ods_body_name == "Appeals Centre Europe"

    with pytest.raises(ConflictError):
        run(appeals_service.escalate_to_ods(AUTHOR, appeal.id, body.id))


def test_ods_case_updates(frozen_clock, content):
    body = _register_body()
    _, appeal = _appeal_for()
    escalation = run(appeals_service.escalate_to_ods(AUTHOR, appeal.id, body.id))

    with pytest.raises(ValidationError):
        run(
            appeals_service.update_ods_case(
                MODERATOR, escalation.id, actual_resolution_date=frozen_clock.now - timedelta(days=1)
            )
        )
    with pytest.raises(ValidationError):
        run(appeals_service.update_ods_case(MODERATOR, escalation.id, status="settled"))

    frozen_clock.advance(days=40)
    updated = run(
        appeals_service.update_ods_case(
            MODERATOR,
            escalation.id,
            status="resolved",
            case_number="ACE-2026-0042",
            outcome="platform_decision_overturned",
            platform_action_required=True,
        )
    )
    assert updated.actual_resolution_date == frozen_clock.now
    assert updated.case_number == "ACE-2026-0042"
    assert updated.platform_action_required and not updated.platform_action_completed
    assert run(appeals_service.get_appeal(appeal.id)).ods_resolved_at == frozen_clock.now

    done = run(appeals_service.update_ods_case(MODERATOR, escalation.id, platform_action_completed=True))
    assert done.platform_action_completed_at == frozen_clock.now


def test_escalation_requires_certified_body(content):
    body = _register_body("Revoked Body", ["de"])

    async def revoke():
        async with get_db() as db:
            row = await repository.get_ods_body(db, body.id)
            row.status = "revoked"

    run(revoke())
    _, appeal = _appeal_for()
    with pytest.raises(ValidationError):
        run(appeals_service.escalate_to_ods(AUTHOR, appeal.id, body.id))


def test_certified_bodies_by_jurisdiction():
    _register_body("Appeals Centre Europe", ["eu"])
    _register_body("User Rights", ["de", "at"])
    _register_body("Conciliation FR", ["fr"])

    names = {b.name for b in run(appeals_service.list_certified_bodies("DE"))}
    assert names == {"Appeals Centre Europe", "User Rights"}
    assert len(run(appeals_service.list_certified_bodies())) == 3

    with pytest.raises(ConflictError):
        _register_body("User Rights", ["de"])
    with pytest.raises(AuthorizationError):
        run(appeals_service.register_ods_body(MODERATOR, "Other", ["de"]))
