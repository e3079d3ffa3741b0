from datetime import timedelta

import pytest

from app.core.database import get_db
from app.core.exceptions import AuthorizationError, ConflictError, ValidationError
from app.domains.audit.service import audit_ledger
from app.domains.auth.entities import Actor
from app.domains.reports import classifier
from app.domains.reports.entities import (
    Priority,
    ReportStatus,
    SlaLane,
    TrustedFlaggerStatus,
    can_advance,
)
from app.domains.reports.service import report_intake_service
from factories import ADMIN, MODERATOR, REPORTER, illegal_notice, policy_notice, run, submit


def test_illegal_notice_is_accepted_into_illegal_lane(frozen_clock, content):
    result = run(submit(illegal_notice()))

    assert result.status == ReportStatus.PENDING
    assert result.priority == Priority.HIGH
    assert result.sla_deadline == frozen_clock.now + timedelta(hours=24)
    assert result.duplicate_of_report_id is None
    assert len(result.content_hash) == 64

    report = run(report_intake_service.get_report(result.report_id))
    assert report.sla_lane == SlaLane.ILLEGAL.value
    assert report.jurisdiction == "DE"
    assert report.content_snapshot_id is not None

    async def audit_trail():
        async with get_db() as db:
            events = await audit_ledger.events_for_target(db, "content_report", result.report_id)
            return events, [await audit_ledger.verify_record(db, e) for e in events]

    events, verifications = run(audit_trail())
    assert [e.event_type for e in events] == ["report_submitted"]
    assert events[0].actor_id == REPORTER.id
    assert all(v.valid for v in verifications)


def test_incomplete_notice_reports_every_missing_field(content):
    notice = illegal_notice(jurisdiction=None, legal_reference="", good_faith_declaration=False)
    with pytest.raises(ValidationError) as exc:
        run(submit(notice))
    assert set(exc.value.errors) == {"jurisdiction", "legal_reference", "good_faith_declaration"}


def test_notice_field_formats_are_checked(content):
    notice = policy_notice(content_type="video", jurisdiction="Germany", evidence_urls=["ftp://x"])
    with pytest.raises(ValidationError) as exc:
        run(submit(notice))
    assert set(exc.value.errors) == {"content_type", "jurisdiction", "evidence_urls"}


def test_unknown_content_is_rejected():
    with pytest.raises(ValidationError) as exc:
        run(submit(policy_notice(content_id="missing")))
    assert "content_id" in exc.value.errors


def test_repeat_notice_from_same_reporter_is_duplicate(frozen_clock, content):
    first = run(submit())
    frozen_clock.advance(hours=2)
    second = run(submit())

    assert second.status == ReportStatus.DUPLICATE
    assert second.duplicate_of_report_id == first.report_id
    assert second.content_hash == first.content_hash


def test_other_reporter_is_not_a_duplicate(frozen_clock, content):
    first = run(submit())
    second = run(submit(reporter=Actor(id="user-other")))
    assert second.status == ReportStatus.PENDING
    assert second.duplicate_of_report_id is None

    first_report = run(report_intake_service.get_report(first.report_id))
    second_report = run(report_intake_service.get_report(second.report_id))
    assert first_report.content_snapshot_id == second_report.content_snapshot_id


def test_duplicate_window_expires(frozen_clock, content):
    run(submit())
    frozen_clock.advance(hours=25)
    again = run(submit())
    assert again.status == ReportStatus.PENDING


def test_immediate_keywords_take_the_one_hour_lane(frozen_clock, content):
    notice = policy_notice(explanation="Post encourages self-harm among teens")
    result = run(submit(notice))
    assert result.priority == Priority.IMMEDIATE
    assert result.sla_deadline == frozen_clock.now + timedelta(hours=1)


def test_policy_notice_takes_the_standard_lane(frozen_clock, content):
    result = run(submit())
    assert result.priority == Priority.NORMAL
    assert result.sla_deadline == frozen_clock.now + timedelta(hours=72)


def test_repeated_reports_on_same_content_are_elevated(frozen_clock, content):
    run(submit(reporter=Actor(id="user-1")))
    run(submit(reporter=Actor(id="user-2")))
    third = run(submit(reporter=Actor(id="user-3")))
    assert third.priority == Priority.ELEVATED


def test_classifier_lanes():
    keyword_notice = illegal_notice(legal_reference=None, explanation="Advertises weapons sale to minors")
    assert classifier.classify(keyword_notice, False, 1).priority == Priority.HIGH

    plain_illegal = illegal_notice(legal_reference=None, explanation="Looks dodgy")
    low = classifier.classify(plain_illegal, False, 1)
    assert (low.priority, low.lane) == (Priority.LOW, SlaLane.ILLEGAL)

    trusted = classifier.classify(policy_notice(), True, 1)
    assert (trusted.priority, trusted.lane) == (Priority.HIGH, SlaLane.POLICY_VIOLATION)


def test_trusted_flagger_notices_are_prioritised(frozen_clock, content):
    run(
        report_intake_service.register_trusted_flagger(
            ADMIN, "user-ngo", "Safer Internet NGO", specialization=["hate_speech", "hate_speech"]
        )
    )
    ngo = Actor(id="user-ngo")
    result = run(submit(reporter=ngo))
    assert result.priority == Priority.HIGH

    report = run(report_intake_service.get_report(result.report_id))
    assert report.trusted_flagger
    assert run(report_intake_service.is_trusted_flagger("user-ngo"))

    run(report_intake_service.set_trusted_flagger_status(ADMIN, "user-ngo", TrustedFlaggerStatus.SUSPENDED))
    assert not run(report_intake_service.is_trusted_flagger("user-ngo"))


def test_trusted_flagger_registry_is_admin_only():
    with pytest.raises(AuthorizationError):
        run(report_intake_service.register_trusted_flagger(MODERATOR, "user-ngo", "NGO"))

    run(report_intake_service.register_trusted_flagger(ADMIN, "user-ngo", "NGO"))
    with pytest.raises(ConflictError):
        run(report_intake_service.register_trusted_flagger(ADMIN, "user-ngo", "NGO"))


def test_report_status_only_moves_forward():
    assert can_advance(ReportStatus.PENDING, ReportStatus.IN_REVIEW)
    assert can_advance(ReportStatus.IN_REVIEW, ReportStatus.RESOLVED)
    assert not can_advance(ReportStatus.RESOLVED, ReportStatus.PENDING)
    assert not can_advance(ReportStatus.DUPLICATE, ReportStatus.IN_REVIEW)
