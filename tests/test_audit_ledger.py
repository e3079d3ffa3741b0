from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select, text, update
from sqlalchemy.exc import DBAPIError

from app.core.config import settings
from app.core.database import engine, get_db
from app.core.exceptions import (
    AuditImmutableError,
    ConflictError,
    IntegrityViolation,
    InvalidStateError,
    NotFoundError,
    SigningKeyUnavailableError,
    ValidationError,
)
from app.domains.audit import repository
from app.domains.audit.entities import (
    IntegrityStatus,
    PartitionStatus,
    VerificationDetail,
    VerificationMethod,
)
from app.domains.audit.models import AuditEventRecord
from app.domains.audit.retention import RetentionPolicy, add_years
from app.domains.audit.service import audit_ledger
from app.domains.audit.signing import signing_keys
from app.shared.schemas.events import DecisionApproved, SlaAlertAcknowledged
from factories import ADMIN, SUPERVISOR, run


async def _record(target_id="decision-1", idempotency_key=None):
    async with get_db() as db:
        event = await audit_ledger.record(
            db,
            DecisionApproved(supervisor_id=SUPERVISOR.id),
            actor=SUPERVISOR,
            target_type="moderation_decision",
            target_id=target_id,
            action="approve",
            idempotency_key=idempotency_key,
        )
    return event


async def _verify(event_id):
    async with get_db() as db:
        return await audit_ledger.verify(db, event_id)


def test_recorded_event_verifies_with_active_key(frozen_clock):
    event = run(_record())
    result = run(_verify(event.id))
    assert result.valid
    assert result.detail == VerificationDetail.OK
    assert result.method == VerificationMethod.ACTIVE_KEY
    assert result.key_version == "v1.0"
    assert event.partition_id == "audit_events_202603"
    assert event.actor_type == "moderator"
    assert event.event_metadata == {"supervisor_id": SUPERVISOR.id}


def test_first_event_verifies_against_a_freshly_bootstrapped_key():
    # real clock: the bootstrapped key must cover the event that created it
    event = run(_record())
    result = run(_verify(event.id))
    assert result.valid
    assert result.detail == VerificationDetail.OK

    async def key():
        async with get_db() as db:
            return await signing_keys.get_key(db, "v1.0")

    assert run(key()).activated_at <= event.timestamp


def test_unknown_event_reports_not_found():
    result = run(_verify("missing"))
    assert not result.valid
    assert result.detail == VerificationDetail.EVENT_NOT_FOUND


def test_tampered_row_fails_verification(frozen_clock):
    event = run(_record())

    async def tamper():
        async with engine.begin() as conn:
            # simulate a privileged session that bypassed the storage guard
            await conn.execute(text("DROP TRIGGER audit_events_worm_update"))
            await conn.execute(
                text("UPDATE audit_events SET action = 'reject' WHERE id = :id"), {"id": event.id}
            )

    run(tamper())
    result = run(_verify(event.id))
    assert not result.valid
    assert result.detail == VerificationDetail.SIGNATURE_MISMATCH


def test_orm_update_is_rejected(frozen_clock):
    event = run(_record())

    async def mutate():
        async with get_db() as db:
            row = await repository.get_event(db, event.id)
            row.action = "reject"

    with pytest.raises(AuditImmutableError):
        run(mutate())


def test_orm_delete_is_rejected(frozen_clock):
    event = run(_record())

    async def remove():
        async with get_db() as db:
            row = await repository.get_event(db, event.id)
            await db.delete(row)

    with pytest.raises(AuditImmutableError):
        run(remove())


def test_bulk_update_is_rejected(frozen_clock):
    run(_record())

    async def bulk():
        async with get_db() as db:
            await db.execute(update(AuditEventRecord).values(action="reject"))

    with pytest.raises(AuditImmutableError):
        run(bulk())


def test_storage_trigger_blocks_raw_sql(frozen_clock):
    event = run(_record())

    async def raw_delete():
        async with engine.begin() as conn:
            await conn.execute(text("DELETE FROM audit_events WHERE id = :id"), {"id": event.id})

    with pytest.raises(DBAPIError):
        run(raw_delete())
    assert run(_verify(event.id)).valid


def test_idempotency_key_returns_existing_event(frozen_clock):
    first = run(_record(idempotency_key="approve:decision-1"))
    second = run(_record(idempotency_key="approve:decision-1"))
    assert first.id == second.id

    async def count():
        async with get_db() as db:
            result = await db.execute(select(func.count()).select_from(AuditEventRecord))
            return result.scalar_one()

    assert run(count()) == 1


def test_missing_secret_fails_closed(frozen_clock, monkeypatch):
    event = run(_record())
    monkeypatch.setattr(settings, "AUDIT_SIGNING_KEYS", {})

    with pytest.raises(SigningKeyUnavailableError):
        run(_record("decision-2"))
    result = run(_verify(event.id))
    assert not result.valid
    assert result.detail == VerificationDetail.SECRET_UNAVAILABLE


def test_rotation_keeps_old_events_verifiable_within_overlap(frozen_clock):
    old_event = run(_record("decision-1"))
    frozen_clock.advance(days=1)

    async def rotate():
        async with get_db() as db:
            return await audit_ledger.rotate_key(db, ADMIN, "v2.0", timedelta(days=30), "scheduled")

    new_key = run(rotate())
    assert new_key.version == "v2.0"

    new_event = run(_record("decision-2"))
    assert new_event.signing_key_version == "v2.0"

    old_result = run(_verify(old_event.id))
    assert old_result.valid
    assert old_result.method == VerificationMethod.OVERLAP_KEY
    new_result = run(_verify(new_event.id))
    assert new_result.method == VerificationMethod.ACTIVE_KEY

    async def keys():
        async with get_db() as db:
            v1 = await signing_keys.get_key(db, "v1.0")
            active = await signing_keys.get_active_key(db)
            return v1, active

    v1, active = run(keys())
    assert active.version == "v2.0"
    assert not v1.is_active
    assert signing_keys.is_valid_at(v1, frozen_clock.now + timedelta(days=29))
    assert not signing_keys.is_valid_at(v1, frozen_clock.now + timedelta(days=31))

    async def valid_at(ts):
        async with get_db() as db:
            return [k.version for k in await signing_keys.keys_valid_at(db, ts)]

    assert run(valid_at(frozen_clock.now + timedelta(days=29))) == ["v1.0", "v2.0"]
    assert run(valid_at(frozen_clock.now + timedelta(days=31))) == ["v2.0"]


def test_rotation_rejects_bad_or_reused_versions(frozen_clock):
    run(_record())

    async def rotate(version):
        async with get_db() as db:
            return await audit_ledger.rotate_key(db, ADMIN, version)

    with pytest.raises(ValidationError):
        run(rotate("2.0"))
    with pytest.raises(SigningKeyUnavailableError):
        run(rotate("v9.0"))
    run(rotate("v2.0"))
    with pytest.raises(ConflictError):
        run(rotate("v2.0"))


def test_expired_keys_are_deactivated(frozen_clock):
    run(_record())

    async def rotate():
        async with get_db() as db:
            await audit_ledger.rotate_key(db, ADMIN, "v2.0", timedelta(days=1))

    async def deactivate():
        async with get_db() as db:
            return await signing_keys.deactivate_expired_keys(db)

    run(rotate())
    assert run(deactivate()) == []
    frozen_clock.advance(days=2)
    assert run(deactivate()) == ["v1.0"]


def _seal(partition_id, key_version=None):
    async def seal():
        async with get_db() as db:
            return await audit_ledger.seal_partition(db, partition_id, key_version)

    return run(seal())


def test_seal_is_deterministic_and_idempotent(frozen_clock):
    for i in range(3):
        run(_record(f"decision-{i}"))

    with pytest.raises(InvalidStateError):
        _seal("audit_events_202603")

    frozen_clock.now = datetime(2026, 4, 2, 9, 0, 0)
    first = _seal("audit_events_202603")
    second = _seal("audit_events_202603")
    assert first.record_count == 3
    assert (first.checksum, first.manifest_signature) == (second.checksum, second.manifest_signature)

    async def verify():
        async with get_db() as db:
            return await audit_ledger.verify_partition(db, "audit_events_202603")

    verification = run(verify())
    assert verification.valid
    assert verification.checksum_matches and verification.manifest_signature_valid


def test_sealed_partition_accepts_no_new_events(frozen_clock):
    run(_record())
    frozen_clock.now = datetime(2026, 4, 2)
    _seal("audit_events_202603")

    frozen_clock.now = datetime(2026, 3, 31, 23, 0, 0)
    with pytest.raises(IntegrityViolation):
        run(_record("late"))


def test_partition_expires_only_after_retention(frozen_clock):
    run(_record())
    frozen_clock.now = datetime(2026, 4, 2)
    _seal("audit_events_202603")

    async def expire():
        async with get_db() as db:
            return await audit_ledger.expire_partition(db, "audit_events_202603")

    with pytest.raises(InvalidStateError):
        run(expire())

    frozen_clock.now = datetime(2034, 1, 1)
    partition = run(expire())
    assert partition.status == PartitionStatus.EXPIRED.value


def test_integrity_check_flags_unsealed_months(frozen_clock):
    run(_record())
    frozen_clock.now = datetime(2026, 4, 5)

    async def check():
        async with get_db() as db:
            return await audit_ledger.run_integrity_check(db)

    report = run(check())
    assert report.status == IntegrityStatus.PARTITION_SECURITY_RISK
    assert report.unsealed_partitions == ["audit_events_202603"]

    _seal("audit_events_202603")
    assert run(check()).status == IntegrityStatus.HEALTHY


def test_events_for_target_are_in_order(frozen_clock):
    run(_record("decision-1"))
    frozen_clock.advance(minutes=1)

    async def ack():
        async with get_db() as db:
            await audit_ledger.record(
                db,
                SlaAlertAcknowledged(report_id="r-1"),
                actor=SUPERVISOR,
                target_type="moderation_decision",
                target_id="decision-1",
                action="acknowledge",
            )
            return await audit_ledger.events_for_target(db, "moderation_decision", "decision-1")

    events = run(ack())
    assert [e.action for e in events] == ["approve", "acknowledge"]


def test_retention_policy():
    assert add_years(datetime(2028, 2, 29), 1) == datetime(2029, 2, 28)
    policy = RetentionPolicy({"signing_key_rotated": 7}, default_years=5)
    ts = datetime(2026, 1, 1)
    assert policy.retention_until("signing_key_rotated", ts) == datetime(2033, 1, 1)
    assert policy.retention_until("report_submitted", ts) == datetime(2031, 1, 1)


def _hold(target_id="decision-1", **kwargs):
    async def apply():
        async with get_db() as db:
            return await audit_ledger.apply_legal_hold(
                db, ADMIN, "moderation_decision", target_id, "Prosecutor request", "court_order", **kwargs
            )

    return run(apply())


def _release(target_id="decision-1", reason="Proceedings closed"):
    async def release():
        async with get_db() as db:
            return await audit_ledger.release_legal_hold(db, ADMIN, "moderation_decision", target_id, reason)

    return run(release())


def test_legal_hold_is_audited_with_ten_year_retention(frozen_clock):
    run(_record("decision-1"))
    hold = _hold(court_order_reference="StA-2026-17")
    assert hold.created_by == ADMIN.id

    async def trail():
        async with get_db() as db:
            return await audit_ledger.events_for_target(db, "moderation_decision", "decision-1")

    events = run(trail())
    assert [e.event_type for e in events] == ["decision_approved", "court_order_received", "legal_hold_applied"]
    applied = events[-1]
    assert applied.event_metadata["affected_event_count"] == 1
    assert applied.retention_until == datetime(2036, 3, 10, 12, 0, 0)
    assert events[1].retention_until == datetime(2036, 3, 10, 12, 0, 0)

    with pytest.raises(ConflictError):
        _hold()


def test_legal_hold_blocks_partition_expiry_until_released(frozen_clock):
    run(_record("decision-1"))
    _hold()
    frozen_clock.now = datetime(2026, 4, 2)
    _seal("audit_events_202603")

    async def expire():
        async with get_db() as db:
            return await audit_ledger.expire_partition(db, "audit_events_202603")

    # past every retention date, including the hold's own ten years
    frozen_clock.now = datetime(2037, 1, 1)
    with pytest.raises(InvalidStateError) as exc:
        run(expire())
    assert "legal hold" in str(exc.value)

    released = _release()
    assert released.released_at == frozen_clock.now
    assert run(expire()).status == PartitionStatus.EXPIRED.value


def test_legal_hold_input_and_release_rules(frozen_clock):
    async def blank():
        async with get_db() as db:
            return await audit_ledger.apply_legal_hold(db, ADMIN, "moderation_decision", "decision-9", " ", "")

    with pytest.raises(ValidationError) as exc:
        run(blank())
    assert set(exc.value.errors) == {"reason", "legal_basis"}

    with pytest.raises(NotFoundError):
        _release("decision-9")

    _hold("decision-9")
    with pytest.raises(ValidationError):
        _release("decision-9", reason=" ")
    _release("decision-9")
    # a released target can be held again
    assert _hold("decision-9").released_at is None
