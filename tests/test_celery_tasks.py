from contextlib import asynccontextmanager
from datetime import datetime

import httpx

from app.core.celery import celery_app
from app.domains.transparency.client import TransparencyDbClient
from app.domains.transparency.service import sor_export_queue
from app.tasks import audit_tasks, notification_tasks, sla_tasks, transparency_tasks
from factories import executed_decision, policy_notice, run, submit


def _lock(acquired):
    @asynccontextmanager
    async def fake_lock(name, timeout=None):
        yield acquired

    return fake_lock


def test_sla_sweep_skips_when_locked(monkeypatch):
    monkeypatch.setattr(sla_tasks, "sweep_lock", _lock(False))
    result = sla_tasks.sweep_sla_deadlines()
    assert result["skipped"] is True
    assert result["reason"] == "sweep already running"


def test_sla_sweep_task_raises_alerts(monkeypatch, frozen_clock, content):
    monkeypatch.setattr(sla_tasks, "sweep_lock", _lock(True))
    run(submit(policy_notice(explanation="Bomb threat against the school")))
    frozen_clock.advance(hours=2)

    result = sla_tasks.sweep_sla_deadlines()
    assert result["skipped"] is False
    assert (result["alerts_created"], result["incidents_opened"]) == (3, 1)


def test_sor_export_task_uses_queue(monkeypatch, content):
    monkeypatch.setattr(transparency_tasks, "sweep_lock", _lock(True))
    client = TransparencyDbClient(
        base_url="https://transparency.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(201, json={"uuid": "tdb-9"})),
    )
    monkeypatch.setattr(sor_export_queue, "client", client)
    run(executed_decision())

    assert transparency_tasks.export_statements_of_reasons() == {
        "submitted": 1,
        "retried": 0,
        "failed": 0,
        "dead_lettered": 0,
    }


def test_sor_export_task_skips_when_locked(monkeypatch):
    monkeypatch.setattr(transparency_tasks, "sweep_lock", _lock(False))
    assert transparency_tasks.export_statements_of_reasons()["submitted"] == 0


def test_notification_task_parks_silent_deliveries(frozen_clock, content):
    run(executed_decision())
    assert notification_tasks.dispatch_due_notifications() == {"expired": 0}
    frozen_clock.advance(hours=1)
    assert notification_tasks.dispatch_due_notifications() == {"expired": 1}


def test_partition_tasks(monkeypatch, frozen_clock, content):
    monkeypatch.setattr(audit_tasks, "sweep_lock", _lock(True))
    assert audit_tasks.ensure_upcoming_partitions() == ["audit_events_202603", "audit_events_202604"]

    run(submit())
    frozen_clock.now = datetime(2026, 4, 1, 1, 0, 0)
    outcome = audit_tasks.seal_closed_partitions()
    assert outcome == {"sealed": ["audit_events_202603"], "expired": [], "failed": []}

    report = audit_tasks.run_integrity_check()
    assert report["status"] == "HEALTHY"
    assert audit_tasks.deactivate_expired_signing_keys() == []


def test_partition_maintenance_skips_when_locked(monkeypatch):
    monkeypatch.setattr(audit_tasks, "sweep_lock", _lock(False))
    assert audit_tasks.seal_closed_partitions() == {"sealed": [], "expired": [], "failed": []}


def test_beat_schedule_registers_periodic_work():
    schedule = celery_app.conf.beat_schedule
    assert schedule["sla-sweep"]["task"] == "app.tasks.sla_tasks.sweep_sla_deadlines"
    assert {
        "sor-export",
        "deliver-notifications",
        "deactivate-signing-keys",
        "ensure-audit-partitions",
        "seal-audit-partitions",
        "audit-integrity-check",
    } <= set(schedule)
