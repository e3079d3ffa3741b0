import json
from datetime import timedelta

import httpx
import pytest
from sqlalchemy import select

from app.core.database import get_db
from app.core.exceptions import PermanentExternalError, TransientExternalError
from app.domains.moderation.service import moderation_service
from app.domains.transparency.client import TransparencyDbClient
from app.domains.transparency.models import SorExportItem
from app.domains.transparency.service import backoff_for, sor_export_queue
from factories import AUTHOR, executed_decision, illegal_notice, run, seed_content


def _client(handler):
    return TransparencyDbClient(
        base_url="https://transparency.test/api/v1", api_key="tdb-key", transport=httpx.MockTransport(handler)
    )


def _queue_item(statement_id):
    async def load():
        async with get_db() as db:
            result = await db.execute(
                select(SorExportItem).filter(SorExportItem.statement_id == statement_id)
            )
            return result.scalar_one()

    return run(load())


def _statement():
    _, decision, _ = run(executed_decision(notice=illegal_notice()))
    return run(moderation_service.get_statement(decision.id))


def test_statement_is_submitted_redacted(frozen_clock, content):
    statement = _statement()
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(201, json={"uuid": "tdb-0001"})

    result = run(sor_export_queue.process_pending(_client(handler)))
    assert (result.submitted, result.retried, result.failed, result.dead_lettered) == (1, 0, 0, 0)

    request = seen[0]
    assert request.url.path == "/api/v1/statement"
    assert request.headers["Idempotency-Key"] == f"sor:{statement.id}"
    assert request.headers["Authorization"] == "Bearer tdb-key"
    payload = json.loads(request.content)
    assert payload["puid"] == statement.id
    assert payload["decision_ground"] == "illegal"
    assert payload["illegal_content_legal_ground"] == "AMG §95"
    assert payload["application_date"] == "2026-03-10"
    assert AUTHOR.id not in request.content.decode()
    assert "reasoning" not in payload

    item = _queue_item(statement.id)
    assert item.status == "submitted"
    assert item.transparency_db_id == "tdb-0001"
    assert run(moderation_service.get_statement(statement.decision_id)).transparency_db_id == "tdb-0001"

    # submitted rows are never picked up again
    assert run(sor_export_queue.process_pending(_client(handler))).submitted == 0
    assert len(seen) == 1


def test_transient_failures_back_off_then_dead_letter(frozen_clock, content):
    statement = _statement()

    def handler(request):
        return httpx.Response(503, text="maintenance")

    client = _client(handler)
    for attempt in range(1, 5):
        result = run(sor_export_queue.process_pending(client))
        assert result.retried == 1
        item = _queue_item(statement.id)
        assert item.status == "retry"
        assert item.next_attempt_at == frozen_clock.now + backoff_for(attempt)
        assert run(sor_export_queue.process_pending(client)).retried == 0
        frozen_clock.advance(seconds=backoff_for(attempt).total_seconds())

    final = run(sor_export_queue.process_pending(client))
    assert final.dead_lettered == 1
    item = _queue_item(statement.id)
    assert (item.status, item.attempts) == ("dlq", 5)
    assert "503" in item.last_error


def test_rejected_statement_is_failed(frozen_clock, content):
    statement = _statement()

    def handler(request):
        return httpx.Response(422, json={"errors": {"category": ["invalid"]}})

    result = run(sor_export_queue.process_pending(_client(handler)))
    assert result.failed == 1
    assert _queue_item(statement.id).status == "failed"


def test_non_json_success_body_fails_the_statement(frozen_clock, content):
    statement = _statement()

    def handler(request):
        return httpx.Response(200, text="OK")

    result = run(sor_export_queue.process_pending(_client(handler)))
    assert result.failed == 1
    item = _queue_item(statement.id)
    assert (item.status, item.attempts) == ("failed", 1)
    assert "non-JSON" in item.last_error


def test_one_broken_item_does_not_stop_the_batch(frozen_clock, content):
    broken = _statement()
    run(seed_content("post-2"))
    _, decision, _ = run(executed_decision(notice=illegal_notice("post-2")))
    healthy = run(moderation_service.get_statement(decision.id))

    def handler(request):
        if json.loads(request.content)["puid"] == broken.id:
            raise RuntimeError("connection pool corrupted")
        return httpx.Response(201, json={"uuid": "tdb-0002"})

    result = run(sor_export_queue.process_pending(_client(handler)))
    assert (result.submitted, result.retried) == (1, 1)
    assert _queue_item(healthy.id).status == "submitted"
    item = _queue_item(broken.id)
    assert (item.status, item.attempts) == ("retry", 1)
    assert "connection pool corrupted" in item.last_error

def test_timeouts_are_retried(frozen_clock, content):
    statement = _statement()

    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    assert run(sor_export_queue.process_pending(_client(handler))).retried == 1
    assert _queue_item(statement.id).status == "retry"


def test_unconfigured_endpoint_skips_export(content):
    statement = _statement()
    result = run(sor_export_queue.process_pending(TransparencyDbClient(base_url="")))
    assert result.submitted == 0
    assert _queue_item(statement.id).status == "pending"


def test_client_error_classification():
    def rate_limited(request):
        return httpx.Response(429)

    def no_id(request):
        return httpx.Response(200, json={})

    def by_id(request):
        return httpx.Response(200, json={"id": 42})

    def listed(request):
        return httpx.Response(200, json=["tdb-0001"])

    with pytest.raises(TransientExternalError) as exc:
        run(_client(rate_limited).submit_statement({}, "sor:x"))
    assert exc.value.status_code == 429
    with pytest.raises(PermanentExternalError):
        run(_client(no_id).submit_statement({}, "sor:x"))
    with pytest.raises(PermanentExternalError):
        run(_client(listed).submit_statement({}, "sor:x"))
    assert run(_client(by_id).submit_statement({}, "sor:x")) == "42"


def test_backoff_doubles():
    assert backoff_for(1) == timedelta(seconds=60)
    assert backoff_for(3) == timedelta(seconds=240)
