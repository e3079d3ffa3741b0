from fastapi.testclient import TestClient

from app.main import app
from app.shared.utils.security import create_access_token

client = TestClient(app)


def _auth(subject, *roles):
    return {"Authorization": f"Bearer {create_access_token(subject, roles)}"}


REPORTER = _auth("user-reporter")
AUTHOR = _auth("user-author")
MODERATOR = _auth("mod-alice", "moderator")
OTHER_MODERATOR = _auth("mod-bob", "moderator")
SUPERVISOR = _auth("sup-carol", "supervisor")
ADMIN = _auth("admin-dave", "admin")

NOTICE = {
    "content_id": "post-1",
    "content_type": "post",
    "report_type": "illegal",
    "explanation": "Sells counterfeit medicine",
    "good_faith_declaration": True,
    "jurisdiction": "de",
    "legal_reference": "AMG §95",
}


def _submit():
    r = client.post("/api/moderation/reports", json=NOTICE, headers=REPORTER)
    assert r.status_code == 201, r.text
    return r.json()


def _executed_decision():
    report = _submit()
    client.post(f"/api/moderation/reports/{report['report_id']}/claim", json={}, headers=MODERATOR)
    decision = client.post(
        f"/api/moderation/reports/{report['report_id']}/decision",
        json={"action": "quarantine", "policy_violations": ["counterfeit"], "reasoning": "Counterfeit drugs"},
        headers=MODERATOR,
    ).json()
    client.post(f"/api/moderation/decisions/{decision['id']}/execute", headers=MODERATOR)
    return report, decision


def test_requests_without_token_are_rejected():
    r = client.post("/api/moderation/reports", json=NOTICE)
    assert r.status_code == 401
    r = client.get("/api/sla/alerts", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_submit_claim_decide_execute(content):
    report = _submit()
    assert report["status"] == "pending"
    assert report["priority"] == 75

    claim_url = f"/api/moderation/reports/{report['report_id']}/claim"
    r = client.post(claim_url, json={"ttl_minutes": 15}, headers=MODERATOR)
    assert r.status_code == 200
    assert r.json()["moderator_id"] == "mod-alice"

    r = client.post(claim_url, json={}, headers=OTHER_MODERATOR)
    assert r.status_code == 409
    assert r.json()["code"] == "already_claimed"
    assert r.json()["claimed_by"] == "mod-alice"

    r = client.post(
        f"/api/moderation/reports/{report['report_id']}/decision",
        json={"action": "quarantine", "policy_violations": ["counterfeit"], "reasoning": "Counterfeit drugs"},
        headers=MODERATOR,
    )
    assert r.status_code == 201
    decision = r.json()
    assert decision["status"] == "pending"
    assert decision["statement_of_reasons_id"]

    execute_url = f"/api/moderation/decisions/{decision['id']}/execute"
    first = client.post(execute_url, headers=MODERATOR).json()
    second = client.post(execute_url, headers=MODERATOR).json()
    assert first["execution_id"] == second["execution_id"]

    r = client.get(f"/api/moderation/decisions/{decision['id']}", headers=SUPERVISOR)
    assert r.json()["status"] == "executed"


def test_domain_errors_map_to_status_codes(content):
    r = client.post(
        "/api/moderation/reports", json={**NOTICE, "legal_reference": None}, headers=REPORTER
    )
    assert r.status_code == 422
    assert r.json()["errors"] == {"legal_reference": "required for illegal content reports"}

    r = client.post("/api/moderation/reports/missing/claim", json={}, headers=MODERATOR)
    assert r.status_code == 404

    report = _submit()
    r = client.post(f"/api/moderation/reports/{report['report_id']}/claim", json={}, headers=REPORTER)
    assert r.status_code == 403
    assert r.json()["code"] == "authorization_error"


def test_appeal_round_trip(content):
    _, decision = _executed_decision()

    r = client.post(
        "/api/appeals",
        json={"decision_id": decision["id"], "appeal_type": "content_removal", "counter_arguments": "Genuine product"},
        headers=AUTHOR,
    )
    assert r.status_code == 201
    appeal = r.json()

    r = client.post(f"/api/appeals/{appeal['id']}/review", headers=MODERATOR)
    assert r.status_code == 403

    client.post(f"/api/appeals/{appeal['id']}/review", headers=OTHER_MODERATOR)
    r = client.post(
        f"/api/appeals/{appeal['id']}/resolve",
        json={"decision": "upheld", "reasoning": "Seller showed a licence"},
        headers=OTHER_MODERATOR,
    )
    assert r.json()["status"] == "resolved"
    r = client.get(f"/api/moderation/decisions/{decision['id']}", headers=SUPERVISOR)
    assert r.json()["status"] == "reversed"


def test_ods_case_update_accepts_offset_timestamps(content):
    _, decision = _executed_decision()
    appeal = client.post(
        "/api/appeals",
        json={"decision_id": decision["id"], "appeal_type": "content_removal", "counter_arguments": "Licensed pharmacy"},
        headers=AUTHOR,
    ).json()
    body = client.post(
        "/api/appeals/ods-bodies",
        json={"name": "Appeals Centre Europe", "jurisdictions": ["eu"]},
        headers=ADMIN,
    ).json()
    escalation = client.post(
        f"/api/appeals/{appeal['id']}/escalate", json={"ods_body_id": body["id"]}, headers=AUTHOR
    ).json()
    url = f"/api/appeals/ods-escalations/{escalation['id']}"

    r = client.patch(url, json={"actual_resolution_date": "2020-01-01T00:00:00Z"}, headers=MODERATOR)
    assert r.status_code == 422

    r = client.patch(
        url,
        json={"status": "resolved", "actual_resolution_date": "2099-01-01T02:00:00+02:00"},
        headers=MODERATOR,
    )
    assert r.status_code == 200, r.text
    assert r.json()["actual_resolution_date"] == "2099-01-01T00:00:00"

    r = client.patch(url, json={"actual_resolution_date": "2099-06-30T12:00:00Z"}, headers=MODERATOR)
    assert r.json()["actual_resolution_date"] == "2099-06-30T12:00:00"

def test_audit_history_verifies(content):
    report, _ = _executed_decision()
    r = client.get(f"/api/audit/targets/content_report/{report['report_id']}/events", headers=SUPERVISOR)
    events = r.json()["events"]
    assert [e["event_type"] for e in events] == ["report_submitted", "report_claimed"]
    assert "signature" not in events[0]

    r = client.get(f"/api/audit/events/{events[0]['id']}/verify", headers=MODERATOR)
    assert r.status_code == 200
    assert r.json()["valid"] is True
    assert r.json()["detail"] == "ok"

    r = client.get(f"/api/audit/events/{events[0]['id']}/verify", headers=REPORTER)
    assert r.status_code == 403


def test_sla_endpoints_are_role_gated(content):
    _executed_decision()
    assert client.get("/api/sla/compliance-report", headers=MODERATOR).status_code == 403

    r = client.get("/api/sla/compliance-report", headers=SUPERVISOR)
    assert r.status_code == 200
    assert r.json()["reports"]["resolved"] == 1

    r = client.get("/api/sla/pending-breach?within_minutes=2880", headers=MODERATOR)
    assert r.json() == {"reports": []}
    assert client.get("/api/sla/alerts", headers=SUPERVISOR).json() == {"alerts": []}


def test_notification_callback_is_system_only(content):
    r = client.post(
        "/api/moderation/notifications/any/delivery", json={"success": True}, headers=MODERATOR
    )
    assert r.status_code == 403
    system = _auth("delivery-service", "system")
    r = client.post("/api/moderation/notifications/any/delivery", json={"success": True}, headers=system)
    assert r.status_code == 404

