# app/domains/sla/api.py
from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.domains.auth.dependencies import get_current_actor
from app.domains.auth.entities import Actor, Role
from app.domains.auth.service import require_role
from app.domains.sla.reporting import compliance_report
from app.domains.sla.service import sla_monitor
from app.shared.utils import clock

router = APIRouter()


class CloseIncidentRequest(BaseModel):
    root_cause: str
    corrective_actions: List[str] = Field(default_factory=list)


def _alert_dict(alert) -> dict:
    return {
        "id": alert.id,
        "report_id": alert.report_id,
        "alert_level": alert.alert_level,
        "severity": alert.severity,
        "elapsed_percent": alert.elapsed_percent,
        "sla_deadline": alert.sla_deadline.isoformat(),
        "assigned_moderator_id": alert.assigned_moderator_id,
        "created_at": alert.created_at.isoformat(),
        "acknowledged_at": alert.acknowledged_at.isoformat() if alert.acknowledged_at else None,
    }


@router.get("/alerts")
async def list_unacknowledged_alerts(
    min_severity: str = "high",
    older_than_minutes: Optional[int] = Query(default=None, ge=0),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, Role.SUPERVISOR)
    older_than = timedelta(minutes=older_than_minutes) if older_than_minutes is not None else None
    alerts = await sla_monitor.unacknowledged_alerts(older_than, min_severity)
    return {"alerts": [_alert_dict(a) for a in alerts]}


@router.get("/alerts/mine")
async def my_alerts(actor: Actor = Depends(get_current_actor)):
    alerts = await sla_monitor.unacknowledged_alerts_for_moderator(actor.id)
    return {"alerts": [_alert_dict(a) for a in alerts]}


@router.post("/alerts/{alert_id}/acknowledge")
async def acknowledge_alert(alert_id: str, actor: Actor = Depends(get_current_actor)):
    return _alert_dict(await sla_monitor.acknowledge_alert(actor, alert_id))


@router.get("/pending-breach")
async def pending_breach(
    within_minutes: int = Query(default=60, ge=0), actor: Actor = Depends(get_current_actor)
):
    require_role(actor, Role.MODERATOR, Role.SUPERVISOR)
    reports = await sla_monitor.reports_pending_sla_breach(timedelta(minutes=within_minutes))
    return {
        "reports": [
            {
                "id": r.id,
                "priority": r.priority,
                "status": r.status,
                "sla_deadline": r.sla_deadline.isoformat(),
            }
            for r in reports
        ]
    }


@router.post("/incidents/{incident_id}/close")
async def close_incident(
    incident_id: str, request: CloseIncidentRequest, actor: Actor = Depends(get_current_actor)
):
    incident = await sla_monitor.close_incident(
        actor, incident_id, request.root_cause, request.corrective_actions
    )
    return {
        "id": incident.id,
        "report_id": incident.report_id,
        "status": incident.status,
        "root_cause": incident.root_cause,
        "closed_at": incident.closed_at.isoformat(),
    }


@router.get("/compliance-report")
async def get_compliance_report(day: Optional[date] = None, actor: Actor = Depends(get_current_actor)):
    """Ежедневный отчет о соблюдении DSA"""
    require_role(actor, Role.SUPERVISOR)
    return await compliance_report(day or clock.utcnow().date())
