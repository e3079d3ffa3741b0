# app/domains/sla/service.py
"""
SLA monitoring: compares open reports against their deadline and raises
alerts at the configured elapsed-window thresholds (75 / 90 / 100 %).

Alerts are unique per (report, level) and incidents per report, both written
with ON CONFLICT DO NOTHING, so a sweep can be re-run or overlap with itself
without producing duplicates.
"""
import uuid
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.domains.audit.service import AuditLedger, audit_ledger
from app.domains.auth.entities import SYSTEM_ACTOR, Actor, Role
from app.domains.auth.service import require_role
from app.domains.moderation import repository as moderation_repository
from app.domains.reports import repository as report_repository
from app.domains.reports.models import ContentReport
from app.domains.sla.entities import (
    SEVERITY_RANK,
    SweepResult,
    alert_level_for,
    alert_severity_for,
    elapsed_percent,
    incident_severity,
)
from app.domains.sla.models import SlaAlert, SlaIncident
from app.shared.database.upsert import dialect_insert
from app.shared.schemas.events import (
    SlaAlertAcknowledged,
    SlaAlertRaised,
    SlaBreachEscalated,
    SlaIncidentClosed,
)
from app.shared.utils import clock
from app.shared.utils.logger import get_logger

logger = get_logger(__name__)


class SlaMonitor:
    def __init__(self, ledger: Optional[AuditLedger] = None):
        self.ledger = ledger or audit_ledger

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or clock.utcnow()
        result = SweepResult()
        thresholds = sorted(settings.SLA_ALERT_THRESHOLDS)

        async with get_db() as db:
            for report in await report_repository.open_reports(db):
                result.reports_checked += 1
                percent = elapsed_percent(report.submitted_at, report.sla_deadline, now)
                crossed = [t for t in thresholds if percent >= t]
                if not crossed:
                    continue

                claim = await moderation_repository.get_claim(db, report.id)
                assignee = claim.moderator_id if claim is not None and claim.expires_at > now else None
                for threshold in crossed:
                    if await self._raise_alert(db, report, threshold, percent, assignee, now):
                        result.alerts_created += 1
                if percent >= 100 and await self._open_incident(db, report, now):
                    result.incidents_opened += 1

        if result.alerts_created or result.incidents_opened:
            logger.info(
                f"SLA sweep: {result.reports_checked} open, {result.alerts_created} alerts, "
                f"{result.incidents_opened} incidents"
            )
        return result

    async def _raise_alert(
        self,
        db: AsyncSession,
        report: ContentReport,
        threshold: int,
        percent: float,
        assignee: Optional[str],
        now: datetime,
    ) -> bool:
        table = SlaAlert.__table__
        level = alert_level_for(threshold)
        severity = alert_severity_for(threshold)
        stmt = (
            dialect_insert(db, table)
            .values(
                id=str(uuid.uuid4()),
                report_id=report.id,
                alert_level=level,
                threshold_percent=threshold,
                severity=severity,
                elapsed_percent=round(percent, 2),
                sla_deadline=report.sla_deadline,
                assigned_moderator_id=assignee,
                created_at=now,
            )
            .on_conflict_do_nothing(index_elements=["report_id", "alert_level"])
            .returning(table.c.id)
        )
        alert_id = (await db.execute(stmt)).scalar_one_or_none()
        if alert_id is None:
            return False

        await self.ledger.record(
            db,
            SlaAlertRaised(alert_id=alert_id, alert_level=level, severity=severity),
            actor=SYSTEM_ACTOR,
            target_type="content_report",
            target_id=report.id,
            action="sla_alert",
            idempotency_key=f"sla_alert:{report.id}:{level}",
        )
        log = logger.error if threshold >= 100 else logger.warning
        log(f"SLA {level} for report {report.id} ({percent:.0f}% of window elapsed)")
        return True

    async def _open_incident(self, db: AsyncSession, report: ContentReport, now: datetime) -> bool:
        table = SlaIncident.__table__
        breach_hours = round(max((now - report.sla_deadline).total_seconds(), 0) / 3600, 2)
        severity = incident_severity(report.priority, breach_hours)
        recipients = list(settings.SLA_ESCALATION_RECIPIENTS)
        stmt = (
            dialect_insert(db, table)
            .values(
                id=str(uuid.uuid4()),
                report_id=report.id,
                breached_at=report.sla_deadline,
                breach_duration_hours=breach_hours,
                severity=severity,
                escalated_to=recipients,
                status="open",
                corrective_actions=[],
                created_at=now,
            )
            .on_conflict_do_nothing(index_elements=["report_id"])
            .returning(table.c.id)
        )
        incident_id = (await db.execute(stmt)).scalar_one_or_none()
        if incident_id is None:
            return False

        await self.ledger.record(
            db,
            SlaBreachEscalated(
                incident_id=incident_id,
                breach_duration_hours=breach_hours,
                severity=severity,
                escalated_to=recipients,
            ),
            actor=SYSTEM_ACTOR,
            target_type="content_report",
            target_id=report.id,
            action="sla_breach",
            idempotency_key=f"sla_incident:{report.id}",
        )
        return True

    async def acknowledge_alert(self, actor: Actor, alert_id: str) -> SlaAlert:
        require_role(actor, Role.SUPERVISOR)
        async with get_db() as db:
            alert = await db.get(SlaAlert, alert_id)
            if alert is None:
                raise NotFoundError(f"SLA alert {alert_id} not found")
            if alert.acknowledged_at is not None:
                return alert
            alert.acknowledged_at = clock.utcnow()
            alert.acknowledged_by = actor.id
            await self.ledger.record(
                db,
                SlaAlertAcknowledged(report_id=alert.report_id),
                actor=actor,
                target_type="sla_alert",
                target_id=alert.id,
                action="acknowledge",
            )
        return alert

    async def unacknowledged_alerts(
        self, older_than: Optional[timedelta] = None, min_severity: str = "high"
    ) -> List[SlaAlert]:
        """Unacknowledged alerts at or above min_severity, oldest first."""
        if min_severity not in SEVERITY_RANK:
            raise ValidationError({"min_severity": f"unknown severity {min_severity}"})
        wanted = [s for s, rank in SEVERITY_RANK.items() if rank >= SEVERITY_RANK[min_severity]]
        query = select(SlaAlert).filter(
            SlaAlert.acknowledged_at.is_(None), SlaAlert.severity.in_(wanted)
        )
        if older_than is not None:
            query = query.filter(SlaAlert.created_at <= clock.utcnow() - older_than)
        async with get_db() as db:
            result = await db.execute(query.order_by(SlaAlert.created_at))
            return list(result.scalars().all())

    async def unacknowledged_alerts_for_moderator(self, moderator_id: str) -> List[SlaAlert]:
        async with get_db() as db:
            result = await db.execute(
                select(SlaAlert)
                .filter(
                    SlaAlert.assigned_moderator_id == moderator_id,
                    SlaAlert.acknowledged_at.is_(None),
                )
                .order_by(SlaAlert.created_at)
            )
            return list(result.scalars().all())

    async def reports_pending_sla_breach(self, within: timedelta = timedelta(hours=1)) -> List[ContentReport]:
        async with get_db() as db:
            return await report_repository.reports_due_before(db, clock.utcnow() + within)

    async def close_incident(
        self, actor: Actor, incident_id: str, root_cause: str, corrective_actions: Iterable[str] = ()
    ) -> SlaIncident:
        require_role(actor, Role.SUPERVISOR)
        if not (root_cause or "").strip():
            raise ValidationError({"root_cause": "required to close an incident"})
        async with get_db() as db:
            incident = await db.get(SlaIncident, incident_id)
            if incident is None:
                raise NotFoundError(f"SLA incident {incident_id} not found")
            if incident.status == "closed":
                raise InvalidStateError(f"SLA incident {incident_id} is already closed")
            incident.status = "closed"
            incident.root_cause = root_cause.strip()
            incident.corrective_actions = list(corrective_actions)
            incident.closed_at = clock.utcnow()
            incident.closed_by = actor.id
            await self.ledger.record(
                db,
                SlaIncidentClosed(root_cause=incident.root_cause),
                actor=actor,
                target_type="sla_incident",
                target_id=incident.id,
                action="close",
            )
        return incident


sla_monitor = SlaMonitor()
