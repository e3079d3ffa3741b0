# app/domains/sla/reporting.py
from datetime import date, datetime, time, timedelta
from typing import Any, Dict

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.domains.appeals.models import Appeal
from app.domains.audit.models import AuditPartition
from app.domains.audit.service import audit_ledger
from app.domains.moderation.models import ModerationDecision
from app.domains.reports.models import ContentReport
from app.domains.sla.models import SlaAlert, SlaIncident
from app.domains.transparency.service import sor_export_queue


async def _grouped(db: AsyncSession, column, *criteria) -> Dict[str, int]:
    result = await db.execute(select(column, func.count()).filter(*criteria).group_by(column))
    return {key: count for key, count in result.all()}


async def _count(db: AsyncSession, model, *criteria) -> int:
    result = await db.execute(select(func.count()).select_from(model).filter(*criteria))
    return result.scalar_one()


async def compliance_report(day: date) -> Dict[str, Any]:
    """
    Daily compliance snapshot for the given UTC day.

    SLA compliance rate is computed over reports resolved that day; a report
    counts as compliant when resolved_at <= sla_deadline. Rates are None when
    there is nothing to measure.
    """
    start = datetime.combine(day, time.min)
    end = start + timedelta(days=1)

    async with get_db() as db:
        submitted = await _count(
            db, ContentReport, ContentReport.submitted_at >= start, ContentReport.submitted_at < end
        )
        by_lane = await _grouped(
            db, ContentReport.sla_lane, ContentReport.submitted_at >= start, ContentReport.submitted_at < end
        )

        resolved_window = (ContentReport.resolved_at >= start, ContentReport.resolved_at < end)
        resolved = await _count(db, ContentReport, *resolved_window)
        on_time = await _count(
            db, ContentReport, *resolved_window, ContentReport.resolved_at <= ContentReport.sla_deadline
        )

        decisions = await _grouped(
            db,
            ModerationDecision.action,
            ModerationDecision.created_at >= start,
            ModerationDecision.created_at < end,
        )
        alerts = await _grouped(db, SlaAlert.alert_level, SlaAlert.created_at >= start, SlaAlert.created_at < end)
        incidents_opened = await _count(
            db, SlaIncident, SlaIncident.created_at >= start, SlaIncident.created_at < end
        )
        incidents_open = await _count(db, SlaIncident, SlaIncident.status == "open")

        appeals_filed = await _count(db, Appeal, Appeal.submitted_at >= start, Appeal.submitted_at < end)
        appeal_outcomes = await _grouped(
            db, Appeal.decision, Appeal.resolved_at >= start, Appeal.resolved_at < end
        )

        sor_status = await sor_export_queue.status_counts(db)

        verifications = await audit_ledger.verify_range(db, start, end)
        valid = sum(1 for v in verifications if v.valid)

        partitions = await _grouped(db, AuditPartition.status)

    return {
        "date": day.isoformat(),
        "reports": {"submitted": submitted, "by_lane": by_lane, "resolved": resolved},
        "decisions_by_action": decisions,
        "sla": {
            "resolved_on_time": on_time,
            "compliance_rate": round(on_time / resolved, 4) if resolved else None,
            "alerts": alerts,
            "incidents_opened": incidents_opened,
            "incidents_open": incidents_open,
        },
        "appeals": {"filed": appeals_filed, "outcomes": appeal_outcomes},
        "statements_of_reasons": sor_status,
        "audit": {
            "events_checked": len(verifications),
            "signature_verification_rate": round(valid / len(verifications), 4) if verifications else None,
            "partitions": partitions,
        },
    }
