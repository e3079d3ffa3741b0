# app/domains/reports/repository.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domains.reports.entities import OPEN_STATUSES, ReportStatus
from app.domains.reports.models import ContentReport, ContentSnapshot, TrustedFlagger


async def get_report(db: AsyncSession, report_id: str) -> Optional[ContentReport]:
    result = await db.execute(select(ContentReport).filter(ContentReport.id == report_id))
    return result.scalar_one_or_none()


async def find_recent_snapshot(db: AsyncSession, snapshot_hash: str, since: datetime) -> Optional[ContentSnapshot]:
    result = await db.execute(
        select(ContentSnapshot)
        .filter(ContentSnapshot.snapshot_hash == snapshot_hash, ContentSnapshot.captured_at >= since)
        .order_by(ContentSnapshot.captured_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_original_report(
    db: AsyncSession, content_hash: str, reporter_id: str, since: datetime
) -> Optional[ContentReport]:
    """Earliest non-duplicate report by the same reporter on the same content state."""
    result = await db.execute(
        select(ContentReport)
        .filter(
            ContentReport.content_hash == content_hash,
            ContentReport.reporter_id == reporter_id,
            ContentReport.submitted_at >= since,
            ContentReport.status != ReportStatus.DUPLICATE.value,
        )
        .order_by(ContentReport.submitted_at, ContentReport.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def count_reports_for_content(db: AsyncSession, content_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(ContentReport)
        .filter(
            ContentReport.content_id == content_id,
            ContentReport.status != ReportStatus.DUPLICATE.value,
        )
    )
    return result.scalar_one()


async def open_reports(db: AsyncSession) -> List[ContentReport]:
    result = await db.execute(
        select(ContentReport)
        .filter(ContentReport.status.in_(OPEN_STATUSES))
        .order_by(ContentReport.sla_deadline)
    )
    return list(result.scalars().all())


async def reports_due_before(db: AsyncSession, deadline: datetime) -> List[ContentReport]:
    result = await db.execute(
        select(ContentReport)
        .filter(ContentReport.status.in_(OPEN_STATUSES), ContentReport.sla_deadline <= deadline)
        .order_by(ContentReport.sla_deadline, ContentReport.priority.desc())
    )
    return list(result.scalars().all())


async def get_trusted_flagger(db: AsyncSession, user_id: str) -> Optional[TrustedFlagger]:
    result = await db.execute(select(TrustedFlagger).filter(TrustedFlagger.user_id == user_id))
    return result.scalar_one_or_none()
