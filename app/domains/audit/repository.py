# app/domains/audit/repository.py
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domains.audit.models import AuditEventRecord, AuditPartition, LegalHold, PartitionManifest
from app.shared.database.upsert import dialect_insert
from app.shared.utils import clock


def partition_id_for(ts: datetime) -> str:
    return f"audit_events_{ts:%Y%m}"


def month_bounds(ts: datetime):
    start = datetime(ts.year, ts.month, 1)
    if ts.month == 12:
        end = datetime(ts.year + 1, 1, 1)
    else:
        end = datetime(ts.year, ts.month + 1, 1)
    return start, end


async def get_event(db: AsyncSession, event_id: str) -> Optional[AuditEventRecord]:
    result = await db.execute(select(AuditEventRecord).filter(AuditEventRecord.id == event_id))
    return result.scalar_one_or_none()


async def get_event_by_idempotency_key(db: AsyncSession, key: str) -> Optional[AuditEventRecord]:
    result = await db.execute(
        select(AuditEventRecord).filter(AuditEventRecord.idempotency_key == key)
    )
    return result.scalar_one_or_none()


async def events_in_partition(db: AsyncSession, partition_id: str) -> List[AuditEventRecord]:
    result = await db.execute(
        select(AuditEventRecord)
        .filter(AuditEventRecord.partition_id == partition_id)
        .order_by(AuditEventRecord.seq)
    )
    return list(result.scalars().all())


async def events_between(db: AsyncSession, start: datetime, end: datetime) -> List[AuditEventRecord]:
    result = await db.execute(
        select(AuditEventRecord)
        .filter(AuditEventRecord.timestamp >= start, AuditEventRecord.timestamp < end)
        .order_by(AuditEventRecord.timestamp, AuditEventRecord.seq)
    )
    return list(result.scalars().all())


async def events_for_target(db: AsyncSession, target_type: str, target_id: str) -> List[AuditEventRecord]:
    result = await db.execute(
        select(AuditEventRecord)
        .filter(
            AuditEventRecord.target_type == target_type,
            AuditEventRecord.target_id == target_id,
        )
        .order_by(AuditEventRecord.timestamp, AuditEventRecord.seq)
    )
    return list(result.scalars().all())


async def get_partition(db: AsyncSession, partition_id: str) -> Optional[AuditPartition]:
    result = await db.execute(select(AuditPartition).filter(AuditPartition.id == partition_id))
    return result.scalar_one_or_none()


async def ensure_partition(db: AsyncSession, ts: datetime) -> AuditPartition:
    partition_id = partition_id_for(ts)
    partition = await get_partition(db, partition_id)
    if partition is not None:
        return partition

    start, end = month_bounds(ts)
    now = clock.utcnow()
    stmt = (
        dialect_insert(db, AuditPartition.__table__)
        .values(id=partition_id, range_start=start, range_end=end, status="open", created_at=now)
        .on_conflict_do_nothing(index_elements=["id"])
    )
    await db.execute(stmt)
    return await get_partition(db, partition_id)


async def get_manifest(db: AsyncSession, partition_id: str) -> Optional[PartitionManifest]:
    result = await db.execute(
        select(PartitionManifest).filter(PartitionManifest.partition_id == partition_id)
    )
    return result.scalar_one_or_none()


async def unsealed_partitions(db: AsyncSession, before: datetime) -> List[AuditPartition]:
    result = await db.execute(
        select(AuditPartition)
        .filter(AuditPartition.status == "open", AuditPartition.range_end <= before)
        .order_by(AuditPartition.range_start)
    )
    return list(result.scalars().all())


async def max_retention_in_partition(db: AsyncSession, partition_id: str) -> Optional[datetime]:
    result = await db.execute(
        select(func.max(AuditEventRecord.retention_until)).filter(
            AuditEventRecord.partition_id == partition_id
        )
    )
    return result.scalar_one_or_none()


async def active_legal_hold(db: AsyncSession, target_type: str, target_id: str) -> Optional[LegalHold]:
    result = await db.execute(
        select(LegalHold).filter(
            LegalHold.target_type == target_type,
            LegalHold.target_id == target_id,
            LegalHold.released_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def held_targets_in_partition(db: AsyncSession, partition_id: str) -> List[Tuple[str, str]]:
    result = await db.execute(
        select(AuditEventRecord.target_type, AuditEventRecord.target_id)
        .join(
            LegalHold,
            and_(
                LegalHold.target_type == AuditEventRecord.target_type,
                LegalHold.target_id == AuditEventRecord.target_id,
            ),
        )
        .filter(AuditEventRecord.partition_id == partition_id, LegalHold.released_at.is_(None))
        .distinct()
        .order_by(AuditEventRecord.target_type, AuditEventRecord.target_id)
    )
    return [tuple(row) for row in result.all()]
