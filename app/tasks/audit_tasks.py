from dataclasses import asdict
from datetime import timedelta
from typing import Dict, List

from asgiref.sync import async_to_sync
from sqlalchemy import select

from app.core.celery import celery_app
from app.core.database import get_db
from app.core.exceptions import IntegrityViolation, InvalidStateError
from app.core.redis import sweep_lock
from app.domains.audit import repository
from app.domains.audit.entities import PartitionStatus
from app.domains.audit.models import AuditPartition
from app.domains.audit.service import audit_ledger
from app.domains.audit.signing import signing_keys
from app.shared.utils import clock
from app.shared.utils.logger import get_logger

logger = get_logger(__name__)


async def deactivate_keys() -> List[str]:
    async with get_db() as db:
        return await signing_keys.deactivate_expired_keys(db)


async def ensure_partitions() -> List[str]:
    """Current and next month's partitions exist before events arrive."""
    now = clock.utcnow()
    async with get_db() as db:
        current = await audit_ledger.create_partition(db, now)
        _, end = repository.month_bounds(now)
        upcoming = await audit_ledger.create_partition(db, end)
    return [current.id, upcoming.id]


async def seal_and_expire_partitions() -> Dict[str, List[str]]:
    """
    Seal every closed month and expire sealed months past retention.

    Each partition runs in its own transaction; one failure does not stop
    the others and is left for the integrity check to report.
    """
    outcome = {"sealed": [], "expired": [], "failed": []}
    async with sweep_lock("partition_maintenance", timeout=3600) as acquired:
        if not acquired:
            return outcome

        async with get_db() as db:
            due = [p.id for p in await audit_ledger.find_unsealed_partitions(db)]
        for partition_id in due:
            try:
                async with get_db() as db:
                    await audit_ledger.seal_partition(db, partition_id)
                outcome["sealed"].append(partition_id)
            except (IntegrityViolation, InvalidStateError) as e:
                logger.error(f"Sealing {partition_id} failed: {e}")
                outcome["failed"].append(partition_id)

        async with get_db() as db:
            result = await db.execute(
                select(AuditPartition.id).filter(AuditPartition.status == PartitionStatus.SEALED.value)
            )
            sealed = list(result.scalars().all())
        for partition_id in sealed:
            try:
                async with get_db() as db:
                    await audit_ledger.expire_partition(db, partition_id)
                outcome["expired"].append(partition_id)
            except InvalidStateError:
                # still within retention
                continue
    return outcome


async def integrity_check(window_hours: int = 24) -> dict:
    async with get_db() as db:
        report = await audit_ledger.run_integrity_check(db, timedelta(hours=window_hours))
    payload = asdict(report)
    payload["status"] = report.status.value
    payload["checked_at"] = report.checked_at.isoformat()
    return payload


@celery_app.task
def deactivate_expired_signing_keys():
    return async_to_sync(deactivate_keys)()


@celery_app.task
def ensure_upcoming_partitions():
    return async_to_sync(ensure_partitions)()


@celery_app.task
def seal_closed_partitions():
    return async_to_sync(seal_and_expire_partitions)()


@celery_app.task
def run_integrity_check(window_hours: int = 24):
    return async_to_sync(integrity_check)(window_hours)
