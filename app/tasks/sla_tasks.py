from dataclasses import asdict

from asgiref.sync import async_to_sync

from app.core.celery import celery_app
from app.core.redis import sweep_lock
from app.domains.sla.entities import SweepResult
from app.domains.sla.service import sla_monitor


async def run_sla_sweep() -> SweepResult:
    async with sweep_lock("sla_sweep") as acquired:
        if not acquired:
            return SweepResult(skipped=True, reason="sweep already running")
        return await sla_monitor.sweep()


@celery_app.task
def sweep_sla_deadlines():
    return asdict(async_to_sync(run_sla_sweep)())
