from dataclasses import asdict

from asgiref.sync import async_to_sync

from app.core.celery import celery_app
from app.core.redis import sweep_lock
from app.domains.transparency.service import ExportBatchResult, sor_export_queue


async def run_sor_export() -> ExportBatchResult:
    async with sweep_lock("sor_export", timeout=290) as acquired:
        if not acquired:
            return ExportBatchResult()
        return await sor_export_queue.process_pending()


@celery_app.task
def export_statements_of_reasons():
    """Submit due statements of reasons to the DSA Transparency Database"""
    return asdict(async_to_sync(run_sor_export)())
