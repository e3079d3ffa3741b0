# app/domains/transparency/service.py
"""
Statement-of-reasons export to the Transparency Database.

Each statement gets exactly one queue row keyed by statement id; the
idempotency key travels with every submission so a retried POST cannot create
a second external record. Transient failures back off exponentially and land
in the dead-letter state after SOR_EXPORT_MAX_ATTEMPTS.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import PermanentExternalError, TransientExternalError
from app.domains.audit.service import AuditLedger, audit_ledger
from app.domains.auth.entities import SYSTEM_ACTOR
from app.domains.moderation.models import ModerationDecision, StatementOfReasons
from app.domains.reports.models import ContentReport
from app.domains.transparency.client import TransparencyDbClient, transparency_client
from app.domains.transparency.models import SorExportItem
from app.shared.database.upsert import dialect_insert
from app.shared.schemas.events import SorSubmitted
from app.shared.utils import clock
from app.shared.utils.logger import get_logger

logger = get_logger(__name__)

DUE_STATUSES = ("pending", "retry")


@dataclass
class ExportBatchResult:
    submitted: int = 0
    retried: int = 0
    failed: int = 0
    dead_lettered: int = 0


def build_payload(statement: StatementOfReasons, decision: ModerationDecision, report: Optional[ContentReport]) -> Dict:
    """Redacted statement: no user identifiers, no free-text from reporters or moderators."""
    return {
        "puid": statement.id,
        "decision_visibility": decision.action,
        "decision_ground": statement.decision_ground,
        "illegal_content_legal_ground": statement.legal_reference,
        "category": list(statement.category or []),
        "content_type": statement.content_type,
        "territorial_scope": list(statement.territorial_scope or []),
        "automated_detection": statement.automated_detection,
        "automated_decision": statement.automated_decision,
        "source_type": "trusted_flagger" if report is not None and report.trusted_flagger else "notice",
        "redress": list(statement.redress or []),
        "application_date": (decision.executed_at or decision.created_at).date().isoformat(),
    }


def backoff_for(attempts: int) -> timedelta:
    return timedelta(seconds=settings.SOR_EXPORT_BACKOFF_SECONDS * (2 ** max(attempts - 1, 0)))


class SorExportQueue:
    def __init__(self, client: Optional[TransparencyDbClient] = None, ledger: Optional[AuditLedger] = None):
        self.client = client or transparency_client
        self.ledger = ledger or audit_ledger

    async def enqueue(self, db: AsyncSession, statement: StatementOfReasons) -> SorExportItem:
        table = SorExportItem.__table__
        now = clock.utcnow()
        stmt = (
            dialect_insert(db, table)
            .values(
                id=str(uuid.uuid4()),
                statement_id=statement.id,
                decision_id=statement.decision_id,
                idempotency_key=f"sor:{statement.id}",
                status="pending",
                attempts=0,
                next_attempt_at=now,
                created_at=now,
            )
            .on_conflict_do_nothing(index_elements=["statement_id"])
        )
        await db.execute(stmt)
        result = await db.execute(select(SorExportItem).filter(SorExportItem.statement_id == statement.id))
        return result.scalar_one()

    async def due_item_ids(self, db: AsyncSession, limit: int) -> List[str]:
        result = await db.execute(
            select(SorExportItem.id)
            .filter(SorExportItem.status.in_(DUE_STATUSES), SorExportItem.next_attempt_at <= clock.utcnow())
            .order_by(SorExportItem.next_attempt_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def process_pending(
        self, client: Optional[TransparencyDbClient] = None, batch_size: Optional[int] = None
    ) -> ExportBatchResult:
        client = client or self.client
        outcome = ExportBatchResult()
        if not client.configured:
            logger.info("Transparency DB not configured; SoR export skipped")
            return outcome

        async with get_db() as db:
            item_ids = await self.due_item_ids(db, batch_size or settings.SOR_EXPORT_BATCH_SIZE)

        for item_id in item_ids:
            try:
                async with get_db() as db:
                    item = await db.get(SorExportItem, item_id)
                    if item is None or item.status not in DUE_STATUSES:
                        continue
                    await self._submit_one(db, client, item, outcome)
            except Exception as e:
                # the item's transaction rolled back; charge the attempt in a fresh one
                logger.error(f"SoR export item {item_id} crashed: {e!r}")
                await self._charge_failed_attempt(item_id, f"unexpected error: {e!r}", outcome)
        return outcome

    async def _charge_failed_attempt(self, item_id: str, message: str, outcome: ExportBatchResult) -> None:
        async with get_db() as db:
            item = await db.get(SorExportItem, item_id)
            if item is None or item.status not in DUE_STATUSES:
                return
            item.attempts = (item.attempts or 0) + 1
            self._schedule_retry(item, message, clock.utcnow(), outcome)

    def _schedule_retry(
        self, item: SorExportItem, message: str, now: datetime, outcome: ExportBatchResult
    ) -> None:
        item.last_error = message
        if item.attempts >= settings.SOR_EXPORT_MAX_ATTEMPTS:
            item.status = "dlq"
            outcome.dead_lettered += 1
            logger.error(f"SoR {item.statement_id} moved to DLQ after {item.attempts} attempts: {message}")
        else:
            item.status = "retry"
            item.next_attempt_at = now + backoff_for(item.attempts)
            outcome.retried += 1
            logger.warning(f"SoR {item.statement_id} export failed (attempt {item.attempts}): {message}")

    async def _submit_one(
        self, db: AsyncSession, client: TransparencyDbClient, item: SorExportItem, outcome: ExportBatchResult
    ) -> None:
        statement = await db.get(StatementOfReasons, item.statement_id)
        decision = await db.get(ModerationDecision, item.decision_id)
        report = await db.get(ContentReport, decision.report_id) if decision else None
        now = clock.utcnow()
        item.attempts = (item.attempts or 0) + 1

        try:
            external_id = await client.submit_statement(
                build_payload(statement, decision, report), item.idempotency_key
            )
        except TransientExternalError as e:
            self._schedule_retry(item, e.message, now, outcome)
            return
        except PermanentExternalError as e:
            item.status = "failed"
            item.last_error = e.message
            outcome.failed += 1
            logger.error(f"SoR {item.statement_id} rejected by Transparency DB: {e.message}")
            return

        item.status = "submitted"
        item.transparency_db_id = external_id
        item.submitted_at = now
        item.response = {"uuid": external_id}
        statement.transparency_db_id = external_id
        statement.transparency_submitted_at = now
        await self.ledger.record(
            db,
            SorSubmitted(transparency_db_id=external_id, attempts=item.attempts),
            actor=SYSTEM_ACTOR,
            target_type="statement_of_reasons",
            target_id=statement.id,
            action="export",
            idempotency_key=f"sor_submitted:{statement.id}",
        )
        outcome.submitted += 1
        logger.info(f"SoR {statement.id} submitted as {external_id}")

    async def status_counts(self, db: AsyncSession) -> Dict[str, int]:
        result = await db.execute(
            select(SorExportItem.status, func.count()).group_by(SorExportItem.status)
        )
        return {status: count for status, count in result.all()}


sor_export_queue = SorExportQueue()
