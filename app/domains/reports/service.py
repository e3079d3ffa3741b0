# app/domains/reports/service.py
import json
import uuid
from datetime import timedelta
from typing import Dict, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from app.domains.audit.service import AuditLedger, audit_ledger
from app.domains.auth.entities import Actor, Role
from app.domains.auth.service import require_role
from app.domains.content.store import ContentStore, content_store
from app.domains.reports import classifier, repository
from app.domains.reports.entities import (
    ContentType,
    ReportStatus,
    ReportSubmission,
    ReportType,
    SubmissionResult,
    TrustedFlaggerStatus,
    can_advance,
)
from app.domains.reports.models import ContentReport, ContentSnapshot, TrustedFlagger
from app.shared.schemas.events import ReportSubmitted
from app.shared.utils import clock
from app.shared.utils.canonical import canonical_json, sha256_hex
from app.shared.utils.logger import get_logger

logger = get_logger(__name__)


def validate_submission(submission: ReportSubmission) -> Dict[str, str]:
    """Collect every field error at once; an empty dict means the notice is complete."""
    errors: Dict[str, str] = {}

    if not (submission.content_id or "").strip():
        errors["content_id"] = "required"
    if submission.content_type not in {c.value for c in ContentType}:
        errors["content_type"] = "must be one of post, comment, image, profile, other"
    if submission.report_type not in {t.value for t in ReportType}:
        errors["report_type"] = "must be illegal or policy_violation"
    if not (submission.explanation or "").strip():
        errors["explanation"] = "required"
    if submission.good_faith_declaration is not True:
        errors["good_faith_declaration"] = "must be confirmed"

    if submission.report_type == ReportType.ILLEGAL.value:
        if not (submission.jurisdiction or "").strip():
            errors["jurisdiction"] = "required for illegal content reports"
        if not (submission.legal_reference or "").strip():
            errors["legal_reference"] = "required for illegal content reports"
    if submission.jurisdiction and not (
        len(submission.jurisdiction.strip()) == 2 and submission.jurisdiction.strip().isalpha()
    ):
        errors["jurisdiction"] = "must be a two-letter country code"

    for url in submission.evidence_urls or []:
        if not str(url).startswith(("http://", "https://")):
            errors["evidence_urls"] = f"invalid URL: {url}"
            break
    return errors


def snapshot_hash(snapshot_data: Dict) -> str:
    return sha256_hex(canonical_json(snapshot_data))


class ReportIntakeService:
    def __init__(self, store: Optional[ContentStore] = None, ledger: Optional[AuditLedger] = None):
        self.store = store or content_store
        self.ledger = ledger or audit_ledger

    async def submit(self, actor: Actor, submission: ReportSubmission) -> SubmissionResult:
        errors = validate_submission(submission)
        if errors:
            logger.warning(f"Report from {actor.id} rejected: {sorted(errors)}")
            raise ValidationError(errors)

        async with get_db() as db:
            content = await self.store.read_for_snapshot(db, submission.content_id)
            if content is None:
                raise ValidationError({"content_id": "content not found"})
            # JSON-normalised so the stored payload hashes to the same value
            snapshot_data = json.loads(canonical_json(content))
            content_hash = snapshot_hash(snapshot_data)

            now = clock.utcnow()
            report_id = str(uuid.uuid4())
            snapshot = await self._capture_snapshot(db, submission.content_id, snapshot_data, content_hash, report_id, now)

            original = await repository.find_original_report(
                db, content_hash, actor.id, now - timedelta(hours=settings.DUPLICATE_WINDOW_HOURS)
            )

            flagger = await repository.get_trusted_flagger(db, actor.id)
            is_trusted = flagger is not None and flagger.status == TrustedFlaggerStatus.ACTIVE.value
            report_count = await repository.count_reports_for_content(db, submission.content_id) + 1
            classification = classifier.classify(submission, is_trusted, report_count)
            deadline = classifier.sla_deadline(classification.lane, now)

            status = ReportStatus.DUPLICATE if original is not None else ReportStatus.PENDING
            report = ContentReport(
                id=report_id,
                content_id=submission.content_id,
                content_type=submission.content_type,
                content_locator=submission.content_locator,
                content_hash=content_hash,
                reporter_id=actor.id,
                reporter_contact=submission.reporter_contact,
                trusted_flagger=is_trusted,
                trusted_flagger_id=flagger.id if is_trusted else None,
                report_type=submission.report_type,
                jurisdiction=submission.jurisdiction.strip().upper() if submission.jurisdiction else None,
                legal_reference=submission.legal_reference,
                explanation=submission.explanation.strip(),
                good_faith_declaration=True,
                evidence_urls=list(submission.evidence_urls or []),
                status=status.value,
                priority=classification.priority,
                priority_reason=classification.reason,
                sla_lane=classification.lane.value,
                submitted_at=now,
                sla_deadline=deadline,
                content_snapshot_id=snapshot.id,
                duplicate_of_report_id=original.id if original is not None else None,
            )
            db.add(report)
            if is_trusted:
                flagger.total_reports = (flagger.total_reports or 0) + 1
            await db.flush()

            await self.ledger.record(
                db,
                ReportSubmitted(
                    content_id=report.content_id,
                    content_type=report.content_type,
                    report_type=report.report_type,
                    priority=report.priority,
                    sla_deadline=report.sla_deadline,
                    trusted_flagger=is_trusted,
                    duplicate_of_report_id=report.duplicate_of_report_id,
                ),
                actor=actor,
                target_type="content_report",
                target_id=report.id,
                action="submit",
            )

        if original is not None:
            logger.info(f"Report {report_id} marked duplicate of {original.id}")
        else:
            logger.info(
                f"Report {report_id} accepted: priority {classification.priority}, "
                f"lane {classification.lane.value}, due {deadline.isoformat()}"
            )
        return SubmissionResult(
            report_id=report_id,
            status=status,
            priority=classification.priority,
            sla_deadline=deadline,
            content_hash=content_hash,
            duplicate_of_report_id=original.id if original is not None else None,
        )

    async def _capture_snapshot(
        self, db: AsyncSession, content_id: str, data: Dict, content_hash: str, report_id: str, now
    ) -> ContentSnapshot:
        since = now - timedelta(hours=settings.SNAPSHOT_REUSE_WINDOW_HOURS)
        snapshot = await repository.find_recent_snapshot(db, content_hash, since)
        if snapshot is not None:
            return snapshot
        snapshot = ContentSnapshot(
            id=str(uuid.uuid4()),
            content_id=content_id,
            snapshot_hash=content_hash,
            snapshot_data=data,
            captured_at=now,
            captured_by_report_id=report_id,
        )
        db.add(snapshot)
        await db.flush()
        return snapshot

    async def get_report(self, report_id: str) -> ContentReport:
        async with get_db() as db:
            report = await repository.get_report(db, report_id)
        if report is None:
            raise NotFoundError(f"Report {report_id} not found")
        return report

    # --- trusted flagger registry ---------------------------------------

    async def register_trusted_flagger(
        self,
        actor: Actor,
        user_id: str,
        organization_name: str,
        specialization: Iterable[str] = (),
        contact_email: Optional[str] = None,
    ) -> TrustedFlagger:
        require_role(actor, Role.ADMIN)
        async with get_db() as db:
            if await repository.get_trusted_flagger(db, user_id) is not None:
                raise ConflictError(f"User {user_id} is already registered as a trusted flagger")
            flagger = TrustedFlagger(
                id=str(uuid.uuid4()),
                user_id=user_id,
                organization_name=organization_name,
                contact_email=contact_email,
                specialization=sorted(set(specialization)),
                status=TrustedFlaggerStatus.ACTIVE.value,
                total_reports=0,
                upheld_decisions=0,
            )
            db.add(flagger)
        logger.info(f"Trusted flagger registered: {organization_name} ({user_id})")
        return flagger

    async def set_trusted_flagger_status(self, actor: Actor, user_id: str, status: TrustedFlaggerStatus) -> TrustedFlagger:
        require_role(actor, Role.ADMIN)
        async with get_db() as db:
            flagger = await repository.get_trusted_flagger(db, user_id)
            if flagger is None:
                raise NotFoundError(f"No trusted flagger registered for {user_id}")
            flagger.status = status.value
        return flagger

    async def is_trusted_flagger(self, user_id: str) -> bool:
        async with get_db() as db:
            flagger = await repository.get_trusted_flagger(db, user_id)
        return flagger is not None and flagger.status == TrustedFlaggerStatus.ACTIVE.value


def advance_report(report: ContentReport, new_status: ReportStatus) -> None:
    current = ReportStatus(report.status)
    if current == new_status:
        return
    if not can_advance(current, new_status):
        raise InvalidStateError(f"Report {report.id} cannot move from {current.value} to {new_status.value}")
    report.status = new_status.value
    if new_status == ReportStatus.RESOLVED:
        report.resolved_at = clock.utcnow()


report_intake_service = ReportIntakeService()
