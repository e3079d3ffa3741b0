# app/domains/audit/service.py
"""
Audit ledger: signed, append-only record of everything that changes the
official moderation record.

Producers call `record()` inside their own transaction so the audit row and
the state change commit together. Month partitions are explicit segments with
their own lifecycle: open -> sealed (manifest written) -> expired.
"""
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ConflictError,
    IntegrityViolation,
    InvalidStateError,
    NotFoundError,
    SigningKeyUnavailableError,
    ValidationError,
)
from app.domains.audit import repository
from app.domains.audit.entities import (
    IntegrityReport,
    IntegrityStatus,
    PartitionStatus,
    PartitionVerification,
    VerificationDetail,
    VerificationMethod,
    VerificationResult,
)
from app.domains.audit.models import AuditEventRecord, AuditPartition, LegalHold, PartitionManifest
from app.domains.audit.retention import RetentionPolicy, retention_policy
from app.domains.audit.signing import SigningKeyManager, signing_keys
from app.domains.auth.entities import SYSTEM_ACTOR, Actor
from app.shared.database.upsert import dialect_insert
from app.shared.schemas.events import (
    AuditIntegrityCheck,
    AuditMetadata,
    CourtOrderReceived,
    LegalHoldApplied,
    LegalHoldReleased,
    PartitionExpired,
    PartitionSealed,
    SigningKeyRotated,
)
from app.shared.utils import clock
from app.shared.utils.canonical import canonical_json, constant_time_equals, sha256_hex
from app.shared.utils.logger import get_logger

logger = get_logger(__name__)


def signing_payload(
    event_type: str,
    actor_id: str,
    target_type: str,
    target_id: str,
    action: str,
    metadata: Dict,
    timestamp: datetime,
) -> str:
    return canonical_json(
        {
            "event_type": event_type,
            "actor_id": actor_id,
            "target_type": target_type,
            "target_id": target_id,
            "action": action,
            "metadata": metadata,
            "timestamp": timestamp,
        }
    )


def manifest_payload(partition_id: str, record_count: int, checksum: str, key_version: str) -> str:
    return canonical_json(
        {
            "partition_id": partition_id,
            "record_count": record_count,
            "checksum": checksum,
            "key_version": key_version,
        }
    )


def partition_checksum(events: List[AuditEventRecord]) -> str:
    """SHA-256 over all signatures in insertion order."""
    return sha256_hex("".join(e.signature for e in sorted(events, key=lambda e: e.seq)))


class AuditLedger:
    def __init__(
        self,
        keys: Optional[SigningKeyManager] = None,
        retention: Optional[RetentionPolicy] = None,
    ):
        self.keys = keys or signing_keys
        self.retention = retention or retention_policy

    # --- append -----------------------------------------------------------

    async def record(
        self,
        db: AsyncSession,
        event: AuditMetadata,
        *,
        actor: Actor,
        target_type: str,
        target_id: str,
        action: str,
        idempotency_key: Optional[str] = None,
    ) -> AuditEventRecord:
        if idempotency_key:
            existing = await repository.get_event_by_idempotency_key(db, idempotency_key)
            if existing is not None:
                return existing

        now = clock.utcnow()
        partition = await repository.ensure_partition(db, now)
        if partition.status != PartitionStatus.OPEN.value:
            raise IntegrityViolation(
                f"Partition {partition.id} is {partition.status}; it accepts no new events"
            )

        key = await self.keys.ensure_active_key(db, now)
        metadata = event.payload()
        signature = self.keys.sign(
            key.version,
            signing_payload(event.event_type, actor.id, target_type, target_id, action, metadata, now),
        )

        table = AuditEventRecord.__table__
        values = {
            "id": str(uuid.uuid4()),
            "event_type": event.event_type,
            "actor_id": actor.id,
            "actor_type": actor.actor_type.value,
            "target_id": target_id,
            "target_type": target_type,
            "action": action,
            "metadata": metadata,
            "timestamp": now,
            "signature": signature,
            "signing_key_version": key.version,
            "pii_tagged": event.pii_tagged,
            "retention_until": self.retention.retention_until(event.event_type, now),
            "partition_id": partition.id,
            "idempotency_key": idempotency_key,
            "created_at": now,
        }
        stmt = dialect_insert(db, table).values(**values)
        if idempotency_key:
            stmt = stmt.on_conflict_do_nothing(index_elements=["idempotency_key"])
        result = await db.execute(stmt.returning(table.c.id))
        inserted_id = result.scalar_one_or_none()

        if inserted_id is None:
            # lost the race on the idempotency key; the winner's row is the answer
            return await repository.get_event_by_idempotency_key(db, idempotency_key)
        return await repository.get_event(db, inserted_id)

    # --- verification -------------------------------------------------------

    async def verify_record(self, db: AsyncSession, event: AuditEventRecord) -> VerificationResult:
        key = await self.keys.get_key(db, event.signing_key_version)
        if key is None:
            return VerificationResult(event.id, False, VerificationDetail.KEY_NOT_FOUND)
        if not self.keys.is_valid_at(key, event.timestamp):
            return VerificationResult(
                event.id, False, VerificationDetail.KEY_NOT_VALID_AT_TIMESTAMP, key.version
            )
        method = VerificationMethod.ACTIVE_KEY if key.is_active else VerificationMethod.OVERLAP_KEY

        try:
            expected = self.keys.sign(
                key.version,
                signing_payload(
                    event.event_type,
                    event.actor_id,
                    event.target_type,
                    event.target_id,
                    event.action,
                    event.event_metadata,
                    event.timestamp,
                ),
            )
        except SigningKeyUnavailableError:
            return VerificationResult(
                event.id, False, VerificationDetail.SECRET_UNAVAILABLE, key.version, method
            )

        if not constant_time_equals(expected, event.signature):
            logger.error(f"Audit signature mismatch for event {event.id} (key {key.version})")
            return VerificationResult(
                event.id, False, VerificationDetail.SIGNATURE_MISMATCH, key.version, method
            )
        return VerificationResult(event.id, True, VerificationDetail.OK, key.version, method)

    async def verify(self, db: AsyncSession, event_id: str) -> VerificationResult:
        event = await repository.get_event(db, event_id)
        if event is None:
            return VerificationResult(event_id, False, VerificationDetail.EVENT_NOT_FOUND)
        return await self.verify_record(db, event)

    async def verify_range(
        self, db: AsyncSession, start: datetime, end: datetime
    ) -> List[VerificationResult]:
        events = await repository.events_between(db, start, end)
        return [await self.verify_record(db, e) for e in events]

    async def events_for_target(
        self, db: AsyncSession, target_type: str, target_id: str
    ) -> List[AuditEventRecord]:
        return await repository.events_for_target(db, target_type, target_id)

    # --- partitions ---------------------------------------------------------

    async def create_partition(self, db: AsyncSession, month: datetime) -> AuditPartition:
        return await repository.ensure_partition(db, month)

    async def seal_partition(
        self,
        db: AsyncSession,
        partition_id: str,
        key_version: Optional[str] = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> PartitionManifest:
        partition = await repository.get_partition(db, partition_id)
        if partition is None:
            raise NotFoundError(f"Audit partition {partition_id} not found")
        now = clock.utcnow()
        if partition.range_end > now:
            raise InvalidStateError(f"Partition {partition_id} is still receiving events")

        events = await repository.events_in_partition(db, partition_id)
        invalid = [r.event_id for r in [await self.verify_record(db, e) for e in events] if not r.valid]
        if invalid:
            logger.error(
                f"Refusing to seal {partition_id}: {len(invalid)} event(s) fail verification"
            )
            raise IntegrityViolation(
                f"Partition {partition_id} contains {len(invalid)} event(s) with invalid signatures"
            )

        checksum = partition_checksum(events)
        existing = await repository.get_manifest(db, partition_id)
        if existing is not None:
            if existing.checksum != checksum or existing.record_count != len(events):
                logger.error(f"Sealed partition {partition_id} no longer matches its manifest")
                raise IntegrityViolation(f"Partition {partition_id} changed after sealing")
            return existing

        if key_version is None:
            key_version = (await self.keys.ensure_active_key(db)).version
        manifest_signature = self.keys.sign(
            key_version, manifest_payload(partition_id, len(events), checksum, key_version)
        )

        table = PartitionManifest.__table__
        stmt = (
            dialect_insert(db, table)
            .values(
                id=str(uuid.uuid4()),
                partition_id=partition_id,
                record_count=len(events),
                checksum=checksum,
                manifest_signature=manifest_signature,
                signing_key_version=key_version,
                sealed_by=actor.id,
                sealed_at=now,
                verification_status="verified",
                last_verified_at=now,
            )
            .on_conflict_do_nothing(index_elements=["partition_id"])
        )
        await db.execute(stmt)
        manifest = await repository.get_manifest(db, partition_id)

        if partition.status == PartitionStatus.OPEN.value:
            partition.status = PartitionStatus.SEALED.value
            partition.sealed_at = now
            await self.record(
                db,
                PartitionSealed(
                    record_count=manifest.record_count,
                    checksum=manifest.checksum,
                    signing_key_version=manifest.signing_key_version,
                ),
                actor=actor,
                target_type="audit_partition",
                target_id=partition_id,
                action="seal",
                idempotency_key=f"partition_sealed:{partition_id}",
            )
            logger.info(f"Sealed {partition_id}: {manifest.record_count} events, checksum {checksum}")
        return manifest

    async def verify_partition(self, db: AsyncSession, partition_id: str) -> PartitionVerification:
        manifest = await repository.get_manifest(db, partition_id)
        if manifest is None:
            raise NotFoundError(f"Partition {partition_id} has no manifest")

        events = await repository.events_in_partition(db, partition_id)
        invalid = [r.event_id for r in [await self.verify_record(db, e) for e in events] if not r.valid]
        checksum_matches = (
            partition_checksum(events) == manifest.checksum and len(events) == manifest.record_count
        )
        try:
            expected = self.keys.sign(
                manifest.signing_key_version,
                manifest_payload(
                    partition_id, manifest.record_count, manifest.checksum, manifest.signing_key_version
                ),
            )
            signature_valid = constant_time_equals(expected, manifest.manifest_signature)
        except SigningKeyUnavailableError:
            signature_valid = False

        valid = checksum_matches and signature_valid and not invalid
        manifest.verification_status = "verified" if valid else "failed"
        manifest.last_verified_at = clock.utcnow()
        if not valid:
            logger.error(
                f"Partition {partition_id} failed verification "
                f"(checksum={checksum_matches}, signature={signature_valid}, invalid={len(invalid)})"
            )
        return PartitionVerification(
            partition_id=partition_id,
            valid=valid,
            record_count=len(events),
            checksum_matches=checksum_matches,
            manifest_signature_valid=signature_valid,
            invalid_event_ids=invalid,
        )

    async def expire_partition(
        self, db: AsyncSession, partition_id: str, actor: Actor = SYSTEM_ACTOR
    ) -> AuditPartition:
        partition = await repository.get_partition(db, partition_id)
        if partition is None:
            raise NotFoundError(f"Audit partition {partition_id} not found")
        if partition.status == PartitionStatus.EXPIRED.value:
            return partition
        if partition.status != PartitionStatus.SEALED.value:
            raise InvalidStateError(f"Only sealed partitions can expire ({partition_id} is {partition.status})")

        held = await repository.held_targets_in_partition(db, partition_id)
        if held:
            targets = ", ".join(f"{t}/{i}" for t, i in held)
            raise InvalidStateError(f"Partition {partition_id} holds events under legal hold ({targets})")

        now = clock.utcnow()
        latest_retention = await repository.max_retention_in_partition(db, partition_id)
        if latest_retention is not None and latest_retention > now:
            raise InvalidStateError(
                f"Partition {partition_id} holds events retained until {latest_retention.isoformat()}"
            )

        manifest = await repository.get_manifest(db, partition_id)
        partition.status = PartitionStatus.EXPIRED.value
        partition.expired_at = now
        await self.record(
            db,
            PartitionExpired(record_count=manifest.record_count if manifest else 0),
            actor=actor,
            target_type="audit_partition",
            target_id=partition_id,
            action="expire",
            idempotency_key=f"partition_expired:{partition_id}",
        )
        logger.info(f"Partition {partition_id} expired")
        return partition

    async def find_unsealed_partitions(
        self, db: AsyncSession, before: Optional[datetime] = None
    ) -> List[AuditPartition]:
        return await repository.unsealed_partitions(db, before or clock.utcnow())

    # --- keys ---------------------------------------------------------------

    async def rotate_key(
        self,
        db: AsyncSession,
        actor: Actor,
        new_version: str,
        overlap: Optional[timedelta] = None,
        reason: str = "scheduled",
    ):
        previous, new_key = await self.keys.rotate_key(
            db, new_version, rotated_by=actor.id, overlap=overlap, reason=reason
        )
        await self.record(
            db,
            SigningKeyRotated(
                previous_version=previous.version if previous else None,
                new_version=new_key.version,
                overlap_seconds=new_key.overlap_window_seconds,
                reason=reason,
            ),
            actor=actor,
            target_type="signing_key",
            target_id=new_key.version,
            action="rotate",
        )
        return new_key

    # --- legal holds --------------------------------------------------------

    async def apply_legal_hold(
        self,
        db: AsyncSession,
        actor: Actor,
        target_type: str,
        target_id: str,
        reason: str,
        legal_basis: str,
        review_date: Optional[datetime] = None,
        court_order_reference: Optional[str] = None,
    ) -> LegalHold:
        """
        Place a target under legal hold. While the hold is active no partition
        holding one of the target's events can expire, whatever its retention date.
        """
        errors = {}
        if not (reason or "").strip():
            errors["reason"] = "required"
        if not (legal_basis or "").strip():
            errors["legal_basis"] = "required"
        if errors:
            raise ValidationError(errors)
        if await repository.active_legal_hold(db, target_type, target_id) is not None:
            raise ConflictError(f"{target_type} {target_id} is already under legal hold")

        now = clock.utcnow()
        hold = LegalHold(
            id=str(uuid.uuid4()),
            target_type=target_type,
            target_id=target_id,
            reason=reason.strip(),
            legal_basis=legal_basis.strip(),
            court_order_reference=court_order_reference,
            created_by=actor.id,
            created_at=now,
            review_date=clock.to_naive_utc(review_date),
        )
        db.add(hold)
        try:
            await db.flush()
        except IntegrityError:
            raise ConflictError(f"{target_type} {target_id} is already under legal hold")

        affected = await repository.events_for_target(db, target_type, target_id)
        if court_order_reference:
            await self.record(
                db,
                CourtOrderReceived(hold_id=hold.id, court_order_reference=court_order_reference),
                actor=actor,
                target_type=target_type,
                target_id=target_id,
                action="receive_court_order",
            )
        await self.record(
            db,
            LegalHoldApplied(
                hold_id=hold.id,
                reason=hold.reason,
                legal_basis=hold.legal_basis,
                affected_event_count=len(affected),
                review_date=hold.review_date,
            ),
            actor=actor,
            target_type=target_type,
            target_id=target_id,
            action="apply_hold",
        )
        logger.info(f"Legal hold {hold.id} applied to {target_type} {target_id}")
        return hold

    async def release_legal_hold(
        self, db: AsyncSession, actor: Actor, target_type: str, target_id: str, reason: str
    ) -> LegalHold:
        if not (reason or "").strip():
            raise ValidationError({"reason": "required"})
        hold = await repository.active_legal_hold(db, target_type, target_id)
        if hold is None:
            raise NotFoundError(f"{target_type} {target_id} has no active legal hold")

        hold.released_at = clock.utcnow()
        hold.released_by = actor.id
        hold.release_reason = reason.strip()
        await self.record(
            db,
            LegalHoldReleased(hold_id=hold.id, reason=hold.release_reason),
            actor=actor,
            target_type=target_type,
            target_id=target_id,
            action="release_hold",
        )
        logger.info(f"Legal hold {hold.id} released on {target_type} {target_id}")
        return hold

    # --- integrity ----------------------------------------------------------

    async def run_integrity_check(
        self, db: AsyncSession, window: timedelta = timedelta(hours=24)
    ) -> IntegrityReport:
        now = clock.utcnow()
        results = await self.verify_range(db, now - window, now + timedelta(microseconds=1))
        invalid = [r.event_id for r in results if not r.valid]
        # last month's partition gets a grace day before it counts as a risk
        unsealed = [p.id for p in await self.find_unsealed_partitions(db, now - timedelta(days=1))]

        if invalid:
            status = IntegrityStatus.SIGNATURE_VIOLATION
        elif unsealed:
            status = IntegrityStatus.PARTITION_SECURITY_RISK
        else:
            status = IntegrityStatus.HEALTHY

        await self.record(
            db,
            AuditIntegrityCheck(
                status=status.value,
                invalid_signatures=len(invalid),
                unsealed_partitions=len(unsealed),
            ),
            actor=SYSTEM_ACTOR,
            target_type="audit_ledger",
            target_id="audit_events",
            action="integrity_check",
        )
        log = logger.error if status is not IntegrityStatus.HEALTHY else logger.info
        log(f"Audit integrity check: {status.value} ({len(results)} events, {len(unsealed)} unsealed)")
        return IntegrityReport(
            status=status,
            checked_events=len(results),
            invalid_event_ids=invalid,
            unsealed_partitions=unsealed,
            checked_at=now,
        )


audit_ledger = AuditLedger()
