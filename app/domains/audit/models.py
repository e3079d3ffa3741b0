# app/domains/audit/models.py
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DDL,
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    event,
    text,
)
from sqlalchemy.orm import Mapped, Session, mapped_column

from app.core.exceptions import AuditImmutableError
from app.shared.database.mixins import TimestampMixin
from app.shared.models.base import Base


class AuditEventRecord(Base):
    """Signed, append-only fact. Rows are never updated or deleted."""

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_events_target", "target_type", "target_id", "timestamp"),
        Index("ix_audit_events_partition_seq", "partition_id", "seq"),
    )

    seq: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    event_type: Mapped[str] = mapped_column(String, index=True)
    actor_id: Mapped[str] = mapped_column(String)
    actor_type: Mapped[str] = mapped_column(String)  # user, moderator, system
    target_id: Mapped[str] = mapped_column(String)
    target_type: Mapped[str] = mapped_column(String)
    action: Mapped[str] = mapped_column(String)
    event_metadata: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    timestamp: Mapped[datetime] = mapped_column(DateTime, index=True)
    signature: Mapped[str] = mapped_column(String(64))
    signing_key_version: Mapped[str] = mapped_column(String)
    pii_tagged: Mapped[bool] = mapped_column(Boolean, default=False)
    retention_until: Mapped[datetime] = mapped_column(DateTime)
    partition_id: Mapped[str] = mapped_column(String)
    idempotency_key: Mapped[Optional[str]] = mapped_column(String, unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime)


class SigningKeyRecord(Base):
    __tablename__ = "audit_signing_keys"
    __table_args__ = (
        # one signing key at a time
        Index(
            "uq_audit_signing_keys_active",
            "is_active",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    version: Mapped[str] = mapped_column(String, unique=True)
    key_fingerprint: Mapped[str] = mapped_column(String)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    activated_at: Mapped[datetime] = mapped_column(DateTime)
    rotated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deactivated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    overlap_window_seconds: Mapped[int] = mapped_column(Integer)
    rotation_reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    rotated_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime)


class AuditPartition(Base, TimestampMixin):
    __tablename__ = "audit_partitions"

    id: Mapped[str] = mapped_column(String, primary_key=True)  # audit_events_YYYYMM
    range_start: Mapped[datetime] = mapped_column(DateTime)
    range_end: Mapped[datetime] = mapped_column(DateTime)
    status: Mapped[str] = mapped_column(String, default="open")  # open, sealed, expired
    sealed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expired_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class PartitionManifest(Base):
    __tablename__ = "audit_partition_manifests"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    partition_id: Mapped[str] = mapped_column(String, unique=True)
    record_count: Mapped[int] = mapped_column(Integer)
    checksum: Mapped[str] = mapped_column(String(64))
    manifest_signature: Mapped[str] = mapped_column(String(64))
    signing_key_version: Mapped[str] = mapped_column(String)
    sealed_by: Mapped[str] = mapped_column(String)
    sealed_at: Mapped[datetime] = mapped_column(DateTime)
    verification_status: Mapped[str] = mapped_column(String, default="verified")
    last_verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class LegalHold(Base):
    """Keeps every audit event of a target alive past its retention date until released."""

    __tablename__ = "audit_legal_holds"
    __table_args__ = (
        Index("ix_audit_legal_holds_target", "target_type", "target_id"),
        # one active hold per target
        Index(
            "uq_audit_legal_holds_active",
            "target_type",
            "target_id",
            unique=True,
            postgresql_where=text("released_at IS NULL"),
            sqlite_where=text("released_at IS NULL"),
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    target_type: Mapped[str] = mapped_column(String)
    target_id: Mapped[str] = mapped_column(String)
    reason: Mapped[str] = mapped_column(Text)
    legal_basis: Mapped[str] = mapped_column(String)
    court_order_reference: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_by: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    review_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    released_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    released_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    release_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


# --- WORM enforcement -------------------------------------------------------


@event.listens_for(AuditEventRecord, "before_update")
def _reject_event_update(mapper, connection, target):
    raise AuditImmutableError(f"Audit event {target.id} is immutable")


@event.listens_for(AuditEventRecord, "before_delete")
def _reject_event_delete(mapper, connection, target):
    raise AuditImmutableError(f"Audit event {target.id} cannot be deleted")


@event.listens_for(Session, "do_orm_execute")
def _reject_bulk_event_mutation(orm_execute_state):
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    table = getattr(orm_execute_state.statement, "table", None)
    if table is not None and getattr(table, "name", None) == AuditEventRecord.__tablename__:
        raise AuditImmutableError("Bulk UPDATE/DELETE on audit_events is not permitted")


_events_table = AuditEventRecord.__table__

# Storage-level guard: privileged SQL sessions bypass the ORM, not the database.
event.listen(
    _events_table,
    "after_create",
    DDL(
        "CREATE OR REPLACE FUNCTION audit_events_reject_mutation() RETURNS trigger AS $$ "
        "BEGIN RAISE EXCEPTION 'audit events are immutable' USING ERRCODE = 'P0001'; END; "
        "$$ LANGUAGE plpgsql"
    ).execute_if(dialect="postgresql"),
)
event.listen(
    _events_table,
    "after_create",
    DDL(
        "CREATE TRIGGER audit_events_worm BEFORE UPDATE OR DELETE ON audit_events "
        "FOR EACH ROW EXECUTE FUNCTION audit_events_reject_mutation()"
    ).execute_if(dialect="postgresql"),
)
event.listen(
    _events_table,
    "after_create",
    DDL(
        "CREATE TRIGGER audit_events_worm_truncate BEFORE TRUNCATE ON audit_events "
        "FOR EACH STATEMENT EXECUTE FUNCTION audit_events_reject_mutation()"
    ).execute_if(dialect="postgresql"),
)
event.listen(
    _events_table,
    "after_create",
    DDL(
        "CREATE TRIGGER audit_events_worm_update BEFORE UPDATE ON audit_events "
        "BEGIN SELECT RAISE(ABORT, 'audit events are immutable'); END"
    ).execute_if(dialect="sqlite"),
)
event.listen(
    _events_table,
    "after_create",
    DDL(
        "CREATE TRIGGER audit_events_worm_delete BEFORE DELETE ON audit_events "
        "BEGIN SELECT RAISE(ABORT, 'audit events are immutable'); END"
    ).execute_if(dialect="sqlite"),
)
