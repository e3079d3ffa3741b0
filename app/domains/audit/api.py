# app/domains/audit/api.py
from dataclasses import asdict
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.domains.audit.service import audit_ledger
from app.domains.auth.dependencies import get_current_actor
from app.domains.auth.entities import Actor, Role
from app.domains.auth.service import require_role

router = APIRouter()


class RotateKeyRequest(BaseModel):
    new_version: str
    overlap_days: Optional[int] = Field(default=None, ge=0)
    reason: str = "scheduled"


class SealPartitionRequest(BaseModel):
    key_version: Optional[str] = None


class LegalHoldRequest(BaseModel):
    target_type: str
    target_id: str
    reason: str
    legal_basis: str
    review_date: Optional[datetime] = None
    court_order_reference: Optional[str] = None


class ReleaseLegalHoldRequest(BaseModel):
    target_type: str
    target_id: str
    reason: str


def _event_dict(event) -> dict:
    return {
        "id": event.id,
        "seq": event.seq,
        "event_type": event.event_type,
        "actor_id": event.actor_id,
        "actor_type": event.actor_type,
        "target_type": event.target_type,
        "target_id": event.target_id,
        "action": event.action,
        "metadata": event.event_metadata,
        "timestamp": event.timestamp.isoformat(),
        "signing_key_version": event.signing_key_version,
        "retention_until": event.retention_until.isoformat(),
        "partition_id": event.partition_id,
    }


@router.get("/events/{event_id}/verify")
async def verify_event(
    event_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Проверить подпись события аудита"""
    require_role(actor, Role.MODERATOR, Role.SUPERVISOR)
    return asdict(await audit_ledger.verify(db, event_id))


@router.get("/targets/{target_type}/{target_id}/events")
async def target_history(
    target_type: str,
    target_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    require_role(actor, Role.MODERATOR, Role.SUPERVISOR)
    events = await audit_ledger.events_for_target(db, target_type, target_id)
    return {"events": [_event_dict(e) for e in events]}


@router.post("/partitions/{partition_id}/seal")
async def seal_partition(
    partition_id: str,
    request: SealPartitionRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    require_role(actor, Role.ADMIN)
    manifest = await audit_ledger.seal_partition(db, partition_id, request.key_version, actor=actor)
    return {
        "partition_id": manifest.partition_id,
        "record_count": manifest.record_count,
        "checksum": manifest.checksum,
        "manifest_signature": manifest.manifest_signature,
        "signing_key_version": manifest.signing_key_version,
    }


@router.get("/partitions/{partition_id}/verify")
async def verify_partition(
    partition_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    require_role(actor, Role.ADMIN, Role.SUPERVISOR)
    return asdict(await audit_ledger.verify_partition(db, partition_id))


@router.post("/keys/rotate")
async def rotate_signing_key(
    request: RotateKeyRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Ротация ключа подписи (только admin)"""
    require_role(actor, Role.ADMIN)
    overlap = timedelta(days=request.overlap_days) if request.overlap_days is not None else None
    key = await audit_ledger.rotate_key(db, actor, request.new_version, overlap, request.reason)
    return {
        "version": key.version,
        "activated_at": key.activated_at.isoformat(),
        "overlap_window_seconds": key.overlap_window_seconds,
    }


@router.post("/integrity-check")
async def integrity_check(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    require_role(actor, Role.ADMIN)
    return asdict(await audit_ledger.run_integrity_check(db))


def _hold_dict(hold) -> dict:
    return {
        "id": hold.id,
        "target_type": hold.target_type,
        "target_id": hold.target_id,
        "legal_basis": hold.legal_basis,
        "created_by": hold.created_by,
        "created_at": hold.created_at.isoformat(),
        "released_at": hold.released_at.isoformat() if hold.released_at else None,
    }


@router.post("/legal-holds", status_code=201)
async def apply_legal_hold(
    request: LegalHoldRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Наложить юридическое удержание на объект аудита"""
    require_role(actor, Role.ADMIN)
    hold = await audit_ledger.apply_legal_hold(db, actor, **request.model_dump())
    return _hold_dict(hold)


@router.post("/legal-holds/release")
async def release_legal_hold(
    request: ReleaseLegalHoldRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    require_role(actor, Role.ADMIN)
    hold = await audit_ledger.release_legal_hold(
        db, actor, request.target_type, request.target_id, request.reason
    )
    return _hold_dict(hold)
