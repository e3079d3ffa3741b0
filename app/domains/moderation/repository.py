# app/domains/moderation/repository.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.domains.moderation.entities import DecisionStatus
from app.domains.moderation.models import (
    ActionExecution,
    ModerationClaim,
    ModerationDecision,
    ModerationNotification,
    StatementOfReasons,
    UserRateLimit,
    UserShadowBan,
    UserSuspension,
)
from app.shared.database.upsert import dialect_insert


async def try_acquire_claim(
    db: AsyncSession,
    claim_id: str,
    report_id: str,
    moderator_id: str,
    now: datetime,
    expires_at: datetime,
) -> Optional[ModerationClaim]:
    """Single conditional upsert: takes the claim only if it lapsed or is already ours."""
    table = ModerationClaim.__table__
    insert = dialect_insert(db, table).values(
        id=claim_id,
        report_id=report_id,
        moderator_id=moderator_id,
        claimed_at=now,
        expires_at=expires_at,
    )
    stmt = insert.on_conflict_do_update(
        index_elements=["report_id"],
        set_={
            "id": insert.excluded.id,
            "moderator_id": insert.excluded.moderator_id,
            "claimed_at": insert.excluded.claimed_at,
            "expires_at": insert.excluded.expires_at,
        },
        where=or_(table.c.expires_at <= now, table.c.moderator_id == moderator_id),
    ).returning(table.c.report_id)
    result = await db.execute(stmt)
    if result.scalar_one_or_none() is None:
        return None
    return await get_claim(db, report_id)


async def get_claim(db: AsyncSession, report_id: str) -> Optional[ModerationClaim]:
    # the upsert bypasses the identity map; always read the current row
    result = await db.execute(
        select(ModerationClaim)
        .filter(ModerationClaim.report_id == report_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_decision(db: AsyncSession, decision_id: str) -> Optional[ModerationDecision]:
    result = await db.execute(select(ModerationDecision).filter(ModerationDecision.id == decision_id))
    return result.scalar_one_or_none()


async def live_decision_for_report(db: AsyncSession, report_id: str) -> Optional[ModerationDecision]:
    result = await db.execute(
        select(ModerationDecision).filter(
            ModerationDecision.report_id == report_id,
            ModerationDecision.status != DecisionStatus.REVERSED.value,
        )
    )
    return result.scalars().first()


async def get_statement(db: AsyncSession, decision_id: str) -> Optional[StatementOfReasons]:
    result = await db.execute(
        select(StatementOfReasons).filter(StatementOfReasons.decision_id == decision_id)
    )
    return result.scalar_one_or_none()


async def get_execution(db: AsyncSession, decision_id: str) -> Optional[ActionExecution]:
    result = await db.execute(
        select(ActionExecution)
        .filter(ActionExecution.decision_id == decision_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def insert_execution(db: AsyncSession, values: dict) -> bool:
    """INSERT ... ON CONFLICT (decision_id) DO NOTHING; True when this call created the row."""
    table = ActionExecution.__table__
    stmt = (
        dialect_insert(db, table)
        .values(**values)
        .on_conflict_do_nothing(index_elements=["decision_id"])
        .returning(table.c.id)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none() is not None


async def lift_restrictions(db: AsyncSession, decision_id: str, now: datetime) -> int:
    lifted = 0
    for model in (UserRateLimit, UserShadowBan, UserSuspension):
        result = await db.execute(
            update(model)
            .where(model.decision_id == decision_id, model.lifted_at.is_(None))
            .values(lifted_at=now)
        )
        lifted += result.rowcount or 0
    return lifted


async def active_restrictions(db: AsyncSession, user_id: str, now: datetime) -> List:
    rows = []
    for model in (UserRateLimit, UserShadowBan, UserSuspension):
        result = await db.execute(
            select(model).filter(
                model.user_id == user_id,
                model.lifted_at.is_(None),
                model.expires_at > now,
            )
        )
        rows.extend(result.scalars().all())
    return rows


async def get_notification(db: AsyncSession, notification_id: str) -> Optional[ModerationNotification]:
    result = await db.execute(
        select(ModerationNotification).filter(ModerationNotification.id == notification_id)
    )
    return result.scalar_one_or_none()


async def due_notifications(db: AsyncSession, now: datetime, limit: int = 100) -> List[ModerationNotification]:
    result = await db.execute(
        select(ModerationNotification)
        .filter(
            ModerationNotification.status == "pending",
            ModerationNotification.scheduled_for <= now,
        )
        .order_by(ModerationNotification.scheduled_for)
        .limit(limit)
    )
    return list(result.scalars().all())
