# app/domains/appeals/repository.py
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domains.appeals.entities import ACTIVE_APPEAL_STATUSES, OdsBodyStatus
from app.domains.appeals.models import Appeal, OdsBody, OdsEscalation


async def get_appeal(db: AsyncSession, appeal_id: str) -> Optional[Appeal]:
    result = await db.execute(select(Appeal).filter(Appeal.id == appeal_id))
    return result.scalar_one_or_none()


async def active_appeal(db: AsyncSession, decision_id: str, user_id: str) -> Optional[Appeal]:
    result = await db.execute(
        select(Appeal).filter(
            Appeal.original_decision_id == decision_id,
            Appeal.user_id == user_id,
            Appeal.status.in_(ACTIVE_APPEAL_STATUSES),
        )
    )
    return result.scalars().first()


async def get_escalation(db: AsyncSession, escalation_id: str) -> Optional[OdsEscalation]:
    result = await db.execute(select(OdsEscalation).filter(OdsEscalation.id == escalation_id))
    return result.scalar_one_or_none()


async def escalation_for_appeal(db: AsyncSession, appeal_id: str) -> Optional[OdsEscalation]:
    result = await db.execute(select(OdsEscalation).filter(OdsEscalation.appeal_id == appeal_id))
    return result.scalar_one_or_none()


async def get_ods_body(db: AsyncSession, body_id: str) -> Optional[OdsBody]:
    result = await db.execute(select(OdsBody).filter(OdsBody.id == body_id))
    return result.scalar_one_or_none()


async def get_ods_body_by_name(db: AsyncSession, name: str) -> Optional[OdsBody]:
    result = await db.execute(select(OdsBody).filter(OdsBody.name == name))
    return result.scalar_one_or_none()


async def certified_bodies(db: AsyncSession) -> List[OdsBody]:
    result = await db.execute(
        select(OdsBody).filter(OdsBody.status == OdsBodyStatus.CERTIFIED.value).order_by(OdsBody.name)
    )
    return list(result.scalars().all())
