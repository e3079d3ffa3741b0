from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import UserAccount
from ...shared.utils.logger import get_logger


logger = get_logger(__name__)


async def get_user(db: AsyncSession, user_id: str) -> Optional[UserAccount]:
    result = await db.execute(select(UserAccount).filter(UserAccount.id == user_id))
    return result.scalar_one_or_none()


async def ensure_user(db: AsyncSession, user_id: str, roles: Iterable[str] = ()) -> UserAccount:
    user = await get_user(db, user_id)
    if user is None:
        user = UserAccount(id=user_id, roles=sorted(set(roles)))
        db.add(user)
        await db.flush()
    return user


async def suspend_user(db: AsyncSession, user_id: str, expires_at: datetime) -> UserAccount:
    user = await ensure_user(db, user_id)
    user.suspended = True
    user.account_status = "suspended"
    user.suspension_expires_at = expires_at
    logger.info(f"User {user_id} suspended until {expires_at.isoformat()}")
    return user


async def lift_suspension(db: AsyncSession, user_id: str) -> Optional[UserAccount]:
    user = await get_user(db, user_id)
    if user is not None:
        user.suspended = False
        user.account_status = "active"
        user.suspension_expires_at = None
        logger.info(f"Suspension lifted for user {user_id}")
    return user
