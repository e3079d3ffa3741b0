# app/domains/content/store.py
"""
Content store seam used by report intake (snapshots) and the action executor
(quarantine, soft delete, geo blocks).

Every mutation takes the caller's session so it commits or rolls back together
with the moderation records that caused it.
"""
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domains.content.models import ContentGeoBlock, ContentItem
from app.shared.utils import clock
from app.shared.utils.logger import get_logger

logger = get_logger(__name__)


class ContentStore(ABC):
    @abstractmethod
    async def read_for_snapshot(self, db: AsyncSession, content_id: str) -> Optional[Dict]:
        ...

    @abstractmethod
    async def get_author_id(self, db: AsyncSession, content_id: str) -> Optional[str]:
        ...

    @abstractmethod
    async def quarantine(self, db: AsyncSession, content_id: str) -> bool:
        ...

    @abstractmethod
    async def release_quarantine(self, db: AsyncSession, content_id: str) -> bool:
        ...

    @abstractmethod
    async def soft_delete(
        self, db: AsyncSession, content_id: str, deleted_by: str, reason: str
    ) -> bool:
        ...

    @abstractmethod
    async def restore(self, db: AsyncSession, content_id: str) -> bool:
        ...

    @abstractmethod
    async def add_geo_blocks(
        self, db: AsyncSession, content_id: str, territories: Iterable[str], reason_code: str
    ) -> List[str]:
        ...

    @abstractmethod
    async def remove_geo_blocks(self, db: AsyncSession, content_id: str, reason_code: str) -> int:
        ...


class SqlContentStore(ContentStore):
    async def _get(self, db: AsyncSession, content_id: str) -> Optional[ContentItem]:
        result = await db.execute(select(ContentItem).filter(ContentItem.id == content_id))
        return result.scalar_one_or_none()

    async def read_for_snapshot(self, db: AsyncSession, content_id: str) -> Optional[Dict]:
        item = await self._get(db, content_id)
        if item is None:
            return None
        return {
            "id": item.id,
            "content_type": item.content_type,
            "author_id": item.author_id,
            "body": item.body,
            "media_url": item.media_url,
            "created_at": item.created_at,
            "updated_at": item.updated_at,
        }

    async def get_author_id(self, db: AsyncSession, content_id: str) -> Optional[str]:
        item = await self._get(db, content_id)
        return item.author_id if item else None

    async def quarantine(self, db: AsyncSession, content_id: str) -> bool:
        item = await self._get(db, content_id)
        if item is None:
            logger.warning(f"Quarantine requested for unknown content {content_id}")
            return False
        item.quarantined = True
        item.visibility = "limited"
        return True

    async def release_quarantine(self, db: AsyncSession, content_id: str) -> bool:
        item = await self._get(db, content_id)
        if item is None:
            return False
        item.quarantined = False
        item.visibility = "public"
        return True

    async def soft_delete(
        self, db: AsyncSession, content_id: str, deleted_by: str, reason: str
    ) -> bool:
        item = await self._get(db, content_id)
        if item is None:
            logger.warning(f"Removal requested for unknown content {content_id}")
            return False
        if item.deleted_at is None:
            item.deleted_at = clock.utcnow()
            item.deleted_by = deleted_by
            item.deletion_reason = reason
        return True

    async def restore(self, db: AsyncSession, content_id: str) -> bool:
        item = await self._get(db, content_id)
        if item is None:
            return False
        item.deleted_at = None
        item.deleted_by = None
        item.deletion_reason = None
        return True

    async def add_geo_blocks(
        self, db: AsyncSession, content_id: str, territories: Iterable[str], reason_code: str
    ) -> List[str]:
        now: datetime = clock.utcnow()
        existing = await db.execute(
            select(ContentGeoBlock.territory_code).filter(
                ContentGeoBlock.content_id == content_id,
                ContentGeoBlock.reason_code == reason_code,
            )
        )
        already_blocked = set(existing.scalars().all())
        added = []
        for territory in sorted({t.upper() for t in territories} - already_blocked):
            db.add(
                ContentGeoBlock(
                    id=str(uuid.uuid4()),
                    content_id=content_id,
                    territory_code=territory,
                    reason_code=reason_code,
                    created_at=now,
                )
            )
            added.append(territory)
        await db.flush()
        return added

    async def remove_geo_blocks(self, db: AsyncSession, content_id: str, reason_code: str) -> int:
        result = await db.execute(
            delete(ContentGeoBlock).where(
                ContentGeoBlock.content_id == content_id,
                ContentGeoBlock.reason_code == reason_code,
            )
        )
        return result.rowcount or 0

    async def geo_blocked_territories(self, db: AsyncSession, content_id: str) -> List[str]:
        result = await db.execute(
            select(ContentGeoBlock.territory_code)
            .filter(ContentGeoBlock.content_id == content_id)
            .order_by(ContentGeoBlock.territory_code)
        )
        return list(result.scalars().all())


# Глобальный экземпляр
content_store = SqlContentStore()
