# app/domains/audit/signing.py
"""
HMAC signing key lifecycle: created -> activated -> rotated -> deactivated.

Secrets come only from settings.AUDIT_SIGNING_KEYS; the database stores the
version, a fingerprint and the validity window. A version whose secret is not
configured can neither sign nor verify.
"""
import re
import uuid
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConflictError, SigningKeyUnavailableError, ValidationError
from app.domains.audit.models import SigningKeyRecord
from app.shared.database.upsert import dialect_insert
from app.shared.utils import clock
from app.shared.utils.canonical import hmac_sha256_hex, sha256_hex
from app.shared.utils.logger import get_logger

logger = get_logger(__name__)

KEY_VERSION_PATTERN = re.compile(r"^v\d+\.\d+$")


class SigningKeyManager:
    def secret_for(self, version: str) -> str:
        secret = settings.AUDIT_SIGNING_KEYS.get(version)
        if not secret:
            raise SigningKeyUnavailableError(f"No secret configured for signing key {version}")
        return secret

    def sign(self, version: str, data: str) -> str:
        return hmac_sha256_hex(self.secret_for(version), data)

    @staticmethod
    def fingerprint(secret: str) -> str:
        return sha256_hex(secret)[:16]

    @staticmethod
    def overlap_end(key: SigningKeyRecord) -> Optional[datetime]:
        if key.rotated_at is None:
            return None
        return key.rotated_at + timedelta(seconds=key.overlap_window_seconds)

    def is_valid_at(self, key: SigningKeyRecord, ts: datetime) -> bool:
        if ts < key.activated_at:
            return False
        end = self.overlap_end(key)
        return end is None or ts <= end

    async def get_key(self, db: AsyncSession, version: str) -> Optional[SigningKeyRecord]:
        result = await db.execute(select(SigningKeyRecord).filter(SigningKeyRecord.version == version))
        return result.scalar_one_or_none()

    async def get_active_key(self, db: AsyncSession) -> Optional[SigningKeyRecord]:
        result = await db.execute(select(SigningKeyRecord).filter(SigningKeyRecord.is_active.is_(True)))
        return result.scalar_one_or_none()

    async def ensure_active_key(self, db: AsyncSession, at: Optional[datetime] = None) -> SigningKeyRecord:
        """
        Return the active key, bootstrapping the configured version on first use.

        A bootstrapped key is activated at `at` so the event that triggered the
        bootstrap falls inside its validity window.
        """
        key = await self.get_active_key(db)
        if key is not None:
            return key

        version = settings.AUDIT_ACTIVE_KEY_VERSION
        secret = self.secret_for(version)
        now = at or clock.utcnow()
        stmt = (
            dialect_insert(db, SigningKeyRecord.__table__)
            .values(
                id=str(uuid.uuid4()),
                version=version,
                key_fingerprint=self.fingerprint(secret),
                is_active=True,
                activated_at=now,
                overlap_window_seconds=settings.SIGNING_KEY_OVERLAP_DAYS * 86400,
                created_at=now,
            )
            .on_conflict_do_nothing()
        )
        await db.execute(stmt)

        key = await self.get_active_key(db)
        if key is None:
            # the configured version exists but was rotated away
            raise SigningKeyUnavailableError(
                f"Signing key {version} is not active and no active key exists"
            )
        logger.info(f"Signing key {key.version} active since {key.activated_at.isoformat()}")
        return key

    async def rotate_key(
        self,
        db: AsyncSession,
        new_version: str,
        rotated_by: str,
        overlap: Optional[timedelta] = None,
        reason: str = "scheduled",
    ) -> Tuple[Optional[SigningKeyRecord], SigningKeyRecord]:
        if not KEY_VERSION_PATTERN.match(new_version):
            raise ValidationError({"new_version": "must look like v<major>.<minor>"})
        secret = self.secret_for(new_version)
        if await self.get_key(db, new_version) is not None:
            raise ConflictError(f"Signing key {new_version} already exists")

        overlap = overlap if overlap is not None else timedelta(days=settings.SIGNING_KEY_OVERLAP_DAYS)
        now = clock.utcnow()

        previous = await self.get_active_key(db)
        if previous is not None:
            previous.is_active = False
            previous.rotated_at = now
            previous.overlap_window_seconds = int(overlap.total_seconds())
            previous.rotation_reason = reason
            previous.rotated_by = rotated_by
            # the partial unique index allows one active row at a time
            await db.flush()

        new_key = SigningKeyRecord(
            id=str(uuid.uuid4()),
            version=new_version,
            key_fingerprint=self.fingerprint(secret),
            is_active=True,
            activated_at=now,
            overlap_window_seconds=int(overlap.total_seconds()),
            created_at=now,
        )
        db.add(new_key)
        await db.flush()

        logger.info(
            f"Signing key rotated {previous.version if previous else '-'} -> {new_version}, "
            f"overlap {overlap}"
        )
        return previous, new_key

    async def keys_valid_at(self, db: AsyncSession, ts: datetime) -> List[SigningKeyRecord]:
        result = await db.execute(select(SigningKeyRecord).order_by(SigningKeyRecord.activated_at))
        return [key for key in result.scalars().all() if self.is_valid_at(key, ts)]

    async def deactivate_expired_keys(self, db: AsyncSession) -> List[str]:
        """Mark rotated keys whose overlap window has passed as deactivated."""
        now = clock.utcnow()
        result = await db.execute(
            select(SigningKeyRecord).filter(
                SigningKeyRecord.is_active.is_(False),
                SigningKeyRecord.rotated_at.is_not(None),
                SigningKeyRecord.deactivated_at.is_(None),
            )
        )
        deactivated = []
        for key in result.scalars().all():
            if self.overlap_end(key) < now:
                key.deactivated_at = now
                deactivated.append(key.version)
                logger.info(f"Signing key {key.version} deactivated")
        return deactivated


signing_keys = SigningKeyManager()
