import asyncio
import json
import os
import tempfile
from datetime import datetime, timedelta

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="moderation-tests-")

# settings are read at import time; configure before anything imports app
os.environ["ENVIRONMENT"] = "local"
os.environ["ENV_DIR"] = os.path.join(_DB_DIR, "no-env-files")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'moderation.db')}"
os.environ["AUDIT_SIGNING_KEYS"] = json.dumps(
    {"v1.0": "test-secret-one", "v2.0": "test-secret-two", "v3.0": "test-secret-three"}
)
os.environ["AUDIT_ACTIVE_KEY_VERSION"] = "v1.0"
os.environ["TRANSPARENCY_DB_URL"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from app.core.database import engine  # noqa: E402
from app.shared.models.base import Base  # noqa: E402
from app.shared.models.registry import load_models  # noqa: E402
from app.shared.utils import clock  # noqa: E402
from factories import run, seed_content  # noqa: E402

load_models()


async def _create_schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def _drop_schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def database():
    asyncio.run(_create_schema())
    yield
    asyncio.run(_drop_schema())


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def frozen_clock(monkeypatch):
    frozen = FrozenClock(datetime(2026, 3, 10, 12, 0, 0))
    monkeypatch.setattr(clock, "utcnow", frozen)
    return frozen


@pytest.fixture
def content():
    return run(seed_content())
