from contextlib import asynccontextmanager
from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from app.core import (
    celery,
    config,
    database,
    exception_handlers,
    redis,
)
from app.domains import appeals, audit, moderation, reports, sla

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    celery.init_celery()
    await database.init_db()
    yield
    await redis.RedisManager.close()


app = FastAPI(title="DSA Moderation & Compliance Engine", version=VERSION, lifespan=lifespan)

exception_handlers.setup_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(reports.router, prefix="/api/moderation", tags=["Reports"])
app.include_router(moderation.router, prefix="/api/moderation", tags=["Moderation"])
app.include_router(appeals.router, prefix="/api/appeals", tags=["Appeals"])
app.include_router(audit.router, prefix="/api/audit", tags=["Audit"])
app.include_router(sla.router, prefix="/api/sla", tags=["SLA"])


@app.get("/health")
async def health():
    services = {
        "database": await database.check_connection(),
        "redis": await redis.check_connection(),
        "rabbitmq": await celery.check_connection(),
    }
    status = "healthy" if all(services.values()) else "degraded"
    return {
        "status": status,
        "services": services,
        "version": VERSION,
        "environment": config.settings.ENVIRONMENT.value,
    }
