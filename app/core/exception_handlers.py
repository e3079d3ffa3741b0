from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exceptions import (
    AlreadyClaimedError,
    AuthorizationError,
    ConflictError,
    IntegrityViolation,
    InvalidStateError,
    NotFoundError,
    TransientExternalError,
    ValidationError,
)
from app.shared.utils.logger import get_logger

logger = get_logger(__name__)


def setup_exception_handlers(app: FastAPI):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request, exc):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc):
        return JSONResponse(
            status_code=422,
            content={"detail": exc.errors()},
        )

    @app.exception_handler(ValidationError)
    async def domain_validation_handler(request, exc: ValidationError):
        return JSONResponse(
            status_code=422,
            content={"detail": exc.message, "code": exc.code, "errors": exc.errors},
        )

    @app.exception_handler(AuthorizationError)
    async def authorization_handler(request, exc: AuthorizationError):
        return JSONResponse(status_code=403, content={"detail": exc.message, "code": exc.code})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": exc.message, "code": exc.code})

    @app.exception_handler(ConflictError)
    async def conflict_handler(request, exc: ConflictError):
        content = {"detail": exc.message, "code": exc.code}
        if isinstance(exc, AlreadyClaimedError):
            content["claimed_by"] = exc.holder_id
            content["expires_at"] = exc.expires_at.isoformat()
        return JSONResponse(status_code=409, content=content)

    @app.exception_handler(InvalidStateError)
    async def invalid_state_handler(request, exc: InvalidStateError):
        return JSONResponse(status_code=409, content={"detail": exc.message, "code": exc.code})

    @app.exception_handler(IntegrityViolation)
    async def integrity_handler(request, exc: IntegrityViolation):
        # never expose integrity internals to callers
        logger.error(f"Integrity violation on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.exception_handler(TransientExternalError)
    async def transient_handler(request, exc: TransientExternalError):
        return JSONResponse(
            status_code=503, content={"detail": "Upstream service unavailable", "code": exc.code}
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request, exc):
        logger.error(f"Unhandled error on {request.url.path}: {exc!r}")
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
