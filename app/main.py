import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import Settings, get_settings
from app.core.errors import ErrorKind, LedgerError, error_body
from app.core.logging import setup_logging
from app.database.engine import Database
from app.database.errors import classify_backend_error
from app.routers import health_router, medicines_router, stock_router
from app.services.adjustment_service import RetryPolicy, StockAdjuster

logger = logging.getLogger(__name__)

_KIND_BY_STATUS = {
    400: ErrorKind.INVALID_INPUT.value,
    401: "unauthorized",
    404: ErrorKind.NOT_FOUND.value,
    409: ErrorKind.CONFLICT.value,
}


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        message = error.get("msg", "invalid value")
        parts.append("{}: {}".format(location, message) if location else message)
    return "; ".join(parts) or "Invalid request."


async def _validation_error_handler(_request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=error_body(ErrorKind.INVALID_INPUT.value, _format_validation_errors(exc)),
    )


async def _http_error_handler(_request: Request, exc: StarletteHTTPException):
    kind = _KIND_BY_STATUS.get(exc.status_code)
    if kind is None:
        kind = ErrorKind.BACKEND_FAILURE.value if exc.status_code >= 500 else "http_error"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(kind, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def _storage_error_handler(request: Request, exc: SQLAlchemyError):
    error = classify_backend_error(exc)
    logger.error(
        "Storage error on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
        extra={"kind": error.kind.value},
    )
    return JSONResponse(status_code=error.status_code, content=error.to_body())


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    error = LedgerError.backend_failure("Internal server error.")
    return JSONResponse(status_code=error.status_code, content=error.to_body())


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """Build the API.

    A ``database`` passed in stays owned by the caller; otherwise one is
    created from settings at startup and disposed at shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = database is None
        db = database or Database.from_settings(settings)
        db.create_schema()
        app.state.database = db
        app.state.adjuster = StockAdjuster(db, RetryPolicy.from_settings(settings))
        logger.info("%s started (%s)", settings.APP_NAME, settings.ENVIRONMENT)
        try:
            yield
        finally:
            if owned:
                db.dispose()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(SQLAlchemyError, _storage_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(health_router)
    app.include_router(medicines_router)
    app.include_router(stock_router)
    return app


setup_logging()
app = create_app()


__all__ = ["app", "create_app"]
