"""FastAPI application for the occupation taxonomy API."""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from occutax.core.errors import InvalidArgument, TaxonomyError
from occutax.core.logging import configure_logging
from occutax.db.connection import close_db
from occutax.web.routes import (
    audit,
    auth,
    dashboard,
    groups,
    health,
    occupations,
    relationships,
    search,
    sources,
    synonyms,
    tree,
)

logger = structlog.get_logger(__name__)


# Request Logging Middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise

        logger.info("request_completed", status_code=response.status_code)
        response.headers["X-Request-ID"] = request_id
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_db()


async def taxonomy_error_handler(request: Request, exc: TaxonomyError):
    """Every domain error maps to ``{"error": code, "message": text}``."""
    if exc.status_code >= 500:
        logger.error("request_error", code=exc.code, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError | ValidationError):
    message = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in exc.errors()
    )
    error = InvalidArgument(message or "Invalid request")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def create_app() -> FastAPI:
    """Build the API application with every router mounted."""
    configure_logging()

    app = FastAPI(
        title="Occupation Taxonomy API",
        description="Occupation taxonomy management with audited hierarchy edits",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)

    # Exception Handlers
    app.add_exception_handler(TaxonomyError, taxonomy_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)

    # Include Routers
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(occupations.router)
    app.include_router(synonyms.router)
    app.include_router(groups.router)
    app.include_router(sources.router)
    app.include_router(tree.router)
    app.include_router(relationships.router)
    app.include_router(audit.router)
    app.include_router(dashboard.router)
    app.include_router(search.router)

    return app


app = create_app()
