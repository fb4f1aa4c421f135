"""
FastAPI application factory.

Run with:
    uvicorn mangrat_web.app:create_app --factory
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mangrat import __version__
from mangrat.container import Services, build_services
from mangrat.core.config import Settings, load_settings
from mangrat.core.exceptions import MangratError
from mangrat.core.logger import configure_logging, get_logger
from mangrat.stores.sqlite_store import SQLiteRepository

from .auth_routes import router as auth_router
from .chat_routes import router as chat_router

logger = get_logger(__name__)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message})


async def _mangrat_error_handler(request: Request, exc: MangratError) -> JSONResponse:
    if exc.status_code >= 500:
        # Full detail stays in the server log; callers get the generic message
        logger.error(
            "Request failed",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=exc.message,
        )
    else:
        logger.info(
            "Request rejected",
            path=request.url.path,
            status=exc.status_code,
            error_type=type(exc).__name__,
        )
    return _error_response(exc.status_code, exc.client_message())


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(400, "Invalid request body or parameters")


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Tests pass ready-made services (in-memory repository, fake client);
    production builds them from settings.
    """
    if services is None:
        settings = settings or load_settings()
        configure_logging(settings.logging)
        services = build_services(settings)
    settings = services.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        repository = app.state.services.repository
        if isinstance(repository, SQLiteRepository):
            # Schema changes are applied by scripts/migrate_db.py, never here
            repository.ensure_schema_current()
        logger.info(
            "Mangrat started",
            environment=settings.app.environment,
            storage=settings.storage.backend,
            llm_provider=settings.llm.provider,
            require_auth_for_chat=settings.chat.require_auth_for_chat,
        )
        yield
        app.state.services.close()
        logger.info("Mangrat stopped")

    app = FastAPI(title=settings.app.name, version=__version__, lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(MangratError, _mangrat_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)

    app.include_router(auth_router)
    app.include_router(chat_router)

    @app.get("/api/ping")
    def ping() -> Dict[str, Any]:
        """Liveness check that also touches the repository (503 when unreachable)."""
        app.state.services.repository.ping()
        return {"ok": True, "message": "pong"}

    return app
