"""
CPSS registration backend — Poisson d'Avril surfcasting trophy.
Entry point: builds the FastAPI app, registers routers + middleware, serves with uvicorn.
"""
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from backend.config import settings
from backend.exceptions import AuthError, FieldError, PersistenceError, ValidationError
from backend.middlewares import RateLimitMiddleware, SecurityHeadersMiddleware
from backend.models.base import Base, engine
from backend.services.notification_service import EmailSender, build_email_sender
from backend.services.session_store import SessionStore, build_session_store

# ── Handlers ──────────────────────────────────────────────────────────────────
from backend.handlers.common import router as common_router
from backend.handlers.registration import router as registration_router
from backend.handlers.clubs import router as clubs_router
from backend.handlers.admin.panel import router as admin_panel_router
from backend.handlers.admin.registrations import router as admin_registrations_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

RATE_LIMITED_PATHS = ("/api/check-email", "/api/check-phone")


async def create_tables() -> None:
    """Create all database tables on startup."""
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ready.")
    except (SQLAlchemyError, OSError) as e:
        logger.critical(
            "Cannot connect to database at %s: %s",
            settings.DATABASE_URL.split("@")[-1],   # hide credentials in log
            e,
        )
        raise


# ── Error translation ─────────────────────────────────────────────────────────

def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"errors": [e.as_dict() for e in exc.errors]},
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Malformed JSON / query types, before our validators run
        errors = [
            FieldError(".".join(str(p) for p in err["loc"] if p != "body") or "body", err["msg"])
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content={"errors": [e.as_dict() for e in errors]})

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"error": exc.message})

    @app.exception_handler(PersistenceError)
    async def handle_persistence_error(request: Request, exc: PersistenceError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"error": exc.message})

    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Unhandled database error on %s", request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    session_store: Optional[SessionStore] = None,
    email_sender: Optional[EmailSender] = None,
    init_db: bool = True,
) -> FastAPI:
    """
    Build the application. Tests inject their own store / sender and skip
    table creation (they bring their own engine).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting CPSS registration backend…")
        if init_db:
            await create_tables()
        app.state.session_store = session_store or build_session_store(settings)
        app.state.email_sender = email_sender or build_email_sender(settings)
        if not settings.email_enabled and email_sender is None:
            logger.warning("RESEND_API_KEY not set — confirmation emails are disabled")
        try:
            yield
        finally:
            logger.info("Shutting down…")
            await engine.dispose()
            logger.info("Shutdown complete.")

    app = FastAPI(title="CPSS Registration", lifespan=lifespan)

    # ── Middlewares: last added runs first ────────────────────────────────────
    app.add_middleware(
        RateLimitMiddleware,
        paths=RATE_LIMITED_PATHS,
        rate=settings.RATE_LIMIT,
        period=settings.RATE_LIMIT_PERIOD,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(common_router, prefix="/api")
    app.include_router(registration_router, prefix="/api")
    app.include_router(clubs_router, prefix="/api")
    app.include_router(admin_panel_router, prefix="/api/admin")
    app.include_router(admin_registrations_router, prefix="/api/admin")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
