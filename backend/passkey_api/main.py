import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError

from .core.config import Settings, settings
from .core.exceptions import PasskeyException
from .api.api import api_router
from .api.errors import (
    passkey_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    general_exception_handler
)
from .db.database import Database, init_db
from .services import (
    CeremonyCoordinator,
    CeremonyEngine,
    CredentialStore,
    SessionManager,
    SessionStore,
    TokenGenerator,
    WebAuthnCeremonyEngine,
)

logger = logging.getLogger(__name__)


def create_app(app_settings: Optional[Settings] = None, engine: Optional[CeremonyEngine] = None) -> FastAPI:
    """Build the API with its stores, ceremony engine and coordinator wired in"""
    app_settings = app_settings or settings

    logging.basicConfig(
        level=app_settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )

    database = Database(app_settings.DATABASE_PATH, timeout=app_settings.DATABASE_TIMEOUT)
    token_generator = TokenGenerator()
    session_store = SessionStore(database)
    session_manager = SessionManager(
        database,
        token_generator,
        session_duration_hours=app_settings.AUTH_SESSION_HOURS
    )
    if engine is None:
        engine = WebAuthnCeremonyEngine(
            rp_id=app_settings.RP_ID,
            rp_name=app_settings.RP_NAME,
            origins=app_settings.RP_ORIGINS,
            require_user_verification=app_settings.REQUIRE_USER_VERIFICATION,
            timeout_ms=app_settings.CEREMONY_TIMEOUT_MS
        )
    coordinator = CeremonyCoordinator(
        credential_store=CredentialStore(database),
        session_store=session_store,
        session_manager=session_manager,
        engine=engine,
        token_generator=token_generator,
        ceremony_ttl=timedelta(seconds=app_settings.CEREMONY_SESSION_SECONDS),
        clone_policy=app_settings.CLONE_WARNING_POLICY,
        save_attempts=app_settings.CREDENTIAL_SAVE_ATTEMPTS,
        save_backoff=app_settings.CREDENTIAL_SAVE_BACKOFF,
        username_max_length=app_settings.USERNAME_MAX_LENGTH
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        await init_db(database)
        expired = await session_store.cleanup_expired()
        expired += await session_manager.cleanup_expired_sessions()
        if expired:
            logger.info(f"Removed {expired} expired session(s) at startup")
        logger.info(f"{app_settings.APP_NAME} ready (rp_id={app_settings.RP_ID})")

        yield

        # Shutdown
        logger.info(f"{app_settings.APP_NAME} shutting down")

    app = FastAPI(
        title=app_settings.APP_NAME,
        description="Passkey registration and login",
        version=app_settings.VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.state.settings = app_settings
    app.state.database = database
    app.state.coordinator = coordinator

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"]
    )

    # Add exception handlers
    app.add_exception_handler(PasskeyException, passkey_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include API routes
    app.include_router(api_router, prefix=app_settings.API_PREFIX)

    @app.get("/")
    async def root():
        return {
            "message": app_settings.APP_NAME,
            "version": app_settings.VERSION,
            "status": "operational",
            "docs_url": "/docs"
        }

    return app


app = create_app()
