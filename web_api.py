from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from accessgate.api.contracts import HealthResponse
from accessgate.api.http_setup import register_exception_handlers, register_http_middleware
from accessgate.auth.middleware import create_auth_middleware
from accessgate.auth.repository import AccountRepository
from accessgate.auth.router import create_auth_router
from accessgate.auth.service import AuthService
from accessgate.auth.sessions import SessionLedger
from accessgate.auth.tokens import CredentialCodec
from accessgate.auth.verification import VerificationLedger
from accessgate.core.config import AppConfig
from accessgate.core.database import SqliteDatabase
from accessgate.core.logging import setup_logging
from accessgate.delivery.handlers import build_worker_pool, queue_settings_from_config
from accessgate.delivery.mailer import Mailer, build_mailer
from accessgate.delivery.queue import DeliveryQueue

LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent


def resolve_state_path(config: AppConfig) -> Path:
    path = Path(config.storage.sqlite_path)
    return path if path.is_absolute() else (APP_ROOT / path).resolve()


def create_app(config: AppConfig | None = None, *, mailer: Mailer | None = None) -> FastAPI:
    """Build the API with explicitly constructed service handles.

    Run with ``uvicorn web_api:create_app --factory``.
    """
    if config is None:
        load_dotenv()
        config = AppConfig.from_env()
        setup_logging(config.logging.level)

    app = FastAPI(title="accessgate API", version="1.0.0")

    db = SqliteDatabase(resolve_state_path(config))
    codec = CredentialCodec(config.auth)
    queue = DeliveryQueue(db, queue_settings_from_config(config.delivery))
    auth_service = AuthService(
        accounts=AccountRepository(db),
        codec=codec,
        sessions=SessionLedger(
            db, codec, revoke_on_reuse=config.auth.revoke_on_refresh_reuse
        ),
        verifications=VerificationLedger(db, codec),
        queue=queue,
        frontend_url=config.mail.frontend_url,
    )
    pool = build_worker_pool(queue, mailer or build_mailer(config.mail), config.delivery)

    app.state.config = config
    app.state.db = db
    app.state.queue = queue
    app.state.auth_service = auth_service
    app.state.worker_pool = pool

    app.include_router(create_auth_router(auth_service, config.auth))
    app.middleware("http")(create_auth_middleware(auth_service))
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, config=config, logger=LOGGER)
    # Outermost: preflight requests never reach the bearer check.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.on_event("startup")
    async def startup_delivery_workers() -> None:
        if config.delivery.embedded_workers:
            await pool.start()

    @app.on_event("shutdown")
    async def shutdown_delivery_workers() -> None:
        await pool.stop(config.delivery.shutdown_grace_seconds)
        db.close()

    return app
