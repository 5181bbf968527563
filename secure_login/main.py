"""FastAPI application wiring for the secure login service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .config import Settings, get_settings
from .domain.lockout import LockoutPolicy
from .domain.service import AuthenticationService, RegistrationService
from .repository import AccountRepository
from .security.passwords import PasswordHasher

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_services(repository: AccountRepository, config: Settings) -> tuple[RegistrationService, AuthenticationService]:
    """Construct the services around one shared repository handle."""
    hasher = PasswordHasher(rounds=config.bcrypt_rounds)
    policy = LockoutPolicy(
        threshold=config.lockout_threshold,
        lock_duration=timedelta(seconds=config.lockout_duration_seconds),
    )
    return (
        RegistrationService(repository, hasher),
        AuthenticationService(repository, hasher, policy),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    repository = AccountRepository(pool)
    repository.ensure_schema()
    app.state.pool = pool
    app.state.registration_service, app.state.authentication_service = build_services(
        repository, settings
    )
    logger.info("%s %s ready", settings.app_name, settings.version)
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
