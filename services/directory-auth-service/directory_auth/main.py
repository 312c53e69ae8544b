"""FastAPI application wiring for the directory auth service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI, Response
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .config import Settings, get_settings
from .directory.client import DirectoryClient, DirectoryOptions
from .domain.service import CredentialResolver
from .repository import PrincipalRepository
from .security.passwords import PasswordHasher
from .security.provisioning_lock import InMemoryProvisioningLock
from .security.redis_provisioning_lock import RedisProvisioningLock

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_provisioning_lock(settings: Settings) -> InMemoryProvisioningLock | RedisProvisioningLock:
    """Instantiate the configured provisioning lock backend, preferring Redis when available."""
    if settings.provisioning_lock_backend == "redis" and settings.redis_url:
        try:
            import redis

            client = redis.from_url(settings.redis_url)
            # ensure connectivity early to fail fast and fall back
            client.ping()
            logger.info("provisioning lock configured for redis backend at %s", settings.redis_url)
            return RedisProvisioningLock(client, timeout_seconds=settings.provisioning_lock_timeout_seconds)
        except Exception as exc:  # pragma: no cover - depends on a live redis
            logger.warning("redis provisioning lock unavailable, falling back to in-memory: %s", exc)

    logger.info("provisioning lock using in-memory backend")
    return InMemoryProvisioningLock(timeout_seconds=settings.provisioning_lock_timeout_seconds)


def build_resolver(settings: Settings, repository: PrincipalRepository) -> CredentialResolver:
    """Assemble the credential resolver from settings."""
    return CredentialResolver(
        repository,
        partial(DirectoryClient, DirectoryOptions.from_settings(settings)),
        password_hasher=PasswordHasher(settings.password_salt, settings.password_hash_iterations),
        provisioning_lock=build_provisioning_lock(settings),
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, resolver) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    app.state.pool = pool
    app.state.credential_resolver = build_resolver(settings, PrincipalRepository(pool))
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


app.include_router(v1_router)


# Prometheus metrics endpoint for Prometheus scrapes
try:
    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
except ImportError:  # pragma: no cover - metrics are optional in dev
    pass


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""
    import uvicorn

    uvicorn.run(app, host=settings.http_host, port=settings.http_port)
