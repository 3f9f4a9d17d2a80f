"""coursetrack - composition root.

Wires the progress service to Cassandra (and Redis, when cascade locks are
distributed) for embedding applications and scripts:

    async with lifespan() as progress_service:
        await progress_service.complete_section_items(...)
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from coursetrack.config import get_settings
from coursetrack.core.database import init_async_cassandra, shutdown_async_cassandra
from coursetrack.core.logging import configure_structlog, get_logger
from coursetrack.core.redis import init_redis, shutdown_redis
from coursetrack.progress.cassandra_repository import CassandraProgressRepository
from coursetrack.progress.locks import build_cascade_lock
from coursetrack.progress.service import ProgressService


logger = get_logger(__name__)


# Application state for dependency injection
class AppState:
    """Application state container."""

    cassandra_session: Any = None
    redis_client: Any = None
    progress_service: ProgressService | None = None


app_state = AppState()


def get_progress_service() -> ProgressService:
    """Get ProgressService instance from app state."""
    if app_state.progress_service is None:
        msg = "ProgressService not initialized"
        raise RuntimeError(msg)
    return app_state.progress_service


@asynccontextmanager
async def lifespan(configure_logging: bool = True) -> AsyncGenerator[ProgressService, None]:
    """Connect storage, build the progress service and tear down on exit."""
    settings = get_settings()
    if configure_logging:
        configure_structlog(settings)

    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        lock_backend=settings.progress_lock_backend,
    )

    # Redis only backs distributed cascade locks
    if settings.uses_redis_lock:
        app_state.redis_client = await init_redis()

    try:
        app_state.cassandra_session = await init_async_cassandra()
        logger.info("cassandra_initialized")

        repository = CassandraProgressRepository(
            session=app_state.cassandra_session,
            keyspace=settings.cassandra_keyspace,
            max_batch_statements=settings.cassandra_max_batch_statements,
        )
        app_state.progress_service = ProgressService(
            repository=repository,
            lock=build_cascade_lock(settings, app_state.redis_client),
        )
        logger.info("progress_service_initialized")
    except Exception as e:
        logger.error("startup_failed", error=str(e))
        await shutdown_redis()
        raise

    try:
        yield app_state.progress_service
    finally:
        logger.info("shutting_down_application")
        app_state.progress_service = None
        await shutdown_async_cassandra()
        app_state.cassandra_session = None
        await shutdown_redis()
        app_state.redis_client = None
