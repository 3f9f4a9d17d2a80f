"""Cassandra session for the progress store (cassandra-asyncio-driver).

The session exposes ``aexecute()`` on top of the regular cassandra-driver
session. On startup the keyspace and every progress table (per-level
progress, adjacency, total progress) are created if missing.
"""

import structlog
from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from coursetrack.config.settings import Settings, get_settings
from coursetrack.progress.models import PROGRESS_TABLES_CQL


logger = structlog.get_logger(__name__)


def build_cluster(settings: Settings) -> Cluster:
    """Cluster configured from settings (token aware, local DC first)."""
    auth_provider = None
    if settings.cassandra_username and settings.cassandra_password:
        auth_provider = PlainTextAuthProvider(
            username=settings.cassandra_username,
            password=settings.cassandra_password,
        )

    return Cluster(
        contact_points=settings.cassandra_hosts,
        port=settings.cassandra_port,
        auth_provider=auth_provider,
        protocol_version=settings.cassandra_protocol_version,
        load_balancing_policy=TokenAwarePolicy(
            DCAwareRoundRobinPolicy(local_dc=settings.cassandra_local_datacenter)
        ),
        connect_timeout=settings.cassandra_connect_timeout,
    )


class AsyncCassandraConnection:
    """Process-wide cluster and session holder."""

    _cluster: Cluster | None = None
    _session = None

    @classmethod
    def connect(cls):
        """Open the session once and reuse it afterwards.

        Raises:
            ConnectionError: If no contact point answers
        """
        if cls._session is not None:
            return cls._session

        settings = get_settings()
        cls._cluster = build_cluster(settings)

        try:
            session = cls._cluster.connect()
        except Exception as e:
            logger.error(
                "cassandra_connection_failed",
                hosts=settings.cassandra_hosts,
                error=str(e),
            )
            cls._cluster.shutdown()
            cls._cluster = None
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        # Applies to every aexecute() without an explicit timeout
        session.default_timeout = settings.cassandra_request_timeout
        cls._session = session
        logger.info(
            "cassandra_connected",
            hosts=settings.cassandra_hosts,
            local_dc=settings.cassandra_local_datacenter,
        )
        return session

    @classmethod
    def get_session(cls):
        """Current session, connecting on first use."""
        return cls._session if cls._session is not None else cls.connect()

    @classmethod
    def disconnect(cls) -> None:
        """Shut down session and cluster (no-op when not connected)."""
        if cls._session is not None:
            cls._session.shutdown()
            cls._session = None
        if cls._cluster is not None:
            cls._cluster.shutdown()
            cls._cluster = None
            logger.info("cassandra_disconnected")

    @classmethod
    def is_connected(cls) -> bool:
        return cls._session is not None and not cls._session.is_shutdown


def keyspace_replication(settings: Settings) -> str:
    """Replication map literal for CREATE KEYSPACE."""
    if settings.is_production:
        return (
            "{'class': 'NetworkTopologyStrategy', "
            f"'{settings.cassandra_local_datacenter}': "
            f"{settings.cassandra_replication_factor}}}"
        )
    return (
        "{'class': 'SimpleStrategy', "
        f"'replication_factor': {settings.cassandra_replication_factor}}}"
    )


async def create_progress_schema(session, settings: Settings) -> None:
    """Create the keyspace and the progress tables if missing."""
    keyspace = settings.cassandra_keyspace

    await session.aexecute(
        f"CREATE KEYSPACE IF NOT EXISTS {keyspace} "
        f"WITH replication = {keyspace_replication(settings)} "
        "AND durable_writes = true"
    )
    for cql_template in PROGRESS_TABLES_CQL:
        await session.aexecute(cql_template.format(keyspace=keyspace))

    logger.info(
        "progress_schema_ready",
        keyspace=keyspace,
        statements=len(PROGRESS_TABLES_CQL),
    )


async def init_async_cassandra():
    """Connect and make sure the progress schema exists.

    Returns:
        Session bound to the progress keyspace, with aexecute() support
    """
    settings = get_settings()
    session = AsyncCassandraConnection.connect()

    await create_progress_schema(session, settings)
    session.set_keyspace(settings.cassandra_keyspace)

    return session


async def shutdown_async_cassandra() -> None:
    AsyncCassandraConnection.disconnect()
