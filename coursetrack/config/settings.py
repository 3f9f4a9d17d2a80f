"""Settings of the progress service (environment variables or ``.env``)."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Progress service settings.

    Field names map to upper-case environment variables
    (``PROGRESS_LOCK_BACKEND=redis``, ``CASSANDRA_KEYSPACE=...``).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="coursetrack", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )

    # Progress cascade
    progress_lock_backend: Literal["local", "redis"] = Field(
        default="local",
        description="Per-student cascade lock: in-process or Redis (multi-worker)",
    )
    progress_lock_prefix: str = Field(
        default="coursetrack:cascade", description="Redis key prefix for cascade locks"
    )
    progress_lock_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Lease of a held cascade lock (Redis only)"
    )
    progress_lock_blocking_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Max wait to acquire a cascade lock"
    )

    # Cassandra (progress store)
    cassandra_hosts: list[str] = Field(default=["localhost"], description="Contact points")
    cassandra_port: int = Field(default=9042, description="Native protocol port")
    cassandra_keyspace: str = Field(default="coursetrack", description="Progress keyspace")
    cassandra_username: str | None = Field(default=None, description="Cassandra user")
    cassandra_password: str | None = Field(default=None, description="Cassandra password")
    cassandra_protocol_version: int = Field(default=4, description="Protocol version")
    cassandra_connect_timeout: float = Field(default=10.0, description="Connect timeout")
    cassandra_request_timeout: float = Field(
        default=10.0, description="Default timeout of every query"
    )
    cassandra_local_datacenter: str = Field(
        default="datacenter1", description="Datacenter queried first"
    )
    cassandra_replication_factor: int = Field(
        default=1, ge=1, description="Replication factor of the progress keyspace"
    )
    cassandra_max_batch_statements: int = Field(
        default=65535,
        ge=1,
        le=65535,
        description="Largest LOGGED batch written by one initialization call",
    )

    # Redis (distributed cascade locks only)
    redis_url: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    redis_max_connections: int = Field(default=10, description="Max Redis connections")
    redis_socket_timeout: float = Field(default=5.0, description="Socket timeout")
    redis_socket_connect_timeout: float = Field(default=5.0, description="Connect timeout")
    redis_retry_on_timeout: bool = Field(default=True, description="Retry on timeout")
    redis_health_check_interval: int = Field(
        default=30, description="Health check interval"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Console log format (files are always JSON)"
    )
    log_include_caller_info: bool = Field(
        default=True, description="Add file, line and function to events"
    )
    log_dir: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, description="Max size per log file (10MB default)"
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of rotated files to keep"
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def uses_redis_lock(self) -> bool:
        """Whether completion calls are serialized through Redis."""
        return self.progress_lock_backend == "redis"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
