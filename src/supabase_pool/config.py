"""Connection pool configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

from dotenv import load_dotenv

from .exceptions import PoolConfigurationError
from .retry import BackoffStrategy

DEFAULT_POOL_SIZE = 10
DEFAULT_CONNECTION_TIMEOUT = 5.0
DEFAULT_IDLE_TIMEOUT = 300.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_CLEANUP_INTERVAL = 30.0
DEFAULT_VALIDATION_TABLE = "_health_check"


@dataclass(frozen=True)
class PoolConfig:
    """Immutable configuration for a :class:`~supabase_pool.pool.ConnectionPool`.

    Durations are in seconds.

    Attributes:
        url: Endpoint URL (Supabase project URL or PostgreSQL DSN)
        key: Credential used when creating handles (service key or password)
        pool_size: Maximum number of handles, active or idle
        connection_timeout: Maximum time a caller waits in the queue for a handle
        idle_timeout: Idle time after which a handle is reaped
        retry_attempts: Retries after the first attempt in ``execute_query``
        retry_delay: Delay before each retry
        retry_backoff: How the retry delay evolves between attempts
        cleanup_interval: Period of the idle-reaper task
        query_timeout: Optional cap on how long ``execute_query`` may hold a handle
        validation_table: Table probed when validating a new Supabase handle
    """

    url: str
    key: str = field(default="", repr=False)
    pool_size: int = DEFAULT_POOL_SIZE
    connection_timeout: float = DEFAULT_CONNECTION_TIMEOUT
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    retry_backoff: BackoffStrategy = BackoffStrategy.FIXED
    cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL
    query_timeout: float | None = None
    validation_table: str = DEFAULT_VALIDATION_TABLE

    def __post_init__(self) -> None:
        if self.pool_size < 1:
            raise PoolConfigurationError("pool_size", f"must be >= 1, got {self.pool_size}")
        if self.connection_timeout <= 0:
            raise PoolConfigurationError("connection_timeout", "must be positive")
        if self.idle_timeout < 0:
            raise PoolConfigurationError("idle_timeout", "must not be negative")
        if self.retry_attempts < 0:
            raise PoolConfigurationError("retry_attempts", "must not be negative")
        if self.retry_delay < 0:
            raise PoolConfigurationError("retry_delay", "must not be negative")
        if self.cleanup_interval <= 0:
            raise PoolConfigurationError("cleanup_interval", "must be positive")
        if self.query_timeout is not None and self.query_timeout <= 0:
            raise PoolConfigurationError("query_timeout", "must be positive when set")

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> PoolConfig:
        """Create from a configuration dictionary.

        Accepts the attribute names of this class. ``retry_backoff`` may be
        given as a :class:`BackoffStrategy` or its string value.

        Args:
            config: Configuration dict; ``url`` is required

        Returns:
            PoolConfig instance
        """
        if not config.get("url"):
            raise PoolConfigurationError("url", "is required")

        backoff = config.get("retry_backoff", BackoffStrategy.FIXED)
        if not isinstance(backoff, BackoffStrategy):
            try:
                backoff = BackoffStrategy(str(backoff).lower())
            except ValueError as e:
                raise PoolConfigurationError("retry_backoff", f"unknown strategy {backoff!r}") from e

        query_timeout = config.get("query_timeout")

        return cls(
            url=config["url"],
            key=config.get("key", ""),
            pool_size=int(config.get("pool_size", DEFAULT_POOL_SIZE)),
            connection_timeout=float(config.get("connection_timeout", DEFAULT_CONNECTION_TIMEOUT)),
            idle_timeout=float(config.get("idle_timeout", DEFAULT_IDLE_TIMEOUT)),
            retry_attempts=int(config.get("retry_attempts", DEFAULT_RETRY_ATTEMPTS)),
            retry_delay=float(config.get("retry_delay", DEFAULT_RETRY_DELAY)),
            retry_backoff=backoff,
            cleanup_interval=float(config.get("cleanup_interval", DEFAULT_CLEANUP_INTERVAL)),
            query_timeout=float(query_timeout) if query_timeout is not None else None,
            validation_table=config.get("validation_table", DEFAULT_VALIDATION_TABLE),
        )

    @classmethod
    def from_env(cls, prefix: str = "SUPABASE_", dotenv_path: str | None = None) -> PoolConfig:
        """Create from environment variables, loading a ``.env`` file first.

        Variables (with the default prefix):

        - ``SUPABASE_URL`` or ``NEXT_PUBLIC_SUPABASE_URL``
        - ``SUPABASE_SERVICE_ROLE_KEY`` or ``SUPABASE_KEY``
        - ``SUPABASE_POOL_SIZE``
        - ``SUPABASE_CONNECTION_TIMEOUT``, ``SUPABASE_IDLE_TIMEOUT`` and
          ``SUPABASE_RETRY_DELAY``, all in milliseconds
        - ``SUPABASE_RETRY_ATTEMPTS``

        Args:
            prefix: Prefix of the variable names
            dotenv_path: Explicit ``.env`` file; searched for when None

        Returns:
            PoolConfig instance
        """
        load_dotenv(dotenv_path)

        url = os.getenv(f"{prefix}URL") or os.getenv(f"NEXT_PUBLIC_{prefix}URL")
        if not url:
            raise PoolConfigurationError("url", f"set {prefix}URL in the environment")

        key = os.getenv(f"{prefix}SERVICE_ROLE_KEY") or os.getenv(f"{prefix}KEY", "")

        return cls(
            url=url,
            key=key,
            pool_size=_env_int(f"{prefix}POOL_SIZE", DEFAULT_POOL_SIZE),
            connection_timeout=_env_millis(
                f"{prefix}CONNECTION_TIMEOUT", DEFAULT_CONNECTION_TIMEOUT
            ),
            idle_timeout=_env_millis(f"{prefix}IDLE_TIMEOUT", DEFAULT_IDLE_TIMEOUT),
            retry_attempts=_env_int(f"{prefix}RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS),
            retry_delay=_env_millis(f"{prefix}RETRY_DELAY", DEFAULT_RETRY_DELAY),
        )


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise PoolConfigurationError(name, f"expected an integer, got {value!r}") from e


def _env_millis(name: str, default: float) -> float:
    """Read a millisecond duration and return it in seconds."""
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value) / 1000.0
    except ValueError as e:
        raise PoolConfigurationError(name, f"expected milliseconds, got {value!r}") from e
