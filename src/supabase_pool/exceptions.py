"""Exception hierarchy for the connection pool.

Every error raised by the pool derives from :class:`PoolError`, which carries
an optional context dictionary with details about the pool at the time of
failure.

Example:
    ```python
    from supabase_pool.exceptions import AcquisitionTimeoutError, PoolError

    try:
        result = await pool.execute_query(fetch_users)
    except AcquisitionTimeoutError as e:
        logger.warning(f"Pool exhausted: {e.context}")
    except PoolError as e:
        logger.error(f"Query failed: {e}")
    ```
"""

from __future__ import annotations

from typing import Any


class PoolError(Exception):
    """Base exception for all connection pool errors.

    Attributes:
        context: Dictionary containing contextual information about the error
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class PoolConfigurationError(PoolError):
    """Raised when pool configuration is invalid or missing."""

    def __init__(self, parameter: str, message: str):
        self.parameter = parameter
        super().__init__(
            f"Configuration error for '{parameter}': {message}", context={"parameter": parameter}
        )


class PoolInitializationError(PoolError):
    """Raised when the shared pool is requested before it was configured."""

    pass


class ResourceError(PoolError):
    """Raised when a pooled resource cannot be obtained.

    Callers can catch this to handle every "no connection for you" outcome
    (creation failure, exhausted pool, shutdown) in one place.
    """

    pass


class ConnectionCreationError(ResourceError):
    """Raised when a new client handle could not be created or validated."""

    def __init__(self, backend: str, message: str):
        self.backend = backend
        super().__init__(
            f"Failed to create {backend} connection: {message}", context={"backend": backend}
        )


class AcquisitionTimeoutError(ResourceError):
    """Raised when a queued caller waited longer than the connection timeout."""

    def __init__(self, timeout: float, pool_size: int, in_use: int):
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout:.3f}s waiting for a connection "
            f"({in_use} of {pool_size} connections in use)",
            context={"timeout": timeout, "pool_size": pool_size, "in_use": in_use},
        )


class PoolShutdownError(ResourceError):
    """Raised for requests that are pending or made while the pool shuts down."""

    def __init__(self, message: str = "Connection pool is shutting down"):
        super().__init__(message)


class QueryTimeoutError(PoolError):
    """Raised when a query held its connection longer than the query timeout."""

    def __init__(self, timeout: float, connection_id: str):
        self.timeout = timeout
        self.connection_id = connection_id
        super().__init__(
            f"Query on connection {connection_id} exceeded {timeout:.3f}s",
            context={"timeout": timeout, "connection_id": connection_id},
        )


__all__ = [
    "PoolError",
    "PoolConfigurationError",
    "PoolInitializationError",
    "ResourceError",
    "ConnectionCreationError",
    "AcquisitionTimeoutError",
    "PoolShutdownError",
    "QueryTimeoutError",
]
