"""Asyncio connection pool for Supabase client handles.

- **ConnectionPool**: bounded pool with a FIFO waiting queue, idle reaping,
  statistics and retry-wrapped query execution
- **PoolConfig**: immutable configuration, from code, dicts or the environment
- **Backends**: Supabase clients by default, asyncpg connections optionally

Example:
    ```python
    from supabase_pool import ConnectionPool, PoolConfig

    pool = ConnectionPool(PoolConfig.from_env())
    await pool.warm_up()
    result = await pool.execute_query(
        lambda client: client.table("campaigns").select("id").execute()
    )
    print(pool.get_status())
    await pool.shutdown()
    ```
"""

from supabase_pool.clients import POSTGRES_BACKEND, SUPABASE_BACKEND, ClientBackend
from supabase_pool.config import PoolConfig
from supabase_pool.exceptions import (
    AcquisitionTimeoutError,
    ConnectionCreationError,
    PoolConfigurationError,
    PoolError,
    PoolInitializationError,
    PoolShutdownError,
    QueryTimeoutError,
    ResourceError,
)
from supabase_pool.pool import ConnectionPool, PooledConnection, PoolLease
from supabase_pool.retry import BackoffStrategy, RetryConfig, RetryExecutor
from supabase_pool.shared import get_instance, reset_instance
from supabase_pool.stats import PoolStats

__version__ = "1.0.0"

__all__ = [
    "__version__",
    # Pool
    "ConnectionPool",
    "PooledConnection",
    "PoolLease",
    "PoolStats",
    "get_instance",
    "reset_instance",
    # Configuration
    "PoolConfig",
    "BackoffStrategy",
    "RetryConfig",
    "RetryExecutor",
    # Backends
    "ClientBackend",
    "SUPABASE_BACKEND",
    "POSTGRES_BACKEND",
    # Exceptions
    "PoolError",
    "PoolConfigurationError",
    "PoolInitializationError",
    "ResourceError",
    "ConnectionCreationError",
    "AcquisitionTimeoutError",
    "PoolShutdownError",
    "QueryTimeoutError",
]
