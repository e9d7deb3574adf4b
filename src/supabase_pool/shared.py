"""Process-wide shared pool.

Applications that want exactly one pool per process can use
:func:`get_instance` instead of passing a :class:`ConnectionPool` around.
Libraries and tests should construct their own pools.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .clients.supabase import SUPABASE_BACKEND
from .exceptions import PoolInitializationError
from .pool import ConnectionPool

if TYPE_CHECKING:
    from .clients.base import ClientBackend
    from .config import PoolConfig

logger = logging.getLogger(__name__)

_shared_pool: ConnectionPool | None = None


def get_instance(
    config: PoolConfig | None = None, backend: ClientBackend = SUPABASE_BACKEND
) -> ConnectionPool:
    """Get the shared pool, creating it on first use.

    Once created, the same pool is returned and any ``config`` passed is
    ignored. A pool that has been shut down is replaced on the next call
    that supplies a config.

    Args:
        config: Required the first time (and after shutdown)
        backend: Backend used when the pool is created

    Returns:
        The shared ConnectionPool

    Raises:
        PoolInitializationError: If no pool exists and no config was given
    """
    global _shared_pool

    if _shared_pool is not None and not _shared_pool.is_closed:
        if config is not None and config != _shared_pool.config:
            logger.debug("Shared connection pool already exists, ignoring new config")
        return _shared_pool

    if config is None:
        raise PoolInitializationError(
            "Connection pool is not initialized: pass a PoolConfig on first use"
        )

    _shared_pool = ConnectionPool(config, backend)
    logger.info(f"Created shared connection pool (pool_size={config.pool_size})")
    return _shared_pool


async def reset_instance() -> None:
    """Shut down and forget the shared pool, if there is one."""
    global _shared_pool

    pool, _shared_pool = _shared_pool, None
    if pool is not None:
        await pool.shutdown()
