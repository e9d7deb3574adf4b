"""PostgreSQL backend pooling bare asyncpg connections."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .base import ClientBackend

if TYPE_CHECKING:
    from ..config import PoolConfig


async def create_asyncpg_connection(config: PoolConfig) -> Any:
    """Open an asyncpg connection to ``config.url``.

    ``config.key``, when set, is used as the password and overrides any
    password embedded in the DSN.
    """
    import asyncpg
    return await asyncpg.connect(
        config.url,
        password=config.key or None,
        timeout=config.connection_timeout,
    )


async def validate_asyncpg_connection(conn: Any, config: PoolConfig) -> None:
    """Validate an asyncpg connection by running a simple query."""
    await conn.fetchval("SELECT 1")


async def close_asyncpg_connection(conn: Any) -> None:
    await conn.close()


POSTGRES_BACKEND = ClientBackend(
    name="postgres",
    create_handle=create_asyncpg_connection,
    validate_handle=validate_asyncpg_connection,
    close_handle=close_asyncpg_connection,
)
