"""Supabase client backend."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .base import ClientBackend

if TYPE_CHECKING:
    from ..config import PoolConfig


async def create_supabase_client(config: PoolConfig) -> Any:
    """Create an async Supabase client for pooled, stateless use.

    Session persistence and token auto-refresh are disabled: the pool owns
    the handle's lifecycle, not the client.
    """
    from supabase import acreate_client
    from supabase.lib.client_options import AsyncClientOptions

    options = AsyncClientOptions(persist_session=False, auto_refresh_token=False)
    return await acreate_client(config.url, config.key, options=options)


async def validate_supabase_client(client: Any, config: PoolConfig) -> None:
    """Validate a Supabase client by selecting at most one row."""
    await client.table(config.validation_table).select("*").limit(1).execute()


SUPABASE_BACKEND = ClientBackend(
    name="supabase",
    create_handle=create_supabase_client,
    validate_handle=validate_supabase_client,
)
