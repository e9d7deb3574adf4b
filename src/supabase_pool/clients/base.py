"""Backend contract for the handles a pool manages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ..config import PoolConfig


# Error codes meaning "the probed relation does not exist yet". A handle that
# gets one of these back is live; the schema just hasn't been provisioned.
MISSING_RESOURCE_CODES = frozenset({
    "PGRST116",  # PostgREST: no rows returned for a single-row request
    "PGRST205",  # PostgREST: table not found in the schema cache
    "42P01",     # PostgreSQL: undefined_table
})


@dataclass(frozen=True)
class ClientBackend:
    """How to create, validate and close the handles of one kind of client.

    Attributes:
        name: Backend name used in logs and errors
        create_handle: Async factory building a new handle from the config
        validate_handle: Async probe issuing a cheap query against a new handle
        close_handle: Optional async function releasing a handle's transport
    """

    name: str
    create_handle: Callable[[PoolConfig], Awaitable[Any]]
    validate_handle: Callable[[Any, PoolConfig], Awaitable[None]]
    close_handle: Callable[[Any], Awaitable[None]] | None = None


def is_missing_resource_error(error: BaseException) -> bool:
    """Check whether a probe error only says the probed table is missing.

    Looks at the ``code`` attribute (PostgREST errors) and the ``sqlstate``
    attribute (asyncpg errors).
    """
    for attr in ("code", "sqlstate"):
        code = getattr(error, attr, None)
        if code is not None and str(code) in MISSING_RESOURCE_CODES:
            return True
    return False
