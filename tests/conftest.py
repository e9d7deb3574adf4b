"""Pytest configuration and fake client backend for supabase_pool tests."""

import asyncio
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add the package source to path for testing
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from supabase_pool import ClientBackend, ConnectionPool, PoolConfig  # noqa: E402


class FakeClient:
    """Stand-in for a Supabase client."""

    def __init__(self, number: int):
        self.number = number
        self.closed = False
        self.queries: list[str] = []

    async def query(self, sql: str) -> str:
        await asyncio.sleep(0)
        self.queries.append(sql)
        return f"{sql} on client {self.number}"


class ProbeError(Exception):
    """Error shaped like a PostgREST API error."""

    def __init__(self, code: str):
        super().__init__(f"probe failed with {code}")
        self.code = code


class FakeClientFactory:
    """Creates FakeClients and records what the pool did with them.

    Attributes:
        create_delay: Seconds each creation takes
        create_delays: Per-creation delays, consumed in order before create_delay
        validate_delay: Seconds each validation probe takes
        create_error: Raised by the factory when set
        create_failures: How many creations raise create_error (-1 for all)
        probe_error: Raised by the validation probe when set
        close_error: Raised when closing a client when set
    """

    def __init__(self):
        self.created: list[FakeClient] = []
        self.closed: list[FakeClient] = []
        self.create_delay = 0.0
        self.create_delays: list[float] = []
        self.validate_delay = 0.0
        self.create_error: Exception | None = None
        self.create_failures = -1
        self.probe_error: Exception | None = None
        self.close_error: Exception | None = None

    async def create(self, config):
        delay = self.create_delays.pop(0) if self.create_delays else self.create_delay
        if delay:
            await asyncio.sleep(delay)
        if self.create_error is not None and self.create_failures != 0:
            self.create_failures -= 1
            raise self.create_error
        client = FakeClient(len(self.created) + 1)
        self.created.append(client)
        return client

    async def validate(self, client, config):
        await asyncio.sleep(self.validate_delay)
        if self.probe_error is not None:
            raise self.probe_error

    async def close(self, client):
        if self.close_error is not None:
            raise self.close_error
        client.closed = True
        self.closed.append(client)

    @property
    def backend(self) -> ClientBackend:
        return ClientBackend(
            name="fake",
            create_handle=self.create,
            validate_handle=self.validate,
            close_handle=self.close,
        )


def make_config(**overrides) -> PoolConfig:
    """PoolConfig with short timings suitable for tests."""
    values = {
        "url": "https://test-project.supabase.co",
        "key": "service-role-key",
        "pool_size": 2,
        "connection_timeout": 0.1,
        "idle_timeout": 300.0,
        "retry_attempts": 3,
        "retry_delay": 0.0,
        "cleanup_interval": 30.0,
    }
    values.update(overrides)
    return PoolConfig(**values)


@pytest.fixture
def client_factory():
    return FakeClientFactory()


@pytest_asyncio.fixture
async def make_pool(client_factory):
    """Build pools on the fake backend; every pool is shut down afterwards."""
    pools = []

    def _make(**overrides) -> ConnectionPool:
        pool = ConnectionPool(make_config(**overrides), client_factory.backend)
        pools.append(pool)
        return pool

    yield _make

    for pool in pools:
        await pool.shutdown()


@pytest_asyncio.fixture
async def pool(make_pool):
    """Pool of two connections with a 100ms connection timeout."""
    return make_pool()


def assert_counters_consistent(pool: ConnectionPool) -> None:
    stats = pool.get_stats()
    assert stats.active_connections + stats.idle_connections == stats.total_connections
    assert stats.total_connections == pool.size
    assert pool.size <= pool.config.pool_size
