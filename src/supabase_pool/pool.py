"""Bounded asyncio connection pool with a FIFO waiting queue.

The pool hands out :class:`PoolLease` objects, each granting exclusive use of
one client handle until it is released. Handles are created lazily up to
``pool_size``; callers arriving when every handle is busy wait in a FIFO queue
for up to ``connection_timeout`` seconds. A background task reaps handles
that have sat idle longer than ``idle_timeout``.

All bookkeeping runs on the event loop between suspension points, so no lock
guards the connection map, the queue or the statistics. Scanning for an idle
connection and marking it active happen without an ``await`` in between.

Example:
    ```python
    pool = ConnectionPool(PoolConfig.from_env())
    await pool.warm_up()

    rows = await pool.execute_query(
        lambda client: client.table("leads").select("*").execute()
    )

    async with pool.connection() as client:
        ...

    await pool.shutdown()
    ```
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from .clients.base import is_missing_resource_error
from .clients.supabase import SUPABASE_BACKEND
from .exceptions import (
    AcquisitionTimeoutError,
    ConnectionCreationError,
    PoolError,
    PoolShutdownError,
    QueryTimeoutError,
)
from .retry import RetryConfig, RetryExecutor
from .stats import PoolStats

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from .clients.base import ClientBackend
    from .config import PoolConfig

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class PooledConnection:
    """One client handle owned by the pool, plus its usage metadata."""

    connection_id: str
    handle: Any = field(repr=False)
    created_at: float = field(default_factory=time.monotonic)
    last_used: float = field(default_factory=time.monotonic)
    is_active: bool = False
    query_count: int = 0
    lease: PoolLease | None = field(default=None, repr=False, compare=False)

    def idle_seconds(self, now: float | None = None) -> float:
        """Seconds since the connection was last activated or released."""
        return (time.monotonic() if now is None else now) - self.last_used


class PoolLease:
    """Exclusive use of one pooled handle, from acquisition to release.

    A lease releases its connection at most once; later calls to
    :meth:`release` are logged and ignored. Leases are async context
    managers that yield the handle and release it on exit.
    """

    def __init__(self, pool: ConnectionPool, connection_id: str, handle: Any):
        self._pool = pool
        self.connection_id = connection_id
        self.handle = handle
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    async def release(self) -> None:
        await self._pool.release(self)

    async def __aenter__(self) -> Any:
        return self.handle

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else "held"
        return f"PoolLease({self.connection_id!r}, {state})"


@dataclass
class _Waiter:
    """A queued acquisition request."""

    future: asyncio.Future
    enqueued_at: float
    timer: asyncio.TimerHandle | None = None


class ConnectionPool:
    """Connection pool for Supabase (or other) client handles.

    Args:
        config: Pool configuration
        backend: How handles are created, validated and closed
    """

    def __init__(self, config: PoolConfig, backend: ClientBackend = SUPABASE_BACKEND):
        self.config = config
        self.backend = backend

        self._connections: dict[str, PooledConnection] = {}
        self._waiters: deque[_Waiter] = deque()
        self._stats = PoolStats()
        self._response_samples = 0
        # Creations in flight count against pool_size before they finish
        self._pending_creations = 0

        self._reaper: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._closed = False

    # -- properties ---------------------------------------------------------

    @property
    def size(self) -> int:
        """Number of connections currently owned by the pool."""
        return len(self._connections)

    @property
    def waiting_count(self) -> int:
        """Number of callers queued for a connection."""
        return sum(1 for waiter in self._waiters if not waiter.future.done())

    @property
    def is_closed(self) -> bool:
        return self._closed

    # -- acquisition --------------------------------------------------------

    async def acquire(self) -> PoolLease:
        """Acquire exclusive use of a connection.

        Reuses an idle connection when there is one, creates a new one while
        under ``pool_size``, and otherwise waits in the FIFO queue.

        Returns:
            Lease on the connection; release it exactly once

        Raises:
            ConnectionCreationError: If a new connection failed validation
            AcquisitionTimeoutError: If no connection freed up within
                ``connection_timeout``
            PoolShutdownError: If the pool is or becomes shut down
        """
        self._check_open()
        self._ensure_reaper()
        started = time.perf_counter()

        conn = None
        # Late arrivals queue behind live waiters
        if not self.waiting_count:
            conn = self._find_idle()
            if conn is None and self._has_capacity():
                self._pending_creations += 1
                try:
                    conn = await self._create_connection()
                except (ConnectionCreationError, asyncio.CancelledError):
                    self._replenish_for_waiters()
                    raise

        if conn is not None:
            lease = self._activate(conn)
        else:
            lease = await self._wait_for_connection()

        self._record_response_time(started)
        return lease

    async def get_connection(self) -> PoolLease:
        """Low-level acquisition; pair every call with :meth:`release_connection`."""
        return await self.acquire()

    async def release(self, lease: PoolLease) -> None:
        """Return a leased connection to the pool.

        The connection goes straight to the oldest queued caller if there is
        one. Releasing an unknown or already-released lease is logged and
        otherwise ignored.
        """
        if lease.released:
            logger.warning(f"Connection {lease.connection_id} was already released")
            return

        conn = self._connections.get(lease.connection_id)
        if conn is None or conn.lease is not lease:
            logger.warning(f"Release of unknown connection {lease.connection_id} ignored")
            return

        lease._released = True
        conn.lease = None
        conn.is_active = False
        conn.last_used = time.monotonic()
        conn.query_count += 1
        self._stats.active_connections -= 1
        self._stats.idle_connections += 1

        self._hand_off(conn)

    async def release_connection(self, lease: PoolLease) -> None:
        """Counterpart of :meth:`get_connection`."""
        await self.release(lease)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Any]:
        """Acquire a handle for the duration of a block.

        Usage:
            async with pool.connection() as client:
                await client.table("events").insert(row).execute()
        """
        lease = await self.acquire()
        try:
            yield lease.handle
        finally:
            await lease.release()

    def _find_idle(self) -> PooledConnection | None:
        for conn in self._connections.values():
            if not conn.is_active:
                return conn
        return None

    def _has_capacity(self) -> bool:
        return len(self._connections) + self._pending_creations < self.config.pool_size

    def _activate(self, conn: PooledConnection) -> PoolLease:
        lease = PoolLease(self, conn.connection_id, conn.handle)
        conn.lease = lease
        conn.is_active = True
        conn.last_used = time.monotonic()
        self._stats.active_connections += 1
        self._stats.idle_connections -= 1
        self._stats.total_queries += 1
        return lease

    async def _wait_for_connection(self) -> PoolLease:
        loop = asyncio.get_running_loop()
        waiter = _Waiter(future=loop.create_future(), enqueued_at=time.monotonic())
        waiter.timer = loop.call_later(
            self.config.connection_timeout, self._expire_waiter, waiter
        )
        self._waiters.append(waiter)
        logger.debug(f"Pool saturated, {len(self._waiters)} caller(s) waiting")
        self._serve_waiters()

        try:
            return await waiter.future
        except asyncio.CancelledError:
            waiter.timer.cancel()
            self._discard_waiter(waiter)
            # A connection may have been handed over just before the cancel landed
            if (
                waiter.future.done()
                and not waiter.future.cancelled()
                and waiter.future.exception() is None
            ):
                await self.release(waiter.future.result())
            raise

    def _expire_waiter(self, waiter: _Waiter) -> None:
        if waiter.future.done():
            return
        self._discard_waiter(waiter)
        waited = time.monotonic() - waiter.enqueued_at
        logger.warning(f"Connection request timed out after {waited:.3f}s")
        waiter.future.set_exception(AcquisitionTimeoutError(
            self.config.connection_timeout,
            self.config.pool_size,
            self._stats.active_connections,
        ))

    def _discard_waiter(self, waiter: _Waiter) -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass

    def _hand_off(self, conn: PooledConnection) -> bool:
        """Give an idle connection to the oldest live waiter, if any."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if waiter.future.done():
                continue
            if waiter.timer is not None:
                waiter.timer.cancel()
            waiter.future.set_result(self._activate(conn))
            return True
        return False

    def _serve_waiters(self) -> None:
        """Give idle connections, then spare capacity, to queued callers."""
        for conn in list(self._connections.values()):
            if not self._waiters:
                return
            if not conn.is_active:
                self._hand_off(conn)
        self._replenish_for_waiters()

    def _record_response_time(self, started: float) -> None:
        self._response_samples += 1
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        self._stats.record_response_time(elapsed_ms, self._response_samples)

    # -- creation -----------------------------------------------------------

    async def _create_connection(self) -> PooledConnection:
        """Create, validate and store a new idle connection.

        The caller must already have counted this creation in
        ``_pending_creations``; it is uncounted here whatever the outcome.
        """
        backend = self.backend
        try:
            try:
                handle = await backend.create_handle(self.config)
            except Exception as e:
                self._stats.failed_connections += 1
                logger.error(f"Failed to create {backend.name} connection: {e}")
                raise ConnectionCreationError(backend.name, str(e)) from e

            try:
                await backend.validate_handle(handle, self.config)
            except asyncio.CancelledError:
                self._spawn(self._close_handle(handle))
                raise
            except Exception as e:
                if not is_missing_resource_error(e):
                    self._stats.failed_connections += 1
                    logger.error(f"Validation of new {backend.name} connection failed: {e}")
                    await self._close_handle(handle)
                    raise ConnectionCreationError(backend.name, str(e)) from e
                logger.debug(f"Validation table not provisioned yet, accepting connection: {e}")
        finally:
            self._pending_creations -= 1

        if self._closed:
            await self._close_handle(handle)
            raise PoolShutdownError()

        conn = PooledConnection(connection_id=f"conn_{uuid.uuid4().hex[:12]}", handle=handle)
        self._connections[conn.connection_id] = conn
        self._stats.total_connections += 1
        self._stats.idle_connections += 1
        logger.debug(f"Created connection {conn.connection_id} ({self.size}/{self.config.pool_size})")
        return conn

    def _replenish_for_waiters(self) -> None:
        """Start a creation for queued callers after capacity was given up."""
        if self._closed or not self._waiters or not self._has_capacity():
            return
        self._pending_creations += 1
        self._spawn(self._replenish())

    async def _replenish(self) -> None:
        try:
            conn = await self._create_connection()
        except PoolError as e:
            logger.warning(f"Could not create a connection for queued callers: {e}")
            return
        self._hand_off(conn)

    async def warm_up(self, count: int | None = None) -> int:
        """Create connections ahead of demand.

        Failures are logged and do not stop the other creations.

        Args:
            count: Connections to create; defaults to ``min(2, pool_size)``
                and never exceeds the spare capacity

        Returns:
            Number of connections created
        """
        self._check_open()
        self._ensure_reaper()

        if count is None:
            count = min(2, self.config.pool_size)
        spare = self.config.pool_size - len(self._connections) - self._pending_creations
        count = max(0, min(count, spare))

        self._pending_creations += count
        results = await asyncio.gather(
            *(self._warm_one() for _ in range(count)),
            return_exceptions=True,
        )

        created = 0
        for result in results:
            if isinstance(result, PooledConnection):
                created += 1
            else:
                logger.warning(f"Warm-up connection failed: {result}")

        logger.info(f"Warmed up {created}/{count} connections")
        return created

    async def _warm_one(self) -> PooledConnection:
        # Queued callers get each connection as soon as it exists
        try:
            conn = await self._create_connection()
        except ConnectionCreationError:
            self._replenish_for_waiters()
            raise
        self._hand_off(conn)
        return conn

    # -- managed execution --------------------------------------------------

    async def execute_query(
        self, fn: Callable[[Any], Awaitable[T]], retries: int = 0
    ) -> T:
        """Run ``fn(handle)`` on a pooled connection, retrying on failure.

        Each attempt acquires a fresh lease and always releases it. After a
        failure the call is retried, ``retry_delay`` seconds later, while
        fewer than ``retry_attempts`` retries have been made.

        Args:
            fn: Coroutine function receiving the client handle
            retries: Retries already spent by the caller

        Returns:
            The value returned by ``fn``

        Raises:
            Exception: The error of the last attempt
        """
        executor = RetryExecutor(RetryConfig(
            max_attempts=self.config.retry_attempts - retries + 1,
            initial_delay=self.config.retry_delay,
            max_delay=max(RetryConfig.max_delay, self.config.retry_delay),
            backoff_strategy=self.config.retry_backoff,
            give_up_on=(PoolShutdownError,),
            on_retry=self._log_retry,
        ))
        return await executor.execute(self._run_once, fn)

    async def _run_once(self, fn: Callable[[Any], Awaitable[T]]) -> T:
        lease = await self.acquire()
        try:
            try:
                async with asyncio.timeout(self.config.query_timeout) as scope:
                    return await fn(lease.handle)
            except TimeoutError:
                if not scope.expired():
                    raise
                self._discard(lease)
                raise QueryTimeoutError(self.config.query_timeout, lease.connection_id) from None
        finally:
            if not lease.released:
                await self.release(lease)

    def _log_retry(self, attempt: int, error: Exception) -> None:
        logger.warning(
            f"Query attempt {attempt} failed, retrying in {self.config.retry_delay}s: {error}"
        )

    def _discard(self, lease: PoolLease) -> None:
        """Drop a leased connection instead of returning it to the pool."""
        conn = self._connections.get(lease.connection_id)
        lease._released = True
        if conn is None or conn.lease is not lease:
            return

        del self._connections[conn.connection_id]
        conn.lease = None
        conn.is_active = False
        self._stats.active_connections -= 1
        self._stats.total_connections -= 1
        logger.warning(f"Discarded connection {conn.connection_id} held past the query timeout")

        self._spawn(self._close_handle(conn.handle))
        self._replenish_for_waiters()

    # -- idle reaping -------------------------------------------------------

    async def cleanup_idle_connections(self) -> int:
        """Remove idle connections unused for longer than ``idle_timeout``.

        Returns:
            Number of connections removed
        """
        now = time.monotonic()
        expired = [
            conn for conn in self._connections.values()
            if not conn.is_active and conn.idle_seconds(now) > self.config.idle_timeout
        ]
        for conn in expired:
            del self._connections[conn.connection_id]
            self._stats.total_connections -= 1
            self._stats.idle_connections -= 1

        if expired:
            logger.debug(f"Reaped {len(expired)} idle connection(s), {self.size} remaining")
        for conn in expired:
            await self._close_handle(conn.handle)
        return len(expired)

    def _ensure_reaper(self) -> None:
        if self._reaper is None or self._reaper.done():
            self._reaper = asyncio.get_running_loop().create_task(self._reap_periodically())

    async def _reap_periodically(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval)
            try:
                await self.cleanup_idle_connections()
            except Exception as e:
                logger.error(f"Idle connection cleanup failed: {e}")

    # -- lifecycle ----------------------------------------------------------

    async def shutdown(self) -> None:
        """Shut the pool down.

        Stops the reaper, rejects queued callers with
        :class:`PoolShutdownError`, drops every connection and zeroes the
        statistics. Later acquisitions fail; calling this again does nothing.
        """
        if self._closed:
            logger.debug("Connection pool already shut down")
            return
        self._closed = True

        if self._reaper is not None:
            self._reaper.cancel()
            self._reaper = None
        for task in list(self._background):
            task.cancel()

        rejected = 0
        while self._waiters:
            waiter = self._waiters.popleft()
            if waiter.timer is not None:
                waiter.timer.cancel()
            if not waiter.future.done():
                waiter.future.set_exception(PoolShutdownError())
                rejected += 1

        connections = list(self._connections.values())
        self._connections.clear()
        self._stats.reset()
        self._response_samples = 0

        for conn in connections:
            await self._close_handle(conn.handle)
        logger.info(
            f"Connection pool shut down: closed {len(connections)} connection(s), "
            f"rejected {rejected} waiting request(s)"
        )

    async def __aenter__(self) -> ConnectionPool:
        self._check_open()
        self._ensure_reaper()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    def _check_open(self) -> None:
        if self._closed:
            raise PoolShutdownError("Connection pool has been shut down")

    async def _close_handle(self, handle: Any) -> None:
        if self.backend.close_handle is None:
            return
        try:
            await self.backend.close_handle(handle)
        except Exception as e:
            logger.warning(f"Error closing {self.backend.name} connection: {e}")

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # -- observability ------------------------------------------------------

    def get_stats(self) -> PoolStats:
        """Snapshot of the pool statistics."""
        return PoolStats(**self._stats.to_dict())

    def get_status(self) -> dict[str, Any]:
        """Statistics plus derived utilization, for health checks."""
        status = self._stats.to_dict()
        status.update({
            "pool_size": self.config.pool_size,
            "utilization_rate": self._stats.active_connections / self.config.pool_size * 100,
            "waiting_count": self.waiting_count,
            "is_closed": self._closed,
        })
        return status
