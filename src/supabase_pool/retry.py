"""Retry primitives used by the pool's managed query execution.

A flat delay between attempts is the default. Linear and exponential
backoff (optionally with jitter) are available for callers that want to
spread retries out under sustained failure.

Example:
    ```python
    from supabase_pool.retry import RetryExecutor, RetryConfig, BackoffStrategy

    executor = RetryExecutor(RetryConfig(max_attempts=4, initial_delay=0.5))
    result = await executor.execute(run_report, report_id)
    ```
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class BackoffStrategy(Enum):
    """Backoff strategies for retries."""

    FIXED = "fixed"
    """Same delay before every retry."""

    LINEAR = "linear"
    """Delay grows by initial_delay with each attempt."""

    EXPONENTIAL = "exponential"
    """Delay multiplies by backoff_multiplier with each attempt."""

    JITTER = "jitter"
    """Exponential backoff with a random +/- jitter_range fraction applied."""


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of executions, including the first.
        initial_delay: Base delay in seconds before the first retry.
        max_delay: Upper bound on any single delay, in seconds.
        backoff_strategy: How the delay evolves between attempts.
        backoff_multiplier: Growth factor for EXPONENTIAL and JITTER.
        jitter_range: Fractional jitter for JITTER (0.1 means +/-10%).
        give_up_on: Exception types that are re-raised immediately, without
            consuming further attempts.
        on_retry: Hook called before each retry sleep with (attempt, exception).
    """

    max_attempts: int = 4
    initial_delay: float = 1.0
    max_delay: float = 60.0
    backoff_strategy: BackoffStrategy = BackoffStrategy.FIXED
    backoff_multiplier: float = 2.0
    jitter_range: float = 0.1
    give_up_on: tuple[type[BaseException], ...] = field(default_factory=tuple)
    on_retry: Callable[[int, Exception], None] | None = None


class RetryExecutor:
    """Executes an async callable with retry logic and configurable backoff."""

    def __init__(self, config: RetryConfig) -> None:
        self.config = config

    def _calculate_delay(self, attempt: int) -> float:
        """Delay in seconds after the given (1-based) failed attempt."""
        cfg = self.config

        if cfg.backoff_strategy == BackoffStrategy.LINEAR:
            delay = cfg.initial_delay * attempt
        elif cfg.backoff_strategy == BackoffStrategy.EXPONENTIAL:
            delay = cfg.initial_delay * (cfg.backoff_multiplier ** (attempt - 1))
        elif cfg.backoff_strategy == BackoffStrategy.JITTER:
            base_delay = cfg.initial_delay * (cfg.backoff_multiplier ** (attempt - 1))
            delay = base_delay * (1 + random.uniform(-cfg.jitter_range, cfg.jitter_range))
        else:
            delay = cfg.initial_delay

        return max(0.0, min(delay, cfg.max_delay))

    async def execute(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Await ``func(*args, **kwargs)`` until it succeeds or attempts run out.

        Args:
            func: Coroutine function to execute.
            *args: Positional arguments forwarded to func.
            **kwargs: Keyword arguments forwarded to func.

        Returns:
            The return value of the first successful attempt.

        Raises:
            Exception: The exception from the final failed attempt, or any
                ``give_up_on`` exception immediately.
        """
        max_attempts = max(1, self.config.max_attempts)

        for attempt in range(1, max_attempts + 1):
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if isinstance(e, self.config.give_up_on) or attempt >= max_attempts:
                    raise

                delay = self._calculate_delay(attempt)
                if self.config.on_retry:
                    self.config.on_retry(attempt, e)

                logger.debug(
                    "Retry after exception (attempt %d/%d), delay=%.2fs: %s",
                    attempt, max_attempts, delay, e,
                )
                await asyncio.sleep(delay)

        # Unreachable: the last attempt either returns or raises
        raise RuntimeError("retry loop exited without a result")
