"""Pool-wide utilization statistics."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class PoolStats:
    """Counters describing the state and history of a pool.

    ``active_connections + idle_connections == total_connections`` holds
    whenever no acquire or release is mid-transition.
    """

    total_connections: int = 0
    active_connections: int = 0
    idle_connections: int = 0
    failed_connections: int = 0
    total_queries: int = 0
    avg_response_time: float = 0.0
    """Running mean of acquisition latency, in milliseconds."""

    def record_response_time(self, elapsed_ms: float, samples: int) -> None:
        """Fold one acquisition latency into the running mean.

        Args:
            elapsed_ms: Latency of the acquisition being recorded
            samples: Number of latencies recorded so far, this one included
        """
        self.avg_response_time += (elapsed_ms - self.avg_response_time) / max(samples, 1)

    def reset(self) -> None:
        """Zero every counter."""
        self.total_connections = 0
        self.active_connections = 0
        self.idle_connections = 0
        self.failed_connections = 0
        self.total_queries = 0
        self.avg_response_time = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
