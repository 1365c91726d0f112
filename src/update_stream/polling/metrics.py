"""
Metrics collection for the poll loop.

Counters and a short history of completed cycles, read through
``get_summary`` for logging or health reporting. Updated only from the poll
loop's control context.
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass
class PollCycleMetrics:
    """Metrics for a single long-poll cycle."""

    cycle_id: int
    offset: int | None
    start_time: datetime
    end_time: datetime | None = None
    updates_received: int = 0
    recipients: int = 0
    error: str | None = None

    @property
    def duration_seconds(self) -> float:
        """Get cycle duration in seconds."""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return 0.0

    @property
    def succeeded(self) -> bool:
        return self.end_time is not None and self.error is None


class PollMetrics:
    """Counters for dispatched and completed poll cycles."""

    def __init__(self, max_history: int = 50) -> None:
        self.start_time = datetime.now()
        self.cycle_history: deque[PollCycleMetrics] = deque(maxlen=max_history)
        self.current_cycle: PollCycleMetrics | None = None

        self.total_cycles = 0
        self.total_failures = 0
        self.total_updates = 0
        self.consecutive_failures = 0
        self.last_error: str | None = None

    def start_cycle(self, offset: int | None) -> PollCycleMetrics:
        """Record a dispatched request."""
        self.current_cycle = PollCycleMetrics(
            cycle_id=self.total_cycles + 1, offset=offset, start_time=datetime.now()
        )
        return self.current_cycle

    def end_cycle(
        self,
        updates_received: int,
        recipients: int,
        error: Exception | None = None,
    ) -> PollCycleMetrics | None:
        """Record the completion of the current cycle."""
        cycle = self.current_cycle
        if cycle is None:
            return None

        cycle.end_time = datetime.now()
        cycle.updates_received = updates_received
        cycle.recipients = recipients

        self.total_cycles += 1
        self.total_updates += updates_received
        if error is not None:
            cycle.error = f"{type(error).__name__}: {error}"
            self.total_failures += 1
            self.consecutive_failures += 1
            self.last_error = cycle.error
        else:
            self.consecutive_failures = 0

        self.cycle_history.append(cycle)
        self.current_cycle = None
        return cycle

    def discard_cycle(self) -> None:
        """Forget the current cycle without counting it."""
        self.current_cycle = None

    def get_summary(self) -> dict[str, Any]:
        """Get a snapshot of the poll metrics."""
        last = self.cycle_history[-1] if self.cycle_history else None
        return {
            "uptime_seconds": (datetime.now() - self.start_time).total_seconds(),
            "total_cycles": self.total_cycles,
            "total_failures": self.total_failures,
            "total_updates": self.total_updates,
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
            "in_flight": self.current_cycle is not None,
            "last_cycle_time": (
                last.end_time.isoformat() if last and last.end_time else None
            ),
            "error_rate": (
                (self.total_failures / self.total_cycles * 100)
                if self.total_cycles > 0
                else 0
            ),
        }
