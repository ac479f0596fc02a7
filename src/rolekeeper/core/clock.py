"""Injectable time sources.

Expiry computations never read the system clock directly; they ask a
``Clock``. ``FixedClock`` makes them deterministic under test.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime:
        """Return the current timezone-aware UTC instant."""
        ...


class SystemClock:
    """Clock backed by the host's UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock that only moves when told to.

    Attributes:
        current: The instant returned by ``now()``.
    """

    def __init__(self, at: datetime) -> None:
        if at.tzinfo is None:
            at = at.replace(tzinfo=timezone.utc)
        self.current = at

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> datetime:
        """Move the clock forward by ``delta`` and return the new instant."""
        self.current = self.current + delta
        return self.current
