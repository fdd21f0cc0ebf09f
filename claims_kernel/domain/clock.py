"""
Injected time source for claim timestamps.

``created_date``, the coordinator and manager approval dates, document
upload dates and audit ``occurred_at`` all come from one ``Clock`` handed
to the workflow service.  The transition engine never reads a clock; it
receives ``now`` as an argument.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Source of the current UTC instant."""

    @abstractmethod
    def now(self) -> datetime:
        """Timezone-aware current time."""


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock frozen at a fixed instant for tests.

    Stays put until ``advance()`` moves it, so every timestamp written in
    between (claim row, documents, audit events) is identical.
    """

    START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __init__(self, start: datetime | None = None):
        self._current = start or self.START

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)
