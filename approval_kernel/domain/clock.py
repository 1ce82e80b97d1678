"""
Clock -- the only source of "now" for workflow code.

Responsibility:
    Services receive a ``Clock`` and pass its reading down to the engines
    as an explicit ``now`` argument.  Step activation, vote stamps and
    escalation thresholds are all measured against it, so a test can move
    a workflow forward by 25 hours in one call.

Architecture position:
    Kernel > Domain.  ``SystemClock`` is the single place that reads the
    wall clock.

Invariants enforced:
    - Every reading is timezone-aware UTC.  Naive datetimes handed to the
      test clocks are rejected with ``ValueError``.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# Start of the business week the sample templates are written against.
DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        raise ValueError(f"Clock times must be timezone-aware: {moment!r}")
    return moment.astimezone(timezone.utc)


class Clock(ABC):
    """Injected time source."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Manually driven clock for tests and replays.

    ``now()`` does not move on its own.  ``advance`` and ``advance_hours``
    push it forward; ``set_time`` jumps to an absolute instant.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = _as_utc(fixed_time or DEFAULT_TEST_TIME)

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = _as_utc(time)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_hours(self, hours: int | float | Decimal) -> None:
        """Move forward by a possibly fractional number of hours.

        Accepts the same ``Decimal`` values escalation rules use, so a
        test can step to exactly ``hours_until_escalation``.
        """
        self._current += timedelta(seconds=float(Decimal(str(hours)) * 3600))

    def tick(self) -> datetime:
        self.advance(1)
        return self._current


class SequentialClock(Clock):
    """
    Replays a fixed list of instants, one per ``now()`` call, then keeps
    returning the last one.

    Useful when one operation reads the clock several times and a test
    needs each reading to differ.
    """

    def __init__(self, times: Iterable[datetime]):
        self._pending = [_as_utc(t) for t in times]
        if not self._pending:
            raise ValueError("SequentialClock requires at least one time")
        self._pending.reverse()
        self._last = self._pending[-1]

    def now(self) -> datetime:
        if self._pending:
            self._last = self._pending.pop()
        return self._last
