from __future__ import annotations

"""
Timesteps and the clock that drives a run.

A `Timestep` is an opaque cursor: a grid plus a 1-based ordinal `t`.
Components receive one per period and use it to address their arrays; they
never keep their own notion of "now".

The `Clock` owns the current position during a run. It starts at the first
period, moves forward one period per `advance()` and refuses to move past
the last period.
"""

from dataclasses import dataclass
from enum import Enum

from .exceptions import ClockError, OutOfRangeError, ShapeMismatchError
from .time_grid import TimeGrid, UniformGrid


class RunState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    FINISHED = "finished"
    # Component raised mid-period; clock stays at the failing period
    FAILED = "failed"


@dataclass(frozen=True, eq=False)
class Timestep:
    grid: TimeGrid
    t: int

    def __post_init__(self) -> None:
        if not 1 <= self.t <= self.grid.period_count():
            raise OutOfRangeError(
                f"Timestep position {self.t} is outside its grid (valid positions 1..{self.grid.period_count()})"
            )

    def gettime(self):
        """Return the period label of this position."""
        return self.grid.label_at(self.t)

    def is_first(self) -> bool:
        return self.t == 1

    def is_last(self) -> bool:
        return self.t == self.grid.period_count()

    def next(self) -> "Timestep":
        if self.is_last():
            raise ClockError(f"Cannot get the next timestep: {self.gettime()!r} is the last period")
        return Timestep(self.grid, self.t + 1)

    def prev(self) -> "Timestep":
        if self.is_first():
            raise ClockError(f"Cannot get the previous timestep: {self.gettime()!r} is the first period")
        return Timestep(self.grid, self.t - 1)

    def __add__(self, n: int) -> "Timestep":
        if not isinstance(n, int):
            return NotImplemented
        return Timestep(self.grid, self.t + n)

    def __sub__(self, n: int) -> "Timestep":
        if not isinstance(n, int):
            return NotImplemented
        return Timestep(self.grid, self.t - n)

    def _comparable_time(self, other: "Timestep"):
        if not self.grid.is_shape_compatible(other.grid):
            raise ShapeMismatchError(
                f"Cannot compare timesteps on grids of different shape: {self.grid!r} vs {other.grid!r}"
            )
        return self.gettime(), other.gettime()

    def __eq__(self, other) -> bool:
        if not isinstance(other, Timestep):
            return NotImplemented
        if self.grid == other.grid:
            return self.t == other.t
        mine, theirs = self._comparable_time(other)
        return mine == theirs

    def __lt__(self, other: "Timestep") -> bool:
        if not isinstance(other, Timestep):
            return NotImplemented
        mine, theirs = self._comparable_time(other)
        return mine < theirs

    def __le__(self, other: "Timestep") -> bool:
        if not isinstance(other, Timestep):
            return NotImplemented
        mine, theirs = self._comparable_time(other)
        return mine <= theirs

    def __hash__(self) -> int:
        # Hash what equality compares: the grid shape and the period label
        shape = self.grid.step if isinstance(self.grid, UniformGrid) else tuple(self.grid.labels())
        return hash((type(self.grid).__name__, shape, self.gettime()))

    def __repr__(self) -> str:
        return f"Timestep(t={self.t}, time={self.gettime()!r})"


class Clock:
    """Cursor over a grid; the single source of truth for the current period."""

    def __init__(self, grid: TimeGrid) -> None:
        self.grid = grid
        self._t = 1

    @property
    def t(self) -> int:
        return self._t

    @property
    def timestep(self) -> Timestep:
        return Timestep(self.grid, self._t)

    def current_period(self):
        return self.grid.label_at(self._t)

    def first_period(self):
        return self.grid.first_period()

    def last_period(self):
        return self.grid.last_period()

    def is_first(self) -> bool:
        return self._t == 1

    def is_last(self) -> bool:
        return self._t == self.grid.period_count()

    def advance(self) -> None:
        if self.is_last():
            raise ClockError(f"Clock is already at the last period {self.current_period()!r}")
        self._t += 1

    def reset(self) -> None:
        self._t = 1

    def __repr__(self) -> str:
        return f"Clock(t={self._t}, period={self.current_period()!r}, grid={self.grid!r})"
