from __future__ import annotations

"""
Time grids: the ordered sequence of periods a run covers.

Two variants:
- `UniformGrid(first, step, count)`: periods `first, first+step, ...`
- `VariableGrid(labels)`: an explicit, strictly increasing list of labels

Positions on a grid are 1-based ordinals (`position_of(first_period()) == 1`).

Two grids are *shape-compatible* when both are uniform with the same step, or
both are variable with identical labels. Translating positions from one grid
into another additionally requires that the target contains the source's
first period; `translation_to()` computes the ordinal shift once so that
callers (bound connections, mostly) can cache it.
"""

from bisect import bisect_left
from dataclasses import dataclass
from typing import Hashable, List, Optional, Sequence, Tuple

from .exceptions import NotFoundError, OutOfRangeError, ShapeMismatchError


# Relative tolerance when locating a label on a uniform grid with a fractional step
_POSITION_TOL = 1e-9


class TimeGrid:
    """Common interface shared by both grid variants."""

    def first_period(self):
        raise NotImplementedError

    def last_period(self):
        raise NotImplementedError

    def period_count(self) -> int:
        raise NotImplementedError

    def labels(self) -> List:
        raise NotImplementedError

    def position_of(self, label: Hashable) -> int:
        raise NotImplementedError

    def label_at(self, t: int):
        raise NotImplementedError

    def subgrid(self, first=None, last=None) -> "TimeGrid":
        raise NotImplementedError

    def is_shape_compatible(self, other: "TimeGrid") -> bool:
        raise NotImplementedError

    def __len__(self) -> int:
        return self.period_count()

    def __iter__(self):
        return iter(self.labels())

    def contains(self, label: Hashable) -> bool:
        try:
            self.position_of(label)
        except NotFoundError:
            return False
        return True

    def __contains__(self, label: Hashable) -> bool:
        return self.contains(label)

    def _check_ordinal(self, t: int) -> None:
        if not 1 <= t <= self.period_count():
            raise OutOfRangeError(
                f"Position {t} is outside the time grid (valid positions 1..{self.period_count()})"
            )

    def translation_to(self, other: "TimeGrid") -> int:
        """Return the shift `s` such that position `t` here is position `t + s` in `other`.

        Raises ShapeMismatchError when the grids have different shapes or when
        `other` does not contain this grid's first period.
        """
        if self == other:
            return 0
        if type(self) is not type(other):
            raise ShapeMismatchError(
                f"Cannot translate positions between a {type(self).__name__} and a {type(other).__name__}"
            )
        if not other.contains(self.first_period()):
            raise ShapeMismatchError(
                f"Target grid {other!r} does not contain first period {self.first_period()!r} of {self!r}"
            )
        return other.position_of(self.first_period()) - 1


@dataclass(frozen=True)
class UniformGrid(TimeGrid):
    first: float
    step: float
    count: int

    def __post_init__(self) -> None:
        if not isinstance(self.count, int) or self.count < 1:
            raise ValueError(f"UniformGrid needs a positive integer period count, got {self.count!r}")
        if not self.step > 0:
            raise ValueError(f"UniformGrid needs a positive step, got {self.step!r}")

    def first_period(self):
        return self.first

    def last_period(self):
        return self.first + (self.count - 1) * self.step

    def period_count(self) -> int:
        return self.count

    def labels(self) -> List:
        return [self.first + i * self.step for i in range(self.count)]

    def position_of(self, label: Hashable) -> int:
        try:
            raw = (label - self.first) / self.step
        except TypeError:
            raise NotFoundError(label) from None
        pos = int(round(raw))
        if abs(raw - pos) > _POSITION_TOL or not 0 <= pos < self.count:
            raise NotFoundError(label)
        return pos + 1

    def label_at(self, t: int):
        self._check_ordinal(t)
        return self.first + (t - 1) * self.step

    def subgrid(self, first=None, last=None) -> "UniformGrid":
        start = 1 if first is None else self.position_of(first)
        stop = self.count if last is None else self.position_of(last)
        if stop < start:
            raise ValueError(f"Sub-grid last period {last!r} precedes first period {first!r}")
        return UniformGrid(self.label_at(start), self.step, stop - start + 1)

    def is_shape_compatible(self, other: TimeGrid) -> bool:
        return isinstance(other, UniformGrid) and other.step == self.step

    def translation_to(self, other: TimeGrid) -> int:
        if isinstance(other, UniformGrid) and other.step != self.step:
            raise ShapeMismatchError(
                f"Cannot translate positions between uniform grids with steps {self.step!r} and {other.step!r}"
            )
        return super().translation_to(other)

    def __repr__(self) -> str:
        return f"UniformGrid(first={self.first!r}, step={self.step!r}, count={self.count})"


@dataclass(frozen=True)
class VariableGrid(TimeGrid):
    times: Tuple

    def __post_init__(self) -> None:
        times = tuple(self.times)
        if not times:
            raise ValueError("VariableGrid needs at least one period label")
        for prev, cur in zip(times, times[1:]):
            if not prev < cur:
                raise ValueError(f"VariableGrid labels must be strictly increasing; offending pair: {prev!r}, {cur!r}")
        object.__setattr__(self, "times", times)

    def first_period(self):
        return self.times[0]

    def last_period(self):
        return self.times[-1]

    def period_count(self) -> int:
        return len(self.times)

    def labels(self) -> List:
        return list(self.times)

    def position_of(self, label: Hashable) -> int:
        try:
            i = bisect_left(self.times, label)
        except TypeError:
            raise NotFoundError(label) from None
        if i == len(self.times) or self.times[i] != label:
            raise NotFoundError(label)
        return i + 1

    def label_at(self, t: int):
        self._check_ordinal(t)
        return self.times[t - 1]

    def subgrid(self, first=None, last=None) -> "VariableGrid":
        start = 1 if first is None else self.position_of(first)
        stop = len(self.times) if last is None else self.position_of(last)
        if stop < start:
            raise ValueError(f"Sub-grid last period {last!r} precedes first period {first!r}")
        return VariableGrid(self.times[start - 1 : stop])

    def is_shape_compatible(self, other: TimeGrid) -> bool:
        return isinstance(other, VariableGrid) and other.times == self.times

    def translation_to(self, other: TimeGrid) -> int:
        shift = super().translation_to(other)
        # Overlapping labels must line up one-to-one, otherwise an ordinal shift is meaningless
        overlap = self.times[: max(0, other.period_count() - shift)]
        if tuple(overlap) != other.times[shift : shift + len(overlap)]:
            raise ShapeMismatchError(f"Labels of {self!r} do not align with {other!r}")
        return shift

    def __repr__(self) -> str:
        return f"VariableGrid({list(self.times)!r})"


def make_grid(
    *,
    first=None,
    step=None,
    count: Optional[int] = None,
    last=None,
    labels: Optional[Sequence] = None,
) -> TimeGrid:
    """Create a grid from either `labels` or `first`/`step` plus `count` or `last`.

    Exactly one of the two forms must be used.
    """
    if labels is not None:
        if any(x is not None for x in (first, step, count, last)):
            raise ValueError("Provide either 'labels' or 'first'/'step'/'count|last', not both")
        return VariableGrid(tuple(labels))
    if first is None or step is None:
        raise ValueError("A uniform grid needs 'first' and 'step'")
    if (count is None) == (last is None):
        raise ValueError("A uniform grid needs exactly one of 'count' or 'last'")
    if count is None:
        raw = (last - first) / step
        count = int(round(raw)) + 1
        if abs(raw - (count - 1)) > _POSITION_TOL or count < 1:
            raise ValueError(f"'last'={last!r} is not reachable from first={first!r} in steps of {step!r}")
    return UniformGrid(first, step, int(count))
