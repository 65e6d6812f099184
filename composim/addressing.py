from __future__ import annotations

"""
Addresses along the time axis of a `TimestepArray`.

The accepted address forms are a closed set:

- `Timestep`:       current position handed out by the clock
- `TimestepValue`:  an absolute period label plus an integer lead/lag
- `TimestepIndex`:  a raw 1-based ordinal into the time axis
- `int`:            legacy raw ordinal; same as `TimestepIndex` but deprecated

Each form has one resolver. `ordinal_of()` dispatches to it and returns the
1-based ordinal on a given grid *without* bounds checking; `check_ordinal()`
is the bounds check every read and write goes through afterwards.
"""

from dataclasses import dataclass
from numbers import Integral
from typing import Callable, Dict, Hashable, Optional
import warnings

from .clock import Timestep
from .exceptions import OutOfRangeError
from .time_grid import TimeGrid


@dataclass(frozen=True)
class TimestepValue:
    """Absolute period label, optionally shifted by `offset` periods (negative = earlier)."""

    value: Hashable
    offset: int = 0


@dataclass(frozen=True)
class TimestepIndex:
    """Raw 1-based position along the time axis."""

    index: int


LEGACY_INT_WARNING = (
    "Indexing a TimestepArray's time axis with a plain integer is deprecated; "
    "use TimestepIndex({i}) instead of [{i}]"
)


def _resolve_timestep(grid: TimeGrid, ts: Timestep) -> int:
    if ts.grid == grid:
        return ts.t
    # Foreign grid: validated every time (translation_to raises on shape mismatch)
    return ts.t + ts.grid.translation_to(grid)


def _resolve_value(grid: TimeGrid, tv: TimestepValue) -> int:
    return grid.position_of(tv.value) + int(tv.offset)


def _resolve_index(grid: TimeGrid, ti: TimestepIndex) -> int:
    return int(ti.index)


_RESOLVERS: Dict[type, Callable[[TimeGrid, object], int]] = {
    Timestep: _resolve_timestep,
    TimestepValue: _resolve_value,
    TimestepIndex: _resolve_index,
}


def is_legacy_int(address: object) -> bool:
    return isinstance(address, Integral) and not isinstance(address, bool)


def is_time_address(address: object) -> bool:
    return type(address) in _RESOLVERS or is_legacy_int(address)


def ordinal_of(grid: TimeGrid, address: object) -> int:
    """Resolve `address` to a 1-based ordinal on `grid` (not bounds-checked).

    Raises NotFoundError for labels absent from the grid, ShapeMismatchError for
    timesteps from an incompatible grid, and TypeError for anything that is not
    a time address.
    """
    resolver = _RESOLVERS.get(type(address))
    if resolver is not None:
        return resolver(grid, address)
    if is_legacy_int(address):
        warnings.warn(LEGACY_INT_WARNING.format(i=int(address)), DeprecationWarning, stacklevel=4)
        return int(address)
    raise TypeError(
        f"Time axis must be addressed with a Timestep, TimestepValue or TimestepIndex, got {type(address).__name__}"
    )


def check_ordinal(ordinal: int, length: int, *, name: Optional[str] = None, address: object = None) -> int:
    if not 1 <= ordinal <= length:
        what = f"'{name}'" if name else "array"
        via = f" (from {address!r})" if address is not None else ""
        raise OutOfRangeError(
            f"Position {ordinal}{via} is outside the time axis of {what} (valid positions 1..{length})"
        )
    return ordinal
