from __future__ import annotations

"""
Time-indexed storage for component parameters and variables.

`TimestepArray` wraps a dense numpy buffer with one distinguished time axis
sized to a `TimeGrid`. Every read and write on it goes through the same steps:

1. resolve the time address to a 1-based ordinal (see `addressing`)
2. bounds-check the ordinal against the time axis
3. index the buffer (non-time axes use ordinary numpy index forms)
4. on reads only: fail with `UnsetValueError` if any selected cell is unset

Which cells have been written is tracked in a boolean mask beside the buffer,
so a computed NaN is an ordinary value. Unwritten cells still hold NaN (float
buffers) or None (object buffers) so bulk views and DataFrames show gaps.

`ConnectedArray` is the read-only reference a consumer component holds onto a
producer's array. The ordinal shift between the consumer's grid and the
producer's grid (plus any lead/lag on the connection) is computed once at
build time and cached on the view. Its `time_series()` is laid out on the
consumer's grid, i.e. it shows what the consumer reads at each period.

`ScalarCell` holds time-less scalar parameters and variables.
"""

from typing import Hashable, List, Optional, Sequence, Tuple

import numpy as np

from .addressing import TimestepIndex, TimestepValue, check_ordinal, is_legacy_int, ordinal_of
from .clock import Timestep
from .exceptions import (
    AddressingError,
    DimensionMismatchError,
    OutOfRangeError,
    ShapeMismatchError,
    UnsetValueError,
)
from .time_grid import TimeGrid


def _unset_fill(dtype: np.dtype):
    if dtype.kind in "fc":
        return np.nan
    if dtype == np.dtype(object):
        return None
    raise ValueError(f"Time-indexed storage needs a float or object dtype to mark unset cells, got {dtype}")


def _series(data: np.ndarray, time_axis: int, labels: Sequence[Hashable]) -> List[Tuple[Hashable, object]]:
    out = []
    for i, label in enumerate(labels):
        value = np.take(data, i, axis=time_axis)
        out.append((label, value.item() if np.ndim(value) == 0 else value))
    return out


def _normalize_extra_index(idx):
    if isinstance(idx, range):
        return list(idx)
    return idx


class TimestepArray:
    """N-dimensional buffer with a time axis addressed through a `TimeGrid`.

    Parameters
    ----------
    grid : TimeGrid
        Grid the time axis is sized against.
    other_shape : Sequence[int]
        Sizes of the non-time axes, in order (empty for a time vector).
    time_axis : int
        numpy axis number (0-based) of the time axis.
    dtype : numpy dtype
        float (default) or object.
    name : str
        Label used in error messages, normally `component.datum`.
    data : array-like
        Optional initial contents; must match the full shape.
    """

    def __init__(
        self,
        grid: TimeGrid,
        other_shape: Sequence[int] = (),
        *,
        time_axis: int = 0,
        dtype=float,
        name: Optional[str] = None,
        data=None,
    ) -> None:
        other_shape = tuple(int(n) for n in other_shape)
        if not 0 <= time_axis <= len(other_shape):
            raise ValueError(f"time_axis {time_axis} is invalid for {len(other_shape) + 1} dimensions")
        self.grid = grid
        self.time_axis = time_axis
        self.name = name
        shape = other_shape[:time_axis] + (grid.period_count(),) + other_shape[time_axis:]
        self._dtype = np.dtype(dtype)
        self._unset = _unset_fill(self._dtype)
        self._data = np.full(shape, self._unset, dtype=self._dtype)
        self._written = np.zeros(shape, dtype=bool)
        if data is not None:
            self.set_values(data)

    # ---- shape & metadata ----

    @property
    def shape(self) -> Tuple[int, ...]:
        return self._data.shape

    @property
    def ndim(self) -> int:
        return self._data.ndim

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def values(self) -> np.ndarray:
        """The backing buffer itself (not a copy).

        Writing into it directly does not mark cells as set; use item
        assignment, `set_values()` or `fill()` for that.
        """
        return self._data

    def __len__(self) -> int:
        return self._data.shape[self.time_axis]

    def first_period(self):
        return self.grid.first_period()

    def last_period(self):
        return self.grid.last_period()

    def time_labels(self) -> List:
        return self.grid.labels()

    def __repr__(self) -> str:
        label = f" '{self.name}'" if self.name else ""
        return f"<TimestepArray{label} shape={self.shape} time_axis={self.time_axis} grid={self.grid!r}>"

    # ---- bulk operations ----

    def reset(self) -> None:
        """Mark every cell unset, in place."""
        self._data.fill(self._unset)
        self._written.fill(False)

    def fill(self, value) -> None:
        self._data.fill(value)
        self._written.fill(True)

    def set_values(self, data) -> None:
        """Overwrite the whole buffer in place with `data` (broadcast scalars allowed)."""
        arr = np.asarray(data, dtype=self._dtype)
        if arr.ndim != 0 and arr.shape != self._data.shape:
            raise ShapeMismatchError(
                f"Data of shape {arr.shape} does not match {self._describe()} of shape {self._data.shape}"
            )
        self._data[...] = arr
        self._written.fill(True)

    def time_series(self) -> List[Tuple[Hashable, object]]:
        """Return `(period label, value)` pairs along the time axis.

        For arrays with more than one axis each value is the numpy slice at that
        period. Unset cells come back as NaN/None; no unset check is applied.
        """
        return _series(self._data, self.time_axis, self.grid.labels())

    # ---- addressing pipeline ----

    def _describe(self) -> str:
        return f"'{self.name}'" if self.name else "array"

    def _split_key(self, key) -> Tuple[object, list]:
        keys = key if isinstance(key, tuple) else (key,)
        if len(keys) != self.ndim:
            raise DimensionMismatchError(
                f"{len(keys)} index(es) provided for {self._describe()}, which has {self.ndim} dimension(s); "
                "index every dimension explicitly"
            )
        rest = [_normalize_extra_index(k) for i, k in enumerate(keys) if i != self.time_axis]
        return keys[self.time_axis], rest

    def _time_ordinal(self, address) -> int:
        return check_ordinal(ordinal_of(self.grid, address), len(self), name=self.name, address=address)

    def _buffer_index(self, ordinal: int, rest: list) -> tuple:
        idx = list(rest)
        idx.insert(self.time_axis, ordinal - 1)
        return tuple(idx)

    def _get_at(self, ordinal: int, rest: list, name: Optional[str] = None):
        idx = self._buffer_index(ordinal, rest)
        try:
            value = self._data[idx]
            written = self._written[idx]
        except IndexError as exc:
            raise OutOfRangeError(f"Index {rest!r} out of bounds for {self._describe()}: {exc}") from exc
        if not np.all(written):
            raise UnsetValueError(name or self.name, ordinal, self.grid.label_at(ordinal))
        return value.item() if isinstance(value, np.generic) else value

    def _set_at(self, ordinal: int, rest: list, value) -> None:
        idx = self._buffer_index(ordinal, rest)
        try:
            self._data[idx] = value
        except IndexError as exc:
            raise OutOfRangeError(f"Index {rest!r} out of bounds for {self._describe()}: {exc}") from exc
        self._written[idx] = True

    def __getitem__(self, key):
        address, rest = self._split_key(key)
        return self._get_at(self._time_ordinal(address), rest)

    def __setitem__(self, key, value) -> None:
        address, rest = self._split_key(key)
        self._set_at(self._time_ordinal(address), rest, value)

    def _extra_indices_in_bounds(self, indices: Sequence) -> bool:
        other_sizes = [n for i, n in enumerate(self.shape) if i != self.time_axis]
        if len(indices) != len(other_sizes):
            return False
        for idx, size in zip(indices, other_sizes):
            if is_legacy_int(idx) and not -size <= int(idx) < size:
                return False
        return True

    def has_value(self, address, *indices) -> bool:
        """True if `address` (and any extra indices) fall inside this array.

        This is a pure bounds/shape predicate; it does not look at whether the
        cell has been written. See `is_set()` for that.
        """
        try:
            self._time_ordinal(address)
        except (AddressingError, ShapeMismatchError, TypeError):
            return False
        return self._extra_indices_in_bounds(indices)

    def is_set(self, address, *indices) -> bool:
        if not self.has_value(address, *indices):
            return False
        ordinal = self._time_ordinal(address)
        idx = self._buffer_index(ordinal, [_normalize_extra_index(i) for i in indices])
        return bool(np.all(self._written[idx]))


class ConnectedArray:
    """Read-only reference from a consumer's parameter to a producer's array.

    `shift` maps a position on the consumer's grid to a position on the
    producer's grid and already includes the connection's lead/lag `offset`.
    """

    def __init__(self, target: TimestepArray, consumer_grid: TimeGrid, shift: int, offset: int = 0, name: Optional[str] = None) -> None:
        self.target = target
        self.grid = consumer_grid
        self.shift = int(shift)
        self.offset = int(offset)
        self.name = name or target.name

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.target.shape

    @property
    def ndim(self) -> int:
        return self.target.ndim

    @property
    def time_axis(self) -> int:
        return self.target.time_axis

    @property
    def values(self) -> np.ndarray:
        view = self.target.values.view()
        view.flags.writeable = False
        return view

    def __len__(self) -> int:
        return len(self.target)

    def aligned_values(self) -> np.ndarray:
        """Copy of what the consumer reads, with the time axis on the consumer's grid.

        Positions whose shifted ordinal falls outside the producer's array
        (e.g. the first periods of a lag) are unset.
        """
        target = self.target
        n = self.grid.period_count()
        ordinals = np.arange(1, n + 1) + self.shift
        inside = (ordinals >= 1) & (ordinals <= len(target))
        shape = list(target.shape)
        shape[target.time_axis] = n
        out = np.full(shape, _unset_fill(target.dtype), dtype=target.dtype)
        idx = [slice(None)] * len(shape)
        idx[target.time_axis] = np.nonzero(inside)[0]
        out[tuple(idx)] = np.take(target.values, ordinals[inside] - 1, axis=target.time_axis)
        return out

    def time_series(self) -> List[Tuple[Hashable, object]]:
        """`(period label, value)` pairs on the consumer's grid, lag/lead applied."""
        return _series(self.aligned_values(), self.time_axis, self.grid.labels())

    def __repr__(self) -> str:
        return f"<ConnectedArray '{self.name}' -> {self.target!r} shift={self.shift}>"

    def _target_ordinal(self, address) -> int:
        if isinstance(address, Timestep) and address.grid == self.grid:
            ordinal = address.t + self.shift
        elif isinstance(address, (Timestep, TimestepValue)):
            ordinal = ordinal_of(self.target.grid, address) + self.offset
        else:
            # Raw positions are relative to the consumer's own grid
            ordinal = ordinal_of(self.grid, address) + self.shift
        return check_ordinal(ordinal, len(self.target), name=self.name, address=address)

    def __getitem__(self, key):
        address, rest = self.target._split_key(key)
        return self.target._get_at(self._target_ordinal(address), rest, name=self.name)

    def __setitem__(self, key, value) -> None:
        raise TypeError(f"'{self.name}' is a connected parameter and cannot be written by its consumer")

    def has_value(self, address, *indices) -> bool:
        try:
            self._target_ordinal(address)
        except (AddressingError, ShapeMismatchError, TypeError):
            return False
        return self.target._extra_indices_in_bounds(indices)

    def is_set(self, address, *indices) -> bool:
        if not self.has_value(address, *indices):
            return False
        ordinal = self._target_ordinal(address)
        return self.target.is_set(TimestepIndex(ordinal), *indices)


_UNSET = object()


class ScalarCell:
    """Holder for a time-less scalar parameter or variable."""

    def __init__(self, name: Optional[str] = None, value=_UNSET) -> None:
        self.name = name
        self._value = value

    def get(self):
        if self._value is _UNSET:
            raise UnsetValueError(self.name, None)
        return self._value

    def set(self, value) -> None:
        self._value = value

    def is_set(self) -> bool:
        return self._value is not _UNSET

    def reset(self) -> None:
        self._value = _UNSET

    def __repr__(self) -> str:
        shown = "<unset>" if self._value is _UNSET else repr(self._value)
        return f"ScalarCell({self.name!r}, {shown})"


def has_value(array, address, *indices) -> bool:
    """Predicate form of the addressing checks; never raises for bad addresses."""
    return array.has_value(address, *indices)
