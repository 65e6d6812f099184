from __future__ import annotations

"""
Error taxonomy for model composition, build and addressing.

Build-time errors are raised by `build()` before any period executes.
Addressing errors are raised by reads and writes on time-indexed arrays.
Errors raised by a component's own computation are never wrapped; they
propagate to the caller of `run()` unchanged.

Several classes also derive from a builtin (`KeyError`, `IndexError`,
`ValueError`, `RuntimeError`) so callers that only know the builtin
contract can still catch them.
"""

from typing import Hashable, Iterable, Optional, Sequence


__all__ = [
    "ComposimError",
    "BuildError",
    "UnboundParameterError",
    "CyclicDependencyError",
    "ShapeMismatchError",
    "DuplicateBindingError",
    "AddressingError",
    "NotFoundError",
    "OutOfRangeError",
    "DimensionMismatchError",
    "UnsetValueError",
    "ClockError",
]

class ComposimError(Exception):
    """Base class for all errors raised by the package."""


# ---- Build-time ----


class BuildError(ComposimError):
    """A model definition could not be turned into a runnable instance."""


class UnboundParameterError(BuildError):
    def __init__(self, names: Iterable[str]) -> None:
        self.names = sorted(names)
        super().__init__(
            "Unbound parameters (connect them, set them externally, or supply leftovers): "
            + ", ".join(self.names)
        )


class CyclicDependencyError(BuildError):
    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = list(cycle)
        super().__init__(
            "Cyclic same-period dependency between components: "
            + " -> ".join(self.cycle + self.cycle[:1])
        )


class ShapeMismatchError(BuildError, ValueError):
    """Incompatible grids or dimensions across a binding."""


class DuplicateBindingError(BuildError):
    """An input parameter already has a binding."""


# ---- Addressing-time ----


class AddressingError(ComposimError):
    """A read or write on a time-indexed array could not be resolved."""


class NotFoundError(AddressingError, KeyError):
    def __init__(self, label: Hashable, where: str = "time grid") -> None:
        self.label = label
        msg = f"Period {label!r} is not in the {where}"
        super().__init__(msg)
        self.msg = msg

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.msg


class OutOfRangeError(AddressingError, IndexError):
    """Ordinal outside the time axis (or an extra index outside its axis)."""


class DimensionMismatchError(AddressingError, IndexError):
    """Wrong number of indices supplied for the array."""


class UnsetValueError(AddressingError):
    """Read of a cell that has not been written during the current run."""

    def __init__(self, name: Optional[str], ordinal: Optional[int], label: Optional[Hashable] = None) -> None:
        self.name = name
        self.ordinal = ordinal
        self.label = label
        what = f"'{name}'" if name else "array"
        if ordinal is None:
            where = ""
        elif label is None:
            where = f" at position {ordinal}"
        else:
            where = f" at position {ordinal} (period {label!r})"
        super().__init__(
            f"Value of {what}{where} has not been set yet. You may have read a period that "
            "has not been computed, or a component is missing an initial condition."
        )


# ---- Run-time ----


class ClockError(ComposimError, RuntimeError):
    """The clock was asked to move past the end of its grid."""
