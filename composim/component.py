from __future__ import annotations

"""
Component definitions.

A component is a named unit of computation with declared parameters (inputs)
and variables (outputs), each with a tuple of dimension names. The special
dimension `"time"` marks the time axis; other names refer to dimensions set on
the model (`ModelDef.set_dimension`).

Definitions are built with explicit calls:

    growth = ComponentDef("growth")
    growth.add_parameter("rate", default=0.02)
    growth.add_parameter("base", dims=("time",))
    growth.add_variable("level", dims=("time",))

    @growth.run_timestep
    def _(p, v, d, t):
        v.level[t] = p.base[t] * (1 + p.rate)

`run_timestep(p, v, d, t)` is called once per period with the parameter,
variable and dimension namespaces and the current `Timestep`. An optional
`init(p, v, d)` hook runs once before the first period of every run.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

from .naming import TIME_DIM, validate_name


RunTimestepFn = Callable[[object, object, object, object], None]
InitFn = Callable[[object, object, object], None]


def _normalize_dims(dims: Sequence[str], owner: str) -> Tuple[str, ...]:
    if isinstance(dims, str):
        dims = (dims,)
    dims = tuple(dims)
    for d in dims:
        if d != TIME_DIM:
            validate_name(d, "dimension name")
    if dims.count(TIME_DIM) > 1:
        raise ValueError(f"'{owner}' declares the time dimension more than once: {dims}")
    if len(set(dims)) != len(dims):
        raise ValueError(f"'{owner}' repeats a dimension: {dims}")
    return dims


@dataclass(frozen=True)
class DatumDef:
    name: str
    dims: Tuple[str, ...] = ()
    description: str = ""
    unit: str = ""

    @property
    def has_time(self) -> bool:
        return TIME_DIM in self.dims

    @property
    def time_axis(self) -> Optional[int]:
        return self.dims.index(TIME_DIM) if self.has_time else None

    @property
    def other_dims(self) -> Tuple[str, ...]:
        return tuple(d for d in self.dims if d != TIME_DIM)

    @property
    def is_scalar(self) -> bool:
        return not self.dims


@dataclass(frozen=True)
class ParameterDef(DatumDef):
    # None means the parameter must be bound before build
    default: object = None


@dataclass(frozen=True)
class VariableDef(DatumDef):
    pass


class ComponentDef:
    """Declaration of one component: its inputs, outputs and per-period function."""

    def __init__(self, name: str, *, description: str = "") -> None:
        self.name = validate_name(name, "component name")
        self.description = description
        self._parameters: Dict[str, ParameterDef] = {}
        self._variables: Dict[str, VariableDef] = {}
        self._run_timestep: Optional[RunTimestepFn] = None
        self._init: Optional[InitFn] = None

    def _check_new_datum(self, name: str) -> None:
        validate_name(name, "parameter/variable name")
        if name in self._parameters or name in self._variables:
            raise ValueError(f"Component '{self.name}' already declares '{name}'")

    def add_parameter(
        self,
        name: str,
        dims: Sequence[str] = (),
        *,
        default=None,
        description: str = "",
        unit: str = "",
    ) -> "ComponentDef":
        self._check_new_datum(name)
        dims = _normalize_dims(dims, f"{self.name}.{name}")
        self._parameters[name] = ParameterDef(name, dims, description, unit, default)
        return self

    def add_variable(
        self,
        name: str,
        dims: Sequence[str] = (),
        *,
        description: str = "",
        unit: str = "",
    ) -> "ComponentDef":
        self._check_new_datum(name)
        dims = _normalize_dims(dims, f"{self.name}.{name}")
        self._variables[name] = VariableDef(name, dims, description, unit)
        return self

    def set_run_timestep(self, fn: RunTimestepFn) -> "ComponentDef":
        if not callable(fn):
            raise TypeError(f"run_timestep for '{self.name}' must be callable")
        self._run_timestep = fn
        return self

    def set_init(self, fn: InitFn) -> "ComponentDef":
        if not callable(fn):
            raise TypeError(f"init for '{self.name}' must be callable")
        self._init = fn
        return self

    # Decorator forms
    def run_timestep(self, fn: RunTimestepFn) -> RunTimestepFn:
        self.set_run_timestep(fn)
        return fn

    def init(self, fn: InitFn) -> InitFn:
        self.set_init(fn)
        return fn

    @property
    def run_timestep_fn(self) -> Optional[RunTimestepFn]:
        return self._run_timestep

    @property
    def init_fn(self) -> Optional[InitFn]:
        return self._init

    @property
    def parameters(self) -> Dict[str, ParameterDef]:
        return dict(self._parameters)

    @property
    def variables(self) -> Dict[str, VariableDef]:
        return dict(self._variables)

    def dimensions(self) -> Tuple[str, ...]:
        """Non-time dimension names referenced by any parameter or variable."""
        seen: Dict[str, None] = {}
        for datum in list(self._parameters.values()) + list(self._variables.values()):
            for d in datum.other_dims:
                seen.setdefault(d, None)
        return tuple(seen)

    def __repr__(self) -> str:
        return (
            f"ComponentDef({self.name!r}, parameters={list(self._parameters)}, "
            f"variables={list(self._variables)})"
        )
