from __future__ import annotations

"""
Model instance and run loop.

A `ModelInstance` is what `build()` produces: a fixed execution order plus the
storage every component reads and writes. Its structure is read-only; the
only things that change after build are cell values, the clock position and
the run state.

Run state machine (per instance):

    NOT_STARTED --run()--> RUNNING --last/stop period done--> FINISHED
                              |
                              +--component raised--> FAILED

`run()` on a FINISHED or FAILED instance starts over from the first period,
resetting variable storage in place (arrays are overwritten, never
reallocated, so references handed out earlier stay valid).
"""

import logging
from types import MappingProxyType
from typing import Dict, Hashable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .clock import Clock, RunState, Timestep
from .component import ComponentDef
from .exceptions import ShapeMismatchError
from .model_def import Edge
from .naming import datum_key, unknown_name_message
from .time_array import ConnectedArray, ScalarCell, TimestepArray
from .time_grid import TimeGrid


log = logging.getLogger(__name__)


class _Namespace:
    """Attribute view over a component's storage, handed to user functions."""

    _kind = "name"

    def __init__(self, owner: str, storage: Mapping[str, object]) -> None:
        object.__setattr__(self, "_owner", owner)
        object.__setattr__(self, "_storage", storage)

    def _lookup(self, name: str):
        storage = object.__getattribute__(self, "_storage")
        try:
            return storage[name]
        except KeyError:
            owner = object.__getattribute__(self, "_owner")
            raise AttributeError(unknown_name_message(f"{self._kind} of '{owner}'", name, storage)) from None

    def __getattr__(self, name: str):
        if name.startswith("__"):
            raise AttributeError(name)
        item = self._lookup(name)
        if isinstance(item, ScalarCell):
            return item.get()
        return item

    def __dir__(self) -> List[str]:
        return sorted(object.__getattribute__(self, "_storage"))


class ParameterNamespace(_Namespace):
    _kind = "parameter"

    def __setattr__(self, name: str, value) -> None:
        raise TypeError(f"Parameters of '{self._owner}' are read-only inside a component")


class VariableNamespace(_Namespace):
    _kind = "variable"

    def __setattr__(self, name: str, value) -> None:
        item = self._lookup(name)
        if not isinstance(item, ScalarCell):
            raise TypeError(
                f"'{self._owner}.{name}' is an array; assign cells (v.{name}[t] = ...) instead of the whole array"
            )
        item.set(value)


class DimensionNamespace(_Namespace):
    _kind = "dimension"

    def __setattr__(self, name: str, value) -> None:
        raise TypeError("Dimensions are read-only")


class ComponentInstance:
    """One component bound to its storage inside a built model."""

    def __init__(
        self,
        name: str,
        compdef: ComponentDef,
        grid: TimeGrid,
        model_grid: TimeGrid,
        parameters: Dict[str, object],
        variables: Dict[str, object],
        dimensions: Dict[str, List],
    ) -> None:
        self.name = name
        self.compdef = compdef
        self.grid = grid
        # model position t corresponds to component position t - _model_shift
        self._model_shift = grid.translation_to(model_grid)
        self._parameters = MappingProxyType(dict(parameters))
        self._variables = MappingProxyType(dict(variables))
        dims = {"time": grid.labels()}
        dims.update({k: list(v) for k, v in dimensions.items()})
        self._dimensions = MappingProxyType(dims)
        self.p = ParameterNamespace(name, self._parameters)
        self.v = VariableNamespace(name, self._variables)
        self.d = DimensionNamespace(name, self._dimensions)

    @property
    def parameters(self) -> Mapping[str, object]:
        return self._parameters

    @property
    def variables(self) -> Mapping[str, object]:
        return self._variables

    @property
    def first_period(self):
        return self.grid.first_period()

    @property
    def last_period(self):
        return self.grid.last_period()

    def timestep_for(self, model_t: int) -> Optional[Timestep]:
        """This component's timestep at model position `model_t`, or None when inactive."""
        t = model_t - self._model_shift
        if 1 <= t <= self.grid.period_count():
            return Timestep(self.grid, t)
        return None

    def reset_variables(self) -> None:
        for item in self._variables.values():
            if isinstance(item, (TimestepArray, ScalarCell)):
                item.reset()
            else:
                item.fill(np.nan)

    def run_init(self) -> None:
        fn = self.compdef.init_fn
        if fn is not None:
            fn(self.p, self.v, self.d)

    def run_timestep(self, ts: Timestep) -> None:
        fn = self.compdef.run_timestep_fn
        if fn is not None:
            fn(self.p, self.v, self.d, ts)

    def __repr__(self) -> str:
        return f"<ComponentInstance '{self.name}' {self.first_period!r}..{self.last_period!r}>"


class ModelInstance:
    """Immutable, ordered, storage-bound realization of a `ModelDef`."""

    def __init__(
        self,
        *,
        grid: TimeGrid,
        order: Sequence[str],
        components: Mapping[str, ComponentInstance],
        edges: Sequence[Edge],
        externals: Mapping[str, object],
        external_bindings: Mapping[Tuple[str, str], str],
        dimensions: Mapping[str, List],
    ) -> None:
        self._grid = grid
        self._order = tuple(order)
        self._components = MappingProxyType(dict(components))
        self._edges = tuple(edges)
        self._externals = MappingProxyType(dict(externals))
        self._external_bindings = MappingProxyType(dict(external_bindings))
        self._dimensions = MappingProxyType({k: list(v) for k, v in dimensions.items()})
        self.clock = Clock(grid)
        self.state = RunState.NOT_STARTED

    # ---- structure (read-only) ----

    @property
    def grid(self) -> TimeGrid:
        return self._grid

    @property
    def execution_order(self) -> Tuple[str, ...]:
        return self._order

    @property
    def components(self) -> Mapping[str, ComponentInstance]:
        return self._components

    @property
    def edges(self) -> Tuple[Edge, ...]:
        return self._edges

    @property
    def dimensions(self) -> Mapping[str, List]:
        return self._dimensions

    def component(self, comp: str) -> ComponentInstance:
        try:
            return self._components[comp]
        except KeyError:
            raise KeyError(unknown_name_message("component", comp, self._components)) from None

    def variables(self, comp: str) -> List[str]:
        return list(self.component(comp).variables)

    def parameters(self, comp: str) -> List[str]:
        return list(self.component(comp).parameters)

    def external_parameters(self) -> List[str]:
        """Names accepted by `update_external_parameter()`."""
        return list(self._externals)

    def storage(self, comp: str, name: str):
        """Return the raw storage object behind `comp.name` (variable or parameter)."""
        ci = self.component(comp)
        if name in ci.variables:
            return ci.variables[name]
        if name in ci.parameters:
            return ci.parameters[name]
        known = list(ci.variables) + list(ci.parameters)
        raise KeyError(unknown_name_message(f"variable or parameter of '{comp}'", name, known))

    def __getitem__(self, key: Tuple[str, str]):
        comp, name = key
        item = self.storage(comp, name)
        if isinstance(item, ScalarCell):
            return item.get()
        return item

    def time_series(self, comp: str, name: str) -> List[Tuple[Hashable, object]]:
        """Ordered `(period label, value)` pairs for a time-dimensioned variable or parameter."""
        item = self.storage(comp, name)
        if not isinstance(item, (TimestepArray, ConnectedArray)):
            raise TypeError(f"{datum_key(comp, name)} has no time dimension; read it with instance[comp, name]")
        return item.time_series()

    # ---- perturbation between runs ----

    def update_external_parameter(self, name: str, value) -> None:
        """Overwrite an external parameter's stored value in place.

        `name` is `component.param` for explicitly set values and parameter
        defaults, or the bare parameter name for values taken from the
        leftover pool (shared by every component that used it).
        """
        self.check_external_value(name, value)
        item = self._externals[name]
        if isinstance(item, ScalarCell):
            item.set(value)
        elif isinstance(item, TimestepArray):
            item.set_values(value)
        else:
            item[...] = np.asarray(value, dtype=float)
        log.debug("Updated external parameter '%s'", name)

    def check_external_value(self, name: str, value) -> None:
        """Raise unless `value` fits the storage of external parameter `name`; writes nothing."""
        if name not in self._externals:
            raise KeyError(unknown_name_message("external parameter", name, self._externals))
        item = self._externals[name]
        shape = np.shape(value)
        if isinstance(item, ScalarCell):
            if shape != ():
                raise ShapeMismatchError(f"External parameter '{name}' is a scalar; got an array")
        elif isinstance(item, TimestepArray) and shape == ():
            return
        elif shape != item.shape:
            raise ShapeMismatchError(
                f"External parameter '{name}' has shape {item.shape}; got data of shape {shape}"
            )

    def external_name_for(self, comp: str, param: str) -> Optional[str]:
        return self._external_bindings.get((comp, param))

    # ---- run loop ----

    def _last_ordinal(self, ntimesteps: Optional[int], stop: Optional[Hashable]) -> int:
        last = self._grid.period_count()
        if ntimesteps is not None:
            if ntimesteps < 1:
                raise ValueError(f"ntimesteps must be positive, got {ntimesteps}")
            last = min(last, int(ntimesteps))
        if stop is not None:
            last = min(last, self._grid.position_of(stop))
        return last

    def reset_variables(self) -> None:
        for ci in self._components.values():
            ci.reset_variables()

    def run(self, ntimesteps: Optional[int] = None, *, stop: Optional[Hashable] = None) -> None:
        """Execute every component once per period, in build order.

        Runs from the first period up to the last period, or up to `stop`
        (a period label) / the first `ntimesteps` periods if given. Exceptions
        raised by components propagate unchanged; the clock is left at the
        failing period and earlier writes are kept for inspection.
        """
        if self.state is RunState.RUNNING:
            raise RuntimeError("Model instance is already running")
        last = self._last_ordinal(ntimesteps, stop)

        self.clock.reset()
        self.reset_variables()
        self.state = RunState.RUNNING
        log.info(
            "Starting run: %d of %d periods from %r (order: %s)",
            last,
            self._grid.period_count(),
            self._grid.first_period(),
            ", ".join(self._order),
        )

        current = None
        try:
            for name in self._order:
                current = name
                self._components[name].run_init()
            while True:
                model_t = self.clock.t
                for name in self._order:
                    current = name
                    ci = self._components[name]
                    ts = ci.timestep_for(model_t)
                    if ts is not None:
                        ci.run_timestep(ts)
                log.debug("Completed period %r (%d/%d)", self.clock.current_period(), model_t, last)
                if model_t >= last:
                    break
                self.clock.advance()
        except Exception:
            self.state = RunState.FAILED
            log.error(
                "Run aborted in component '%s' at period %r",
                current,
                self.clock.current_period(),
            )
            raise

        self.state = RunState.FINISHED
        log.info("Run finished at period %r", self.clock.current_period())

    def __repr__(self) -> str:
        return f"<ModelInstance order={list(self._order)} state={self.state.value}>"
