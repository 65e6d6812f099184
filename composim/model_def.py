from __future__ import annotations

"""
Model definition: the mutable graph of components and bindings.

A `ModelDef` collects, in declaration order:
- components (each a `ComponentDef` under a model-unique name, optionally
  active over only part of the model's time grid via `first`/`last`)
- edges connecting a producer's variable to a consumer's parameter, with an
  optional lead/lag `offset`
- external parameter values (constants or arrays supplied by the modeler)
- a pool of leftover defaults, keyed by bare parameter name, used at build
  time for parameters that nothing else binds
- non-time dimensions (name -> labels)

Nothing is allocated here; `build()` turns a definition into a runnable
`ModelInstance`. Every structural change bumps `version`, which is how the
`Model` facade knows a previously built instance is stale.
"""

from dataclasses import dataclass
import logging
from typing import Dict, Hashable, List, Mapping, Optional, Sequence, Tuple, Union

from .component import ComponentDef, ParameterDef, VariableDef
from .exceptions import DuplicateBindingError
from .naming import TIME_DIM, datum_key, unknown_name_message, validate_name
from .time_grid import TimeGrid


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Edge:
    """Producer variable -> consumer parameter binding.

    The consumer at position `t` reads the producer at position `t + offset`;
    a negative offset reads earlier periods. Only zero-offset edges constrain
    the execution order.
    """

    dst_comp: str
    dst_param: str
    src_comp: str
    src_var: str
    offset: int = 0

    @property
    def is_ordering(self) -> bool:
        return self.offset == 0

    def __str__(self) -> str:
        lag = f" (offset {self.offset:+d})" if self.offset else ""
        return f"{self.src_comp}.{self.src_var} -> {self.dst_comp}.{self.dst_param}{lag}"


@dataclass(frozen=True)
class ComponentEntry:
    name: str
    compdef: ComponentDef
    first: Optional[Hashable] = None
    last: Optional[Hashable] = None


class ModelDef:
    def __init__(self, grid: TimeGrid, *, name: str = "model") -> None:
        self.name = name
        self._grid = grid
        self._components: Dict[str, ComponentEntry] = {}
        self._edges: Dict[Tuple[str, str], Edge] = {}
        self._external: Dict[Tuple[str, str], object] = {}
        self._leftovers: Dict[str, object] = {}
        self._dimensions: Dict[str, List] = {}
        self.version = 0

    def _touch(self) -> None:
        self.version += 1

    # ---- time & dimensions ----

    @property
    def grid(self) -> TimeGrid:
        return self._grid

    def set_time_grid(self, grid: TimeGrid) -> None:
        # Component bounds must still exist on the new grid
        for entry in self._components.values():
            for bound in (entry.first, entry.last):
                if bound is not None:
                    grid.position_of(bound)
        self._grid = grid
        self._touch()

    def set_dimension(self, name: str, labels: Union[int, Sequence]) -> List:
        """Define a non-time dimension by its labels (or by a count, giving labels 1..n)."""
        validate_name(name, "dimension name")
        if name == TIME_DIM:
            raise ValueError("The time dimension is defined by the model's time grid, not set_dimension()")
        if isinstance(labels, int):
            labels = list(range(1, labels + 1))
        labels = list(labels)
        if not labels:
            raise ValueError(f"Dimension '{name}' needs at least one label")
        if len(set(labels)) != len(labels):
            raise ValueError(f"Dimension '{name}' has duplicate labels: {labels}")
        self._dimensions[name] = labels
        self._touch()
        return list(labels)

    def dimensions(self) -> Dict[str, List]:
        return {k: list(v) for k, v in self._dimensions.items()}

    # ---- components ----

    def _entry(self, comp: str) -> ComponentEntry:
        try:
            return self._components[comp]
        except KeyError:
            raise KeyError(unknown_name_message("component", comp, self._components)) from None

    def compdef(self, comp: str) -> ComponentDef:
        return self._entry(comp).compdef

    def component_entry(self, comp: str) -> ComponentEntry:
        return self._entry(comp)

    def components(self) -> List[str]:
        return list(self._components)

    def add_component(
        self,
        compdef: ComponentDef,
        name: Optional[str] = None,
        *,
        first: Optional[Hashable] = None,
        last: Optional[Hashable] = None,
        before: Optional[str] = None,
        after: Optional[str] = None,
    ) -> str:
        """Add `compdef` under `name` (defaults to the definition's name).

        `first`/`last` restrict the component to part of the grid. `before` or
        `after` position it relative to an existing component in declaration
        order, which is also the tie-break order at build time.
        """
        name = validate_name(name or compdef.name, "component name")
        if name in self._components:
            raise ValueError(f"Model already has a component named '{name}'")
        if before is not None and after is not None:
            raise ValueError("Use at most one of 'before' and 'after'")
        # Validates that both bounds exist and are ordered
        self._grid.subgrid(first, last)

        entry = ComponentEntry(name, compdef, first, last)
        anchor = before if before is not None else after
        if anchor is None:
            self._components[name] = entry
        else:
            self._entry(anchor)
            items = list(self._components.items())
            pos = [k for k, _ in items].index(anchor) + (0 if before is not None else 1)
            items.insert(pos, (name, entry))
            self._components = dict(items)
        self._touch()
        log.debug("Added component '%s' (%s)", name, compdef.name)
        return name

    def delete_component(self, comp: str) -> None:
        """Remove a component together with every edge and external value touching it."""
        self._entry(comp)
        del self._components[comp]
        self._edges = {k: e for k, e in self._edges.items() if e.dst_comp != comp and e.src_comp != comp}
        self._external = {k: v for k, v in self._external.items() if k[0] != comp}
        self._touch()

    def parameters(self, comp: str) -> Dict[str, ParameterDef]:
        return self.compdef(comp).parameters

    def variables(self, comp: str) -> Dict[str, VariableDef]:
        return self.compdef(comp).variables

    def _param_def(self, comp: str, param: str) -> ParameterDef:
        params = self.parameters(comp)
        if param not in params:
            raise KeyError(unknown_name_message(f"parameter of '{comp}'", param, params))
        return params[param]

    def _var_def(self, comp: str, var: str) -> VariableDef:
        variables = self.variables(comp)
        if var not in variables:
            raise KeyError(unknown_name_message(f"variable of '{comp}'", var, variables))
        return variables[var]

    # ---- bindings ----

    def _check_unbound(self, comp: str, param: str) -> None:
        key = (comp, param)
        if key in self._edges:
            raise DuplicateBindingError(
                f"{datum_key(comp, param)} is already connected ({self._edges[key]})"
            )
        if key in self._external:
            raise DuplicateBindingError(f"{datum_key(comp, param)} already has an external value")

    def connect_parameter(
        self,
        dst_comp: str,
        dst_param: str,
        src_comp: str,
        src_var: str,
        *,
        offset: int = 0,
    ) -> Edge:
        self._param_def(dst_comp, dst_param)
        self._var_def(src_comp, src_var)
        if not isinstance(offset, int) or isinstance(offset, bool):
            raise TypeError(f"Connection offset must be an integer, got {offset!r}")
        self._check_unbound(dst_comp, dst_param)
        edge = Edge(dst_comp, dst_param, src_comp, src_var, offset)
        self._edges[(dst_comp, dst_param)] = edge
        self._touch()
        log.debug("Connected %s", edge)
        return edge

    def disconnect_parameter(self, dst_comp: str, dst_param: str) -> None:
        self._param_def(dst_comp, dst_param)
        self._edges.pop((dst_comp, dst_param), None)
        self._external.pop((dst_comp, dst_param), None)
        self._touch()

    def set_parameter(self, comp: str, param: str, value) -> None:
        """Bind `comp.param` to an externally supplied constant or array."""
        self._param_def(comp, param)
        self._check_unbound(comp, param)
        self._external[(comp, param)] = value
        self._touch()

    def update_parameter(self, comp: str, param: str, value) -> None:
        """Replace the external value of `comp.param` (which must not be connected).

        Replacing an existing value is not a structural change and leaves
        `version` alone; binding a previously unbound parameter bumps it.
        """
        self._param_def(comp, param)
        if (comp, param) in self._edges:
            raise DuplicateBindingError(
                f"{datum_key(comp, param)} is connected ({self._edges[(comp, param)]}), not external"
            )
        is_new = (comp, param) not in self._external
        self._external[(comp, param)] = value
        if is_new:
            self._touch()

    def set_leftover_parameters(self, values: Mapping[str, object]) -> None:
        """Add defaults, keyed by bare parameter name, for parameters left unbound at build."""
        for name in values:
            validate_name(name, "parameter name")
        self._leftovers.update(values)
        self._touch()

    def update_leftover(self, name: str, value) -> None:
        if name not in self._leftovers:
            raise KeyError(unknown_name_message("leftover parameter", name, self._leftovers))
        self._leftovers[name] = value

    def has_leftover(self, name: str) -> bool:
        return name in self._leftovers

    def leftovers(self) -> Dict[str, object]:
        return dict(self._leftovers)

    def edges(self) -> List[Edge]:
        return list(self._edges.values())

    def edge_into(self, comp: str, param: str) -> Optional[Edge]:
        return self._edges.get((comp, param))

    def external_parameters(self) -> Dict[Tuple[str, str], object]:
        return dict(self._external)

    def unconnected_parameters(self) -> List[Tuple[str, str]]:
        """(component, parameter) pairs with neither an edge nor an external value."""
        out = []
        for comp, entry in self._components.items():
            for param in entry.compdef.parameters:
                if (comp, param) not in self._edges and (comp, param) not in self._external:
                    out.append((comp, param))
        return out

    def __repr__(self) -> str:
        return f"ModelDef({self.name!r}, grid={self._grid!r}, components={self.components()})"
