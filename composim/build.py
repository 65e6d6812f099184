from __future__ import annotations

"""
Build: turn a `ModelDef` into a runnable `ModelInstance`.

Steps
1. Resolve a binding for every parameter: an edge, an external value, a
   leftover default (by bare parameter name) or the parameter's declared
   default, in that order. Anything left over is an `UnboundParameterError`.
2. Build the producer -> consumer graph from zero-offset edges only. Edges
   with a lead/lag read values computed in other periods and do not
   constrain same-period order.
3. Topologically sort it, breaking ties by declaration order so repeated
   builds give the same order. A cycle is a `CyclicDependencyError`.
4. Allocate storage: a `TimestepArray` per time-dimensioned variable (on the
   component's grid), a numpy array per other dimensioned variable, a
   `ScalarCell` per scalar variable, and storage for every external value.
   Connected parameters get a `ConnectedArray` over the producer's array with
   the grid translation and offset computed once here.
5. Freeze order and storage into a `ModelInstance`.

All errors are raised before any period executes.
"""

from heapq import heapify, heappop, heappush
import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .component import DatumDef, ParameterDef
from .exceptions import BuildError, CyclicDependencyError, ShapeMismatchError, UnboundParameterError
from .model_def import Edge, ModelDef
from .model_instance import ComponentInstance, ModelInstance
from .naming import datum_key
from .time_array import ConnectedArray, ScalarCell, TimestepArray
from .time_grid import TimeGrid


log = logging.getLogger(__name__)


# ---- 1) bindings ----


def _resolve_bindings(md: ModelDef, use_leftovers: bool) -> Tuple[Dict[Tuple[str, str], Tuple[str, object]], List[str]]:
    """Return ({(comp, param): (kind, payload)}, unbound keys).

    kind is "edge" (payload: Edge), "external" / "default" (payload: value)
    or "leftover" (payload: leftover name).
    """
    externals = md.external_parameters()
    leftovers = md.leftovers() if use_leftovers else {}
    bindings: Dict[Tuple[str, str], Tuple[str, object]] = {}
    unbound: List[str] = []
    for comp in md.components():
        for name, pdef in md.parameters(comp).items():
            key = (comp, name)
            edge = md.edge_into(comp, name)
            if edge is not None:
                bindings[key] = ("edge", edge)
            elif key in externals:
                bindings[key] = ("external", externals[key])
            elif name in leftovers:
                bindings[key] = ("leftover", name)
            elif pdef.default is not None:
                bindings[key] = ("default", pdef.default)
            else:
                unbound.append(datum_key(comp, name))
    return bindings, unbound


# ---- 2-3) ordering ----


def _find_cycle(remaining: Sequence[str], deps: Mapping[str, set], index: Mapping[str, int]) -> List[str]:
    """Walk producer links among `remaining` until a node repeats; return that loop.

    Every node left after Kahn's algorithm has at least one unplaced producer,
    so the walk always closes a loop.
    """
    pool = set(remaining)
    path: List[str] = []
    seen: Dict[str, int] = {}
    node = remaining[0]
    while node not in seen:
        seen[node] = len(path)
        path.append(node)
        node = min((d for d in deps[node] if d in pool), key=index.__getitem__)
    cycle = path[seen[node]:]
    # path follows consumer -> producer; report producer -> consumer from the earliest-declared
    cycle.reverse()
    start = cycle.index(min(cycle, key=index.__getitem__))
    return cycle[start:] + cycle[:start]


def execution_order(components: Sequence[str], edges: Sequence[Edge]) -> List[str]:
    """Topological order of `components` under zero-offset `edges`, ties by declaration order."""
    index = {c: i for i, c in enumerate(components)}
    deps: Dict[str, set] = {c: set() for c in components}
    users: Dict[str, set] = {c: set() for c in components}
    for edge in edges:
        if not edge.is_ordering:
            continue
        deps[edge.dst_comp].add(edge.src_comp)
        users[edge.src_comp].add(edge.dst_comp)

    indegree = {c: len(deps[c]) for c in components}
    heap = [(index[c], c) for c in components if indegree[c] == 0]
    heapify(heap)
    order: List[str] = []
    while heap:
        _, comp = heappop(heap)
        order.append(comp)
        for user in users[comp]:
            indegree[user] -= 1
            if indegree[user] == 0:
                heappush(heap, (index[user], user))

    if len(order) < len(components):
        placed = set(order)
        remaining = [c for c in components if c not in placed]
        raise CyclicDependencyError(_find_cycle(remaining, deps, index))
    return order


# ---- 4) allocation ----


def _other_shape(datum: DatumDef, dims: Mapping[str, List], owner: str) -> Tuple[int, ...]:
    shape = []
    for d in datum.other_dims:
        if d not in dims:
            raise ShapeMismatchError(
                f"{datum_key(owner, datum.name)} uses dimension '{d}', which is not set on the model"
            )
        shape.append(len(dims[d]))
    return tuple(shape)


def _allocate_variable(datum: DatumDef, grid: TimeGrid, dims: Mapping[str, List], comp: str):
    name = datum_key(comp, datum.name)
    other = _other_shape(datum, dims, comp)
    if datum.has_time:
        return TimestepArray(grid, other, time_axis=datum.time_axis, name=name)
    if datum.dims:
        return np.full(other, np.nan)
    return ScalarCell(name)


def _time_shape(grid: TimeGrid, other: Tuple[int, ...], time_axis: int) -> Tuple[int, ...]:
    return other[:time_axis] + (grid.period_count(),) + other[time_axis:]


def _allocate_external(
    value,
    pdef: ParameterDef,
    *,
    name: str,
    model_grid: TimeGrid,
    comp_grid: TimeGrid,
    dims: Mapping[str, List],
    comp: str,
):
    """Storage for an externally supplied value, shape-checked against `pdef`."""
    if pdef.is_scalar:
        if np.ndim(value) != 0:
            raise ShapeMismatchError(f"{name} is a scalar parameter but was given data of shape {np.shape(value)}")
        return ScalarCell(name, value)

    other = _other_shape(pdef, dims, comp)
    arr = np.asarray(value, dtype=float)
    if not pdef.has_time:
        if arr.ndim != 0 and arr.shape != other:
            raise ShapeMismatchError(f"{name} expects shape {other}, got data of shape {arr.shape}")
        return np.broadcast_to(arr, other).copy()

    for grid in (model_grid, comp_grid):
        expected = _time_shape(grid, other, pdef.time_axis)
        if arr.ndim == 0 or arr.shape == expected:
            return TimestepArray(grid, other, time_axis=pdef.time_axis, name=name, data=arr)
    raise ShapeMismatchError(
        f"{name} expects shape {_time_shape(model_grid, other, pdef.time_axis)} "
        f"(model grid) or {_time_shape(comp_grid, other, pdef.time_axis)} (component grid), "
        f"got data of shape {arr.shape}"
    )


def check_parameter_value(
    md: ModelDef,
    comp: str,
    param: str,
    value,
    *,
    grid: Optional[TimeGrid] = None,
    dimensions: Optional[Mapping[str, List]] = None,
) -> None:
    """Raise `ShapeMismatchError` unless `value` could be stored for `comp.param`.

    Applies the same rules as `build()`. `grid` and `dimensions` stand in for
    the model's own when a value is checked against pending changes.
    """
    entry = md.component_entry(comp)
    model_grid = grid if grid is not None else md.grid
    dims = md.dimensions()
    dims.update(dimensions or {})
    _allocate_external(
        value,
        md.parameters(comp)[param],
        name=datum_key(comp, param),
        model_grid=model_grid,
        comp_grid=model_grid.subgrid(entry.first, entry.last),
        dims=dims,
        comp=comp,
    )


def _readonly(arr: np.ndarray) -> np.ndarray:
    view = arr.view()
    view.flags.writeable = False
    return view


def _bind_storage(storage, consumer_grid: TimeGrid, *, offset: int = 0, name: str):
    """What a consumer's parameter namespace holds for `storage`."""
    if isinstance(storage, TimestepArray):
        shift = consumer_grid.translation_to(storage.grid)
        return ConnectedArray(storage, consumer_grid, shift + offset, offset, name=name)
    if isinstance(storage, np.ndarray):
        return _readonly(storage)
    return storage


def _check_edge_shapes(edge: Edge, pdef: ParameterDef, vdef: DatumDef) -> None:
    if pdef.dims != vdef.dims:
        raise ShapeMismatchError(
            f"Cannot connect {edge}: producer dimensions {vdef.dims} differ from consumer dimensions {pdef.dims}"
        )
    if edge.offset and not vdef.has_time:
        raise ShapeMismatchError(f"Cannot connect {edge}: an offset needs a time-dimensioned variable")


# ---- 5) build ----


def build(md: ModelDef, *, use_leftovers: bool = True) -> ModelInstance:
    comps = md.components()
    if not comps:
        raise BuildError(f"Model '{md.name}' has no components")

    bindings, unbound = _resolve_bindings(md, use_leftovers)
    if unbound:
        raise UnboundParameterError(unbound)

    order = execution_order(comps, md.edges())

    model_grid = md.grid
    dims = md.dimensions()
    comp_grids: Dict[str, TimeGrid] = {}
    variables: Dict[str, Dict[str, object]] = {}
    for comp in comps:
        entry = md.component_entry(comp)
        cgrid = model_grid.subgrid(entry.first, entry.last)
        comp_grids[comp] = cgrid
        variables[comp] = {
            name: _allocate_variable(vdef, cgrid, dims, comp) for name, vdef in entry.compdef.variables.items()
        }

    externals: Dict[str, object] = {}
    external_defs: Dict[str, ParameterDef] = {}
    external_bindings: Dict[Tuple[str, str], str] = {}
    parameters: Dict[str, Dict[str, object]] = {comp: {} for comp in comps}
    leftover_values = md.leftovers()

    for comp in comps:
        cgrid = comp_grids[comp]
        for pname, pdef in md.parameters(comp).items():
            kind, payload = bindings[(comp, pname)]
            key = datum_key(comp, pname)

            if kind == "edge":
                edge = payload
                vdef = md.variables(edge.src_comp)[edge.src_var]
                _check_edge_shapes(edge, pdef, vdef)
                source = variables[edge.src_comp][edge.src_var]
                try:
                    bound = _bind_storage(source, cgrid, offset=edge.offset, name=f"{key} (from {edge.src_comp}.{edge.src_var})")
                except ShapeMismatchError as exc:
                    raise ShapeMismatchError(f"Cannot connect {edge}: {exc}") from exc
                parameters[comp][pname] = bound
                continue

            if kind == "leftover":
                ext_name = payload
                if ext_name in externals:
                    if external_defs[ext_name].dims != pdef.dims:
                        raise ShapeMismatchError(
                            f"Leftover parameter '{ext_name}' is shared by parameters with different dimensions "
                            f"({external_defs[ext_name].dims} vs {pdef.dims} for {key})"
                        )
                else:
                    # Shared across components, so always sized on the model grid
                    externals[ext_name] = _allocate_external(
                        leftover_values[ext_name], pdef, name=ext_name,
                        model_grid=model_grid, comp_grid=model_grid, dims=dims, comp=comp,
                    )
                    external_defs[ext_name] = pdef
            else:
                ext_name = key
                externals[ext_name] = _allocate_external(
                    payload, pdef, name=key, model_grid=model_grid, comp_grid=cgrid, dims=dims, comp=comp
                )
                external_defs[ext_name] = pdef

            external_bindings[(comp, pname)] = ext_name
            parameters[comp][pname] = _bind_storage(externals[ext_name], cgrid, name=key)

    instances = {
        comp: ComponentInstance(
            comp,
            md.compdef(comp),
            comp_grids[comp],
            model_grid,
            parameters[comp],
            variables[comp],
            {d: dims[d] for d in md.compdef(comp).dimensions() if d in dims},
        )
        for comp in comps
    }

    mi = ModelInstance(
        grid=model_grid,
        order=order,
        components={comp: instances[comp] for comp in order},
        edges=md.edges(),
        externals=externals,
        external_bindings=external_bindings,
        dimensions=dims,
    )
    log.info(
        "Built model '%s': %d components, %d connections, %d external parameters; order: %s",
        md.name,
        len(comps),
        len(md.edges()),
        len(externals),
        " -> ".join(order),
    )
    return mi
