from __future__ import annotations

"""
`Model`: a `ModelDef` plus the instance built from it.

The facade is what modelers normally hold. Structural calls (components,
connections, external values, dimensions, time grid) go to the definition;
the first call that needs results builds an instance, and any later
structural change marks it stale so the next access rebuilds.

Between runs, external values can be overwritten in place with
`update_external_parameter()` / `update_leftover_parameter()` without a
rebuild; this is how perturbation drivers (see `MarginalModel`) re-run the
same instance with different inputs.
"""

import logging
from typing import Hashable, List, Mapping, Optional, Sequence, Tuple, Union

from .build import build
from .clock import Clock, RunState
from .component import ComponentDef
from .dataframe import get_dataframe
from .model_def import Edge, ModelDef
from .model_instance import ModelInstance
from .naming import datum_key, unknown_name_message
from .time_grid import TimeGrid


log = logging.getLogger(__name__)


class Model:
    def __init__(self, grid: TimeGrid, *, name: str = "model") -> None:
        self.md = ModelDef(grid, name=name)
        self._instance: Optional[ModelInstance] = None
        self._built_version: Optional[int] = None

    @classmethod
    def from_def(cls, md: ModelDef) -> "Model":
        m = cls.__new__(cls)
        m.md = md
        m._instance = None
        m._built_version = None
        return m

    @property
    def name(self) -> str:
        return self.md.name

    @property
    def grid(self) -> TimeGrid:
        return self.md.grid

    # ---- definition (delegated) ----

    def set_time_grid(self, grid: TimeGrid) -> None:
        self.md.set_time_grid(grid)

    def set_dimension(self, name: str, labels: Union[int, Sequence]) -> List:
        return self.md.set_dimension(name, labels)

    def add_component(self, compdef: ComponentDef, name: Optional[str] = None, **kwargs) -> str:
        return self.md.add_component(compdef, name, **kwargs)

    def delete_component(self, comp: str) -> None:
        self.md.delete_component(comp)

    def connect_parameter(self, dst_comp: str, dst_param: str, src_comp: str, src_var: str, *, offset: int = 0) -> Edge:
        return self.md.connect_parameter(dst_comp, dst_param, src_comp, src_var, offset=offset)

    def disconnect_parameter(self, dst_comp: str, dst_param: str) -> None:
        self.md.disconnect_parameter(dst_comp, dst_param)

    def set_parameter(self, comp: str, param: str, value) -> None:
        self.md.set_parameter(comp, param, value)

    def set_leftover_parameters(self, values: Mapping[str, object]) -> None:
        self.md.set_leftover_parameters(values)

    def unconnected_parameters(self) -> List[Tuple[str, str]]:
        return self.md.unconnected_parameters()

    def components(self) -> List[str]:
        return self.md.components()

    # ---- build ----

    @property
    def is_built(self) -> bool:
        """True when an instance exists and no structural change happened since."""
        return self._instance is not None and self._built_version == self.md.version

    def build(self) -> ModelInstance:
        """Build a fresh instance now, replacing any previous one."""
        self._instance = build(self.md)
        self._built_version = self.md.version
        return self._instance

    @property
    def instance(self) -> ModelInstance:
        if not self.is_built:
            if self._instance is not None:
                log.info("Model '%s' changed since the last build; rebuilding", self.md.name)
            self.build()
        return self._instance

    # ---- run & results ----

    def run(self, ntimesteps: Optional[int] = None, *, stop: Optional[Hashable] = None) -> ModelInstance:
        mi = self.instance
        mi.run(ntimesteps, stop=stop)
        return mi

    @property
    def state(self) -> RunState:
        if not self.is_built:
            return RunState.NOT_STARTED
        return self._instance.state

    @property
    def clock(self) -> Clock:
        return self.instance.clock

    @property
    def execution_order(self) -> Tuple[str, ...]:
        return self.instance.execution_order

    def variables(self, comp: str) -> List[str]:
        return list(self.md.variables(comp))

    def parameters(self, comp: str) -> List[str]:
        return list(self.md.parameters(comp))

    def __getitem__(self, key: Tuple[str, str]):
        return self.instance[key]

    def time_series(self, comp: str, name: str) -> List[Tuple[Hashable, object]]:
        return self.instance.time_series(comp, name)

    def get_dataframe(self, comp: str, *names: str):
        return get_dataframe(self.instance, comp, *names)

    # ---- perturbation between runs ----

    def update_external_parameter(self, comp: str, param: str, value) -> None:
        """Overwrite the external value bound to `comp.param`.

        The definition is always updated. A current instance is updated in
        place when the parameter already had its own external storage;
        otherwise (it was bound to a default or a shared leftover) the
        instance is rebuilt on next access.
        """
        in_place = self.is_built and (comp, param) in self.md.external_parameters()
        if in_place:
            # Shape errors surface here, before the definition is touched
            self._instance.update_external_parameter(datum_key(comp, param), value)
        self.md.update_parameter(comp, param, value)

    def update_leftover_parameter(self, name: str, value) -> None:
        """Overwrite a leftover default; every component sharing it sees the new value."""
        if not self.md.has_leftover(name):
            raise KeyError(unknown_name_message("leftover parameter", name, self.md.leftovers()))
        if self.is_built and name in self._instance.external_parameters():
            self._instance.update_external_parameter(name, value)
        self.md.update_leftover(name, value)

    def __repr__(self) -> str:
        return f"<Model '{self.md.name}' components={self.md.components()} state={self.state.value}>"
