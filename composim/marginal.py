from __future__ import annotations

"""
Marginal model: a base and a perturbed instance of the same definition.

Both instances are built from one `ModelDef` and share nothing at run time.
The caller perturbs the marginal instance through
`update_external_parameter()`, runs both, and reads differences:

    mm = MarginalModel(model, delta=1e-3)
    mm.update_external_parameter("emissions", "pulse", pulse_series)
    mm.run()
    response = mm["climate", "temperature"]   # (marginal - base) / delta
"""

import logging
from typing import Hashable, Optional, Tuple

import numpy as np

from .build import build
from .model_def import ModelDef
from .model_instance import ModelInstance
from .naming import datum_key
from .time_array import ConnectedArray, ScalarCell


log = logging.getLogger(__name__)


def _as_float_array(mi: ModelInstance, comp: str, name: str) -> np.ndarray:
    item = mi.storage(comp, name)
    if isinstance(item, ScalarCell):
        return np.asarray(item.get(), dtype=float)
    if isinstance(item, ConnectedArray):
        return item.aligned_values().astype(float)
    return np.asarray(getattr(item, "values", item), dtype=float)


class MarginalModel:
    def __init__(self, model, delta: float = 1.0) -> None:
        if delta == 0:
            raise ValueError("MarginalModel delta must be non-zero")
        md = model if isinstance(model, ModelDef) else model.md
        self.md = md
        self.delta = delta
        self.base = build(md)
        self.marginal = build(md)

    def update_external_parameter(self, comp: str, param: str, value) -> None:
        """Perturb `comp.param` on the marginal instance only.

        When the parameter draws from a shared leftover, every component
        sharing that leftover sees the perturbation.
        """
        name = self.marginal.external_name_for(comp, param)
        if name is None:
            raise ValueError(f"{datum_key(comp, param)} is connected to another component and cannot be perturbed")
        self.marginal.update_external_parameter(name, value)

    def run(self, ntimesteps: Optional[int] = None, *, stop: Optional[Hashable] = None) -> None:
        log.info("Running base and marginal instances of '%s' (delta=%g)", self.md.name, self.delta)
        self.base.run(ntimesteps, stop=stop)
        self.marginal.run(ntimesteps, stop=stop)

    def __getitem__(self, key: Tuple[str, str]) -> np.ndarray:
        comp, name = key
        diff = _as_float_array(self.marginal, comp, name) - _as_float_array(self.base, comp, name)
        return diff / self.delta

    def __repr__(self) -> str:
        return f"<MarginalModel '{self.md.name}' delta={self.delta!r}>"
