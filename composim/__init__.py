"""composim: compose simulations from components over a shared timeline.

Exports the authoring API (component definitions, model definitions, time
grids), the run API (build, Model, MarginalModel), time addressing helpers
and the error taxonomy for convenient imports.

Configuration loading (`composim.scenario`) and logging setup
(`composim.utils_logging`) are imported from their modules.
"""

from .addressing import TimestepIndex, TimestepValue
from .build import build
from .clock import Clock, RunState, Timestep
from .component import ComponentDef, ParameterDef, VariableDef
from .dataframe import get_dataframe, to_series
from .exceptions import *  # re-export the error taxonomy
from .exceptions import __all__ as _exceptions_all
from .marginal import MarginalModel
from .model import Model
from .model_def import Edge, ModelDef
from .model_instance import ComponentInstance, ModelInstance
from .time_array import ConnectedArray, ScalarCell, TimestepArray, has_value
from .time_grid import TimeGrid, UniformGrid, VariableGrid, make_grid

__all__ = list(_exceptions_all)

__all__ += [
    "TimestepIndex",
    "TimestepValue",
    "build",
    "Clock",
    "RunState",
    "Timestep",
    "ComponentDef",
    "ParameterDef",
    "VariableDef",
    "get_dataframe",
    "to_series",
    "MarginalModel",
    "Model",
    "Edge",
    "ModelDef",
    "ComponentInstance",
    "ModelInstance",
    "ConnectedArray",
    "ScalarCell",
    "TimestepArray",
    "has_value",
    "TimeGrid",
    "UniformGrid",
    "VariableGrid",
    "make_grid",
]

__version__ = "0.1.0"
