from __future__ import annotations

"""
pandas views of model results.

`get_dataframe()` collects one or more variables/parameters of a component
into a DataFrame. The index follows the data's dimensions in axis order:
a plain `time` index for time vectors, a `MultiIndex` (e.g. `time`,
`regions`) for arrays with extra dimensions. Time-dimensioned frames are laid
out on the model's full grid in period order; periods a column does not
cover come back as NaN.

Connected parameters are shown as their consumer reads them: on the
consumer's grid with any lag or lead already applied.
"""

from typing import Hashable, List, Sequence, Tuple

import numpy as np
import pandas as pd

from .model_instance import ModelInstance
from .naming import TIME_DIM, datum_key
from .time_array import ConnectedArray, ScalarCell, TimestepArray


Axis = Tuple[str, Sequence[Hashable]]


def _index(axes: Sequence[Axis]) -> pd.Index:
    if len(axes) == 1:
        dim, labels = axes[0]
        return pd.Index(list(labels), name=dim)
    return pd.MultiIndex.from_product([list(labels) for _, labels in axes], names=[dim for dim, _ in axes])


def to_series(values, axes: Sequence[Axis], name: str = None) -> pd.Series:
    """Flatten an n-dimensional array into a Series indexed by the product of `axes`.

    `axes` lists `(dimension name, labels)` in the array's axis order.
    """
    values = np.asarray(values)
    if values.ndim != len(axes):
        raise ValueError(f"{len(axes)} axes given for data with {values.ndim} dimension(s)")
    for (dim, labels), size in zip(axes, values.shape):
        if len(labels) != size:
            raise ValueError(f"Dimension '{dim}' has {len(labels)} labels for an axis of length {size}")
    return pd.Series(values.reshape(-1), index=_index(axes), name=name)


def _datum_def(mi: ModelInstance, comp: str, name: str):
    compdef = mi.component(comp).compdef
    return compdef.variables.get(name) or compdef.parameters[name]


def _axes_and_values(mi: ModelInstance, comp: str, name: str) -> Tuple[Tuple[str, ...], List[Axis], np.ndarray]:
    item = mi.storage(comp, name)
    if isinstance(item, ScalarCell):
        raise ValueError(f"{datum_key(comp, name)} is a scalar; read it with model[{comp!r}, {name!r}]")
    datum = _datum_def(mi, comp, name)
    if isinstance(item, ConnectedArray):
        time_labels, values = item.grid.labels(), item.aligned_values()
    elif isinstance(item, TimestepArray):
        time_labels, values = item.grid.labels(), item.values
    else:
        time_labels, values = None, np.asarray(item)
    axes: List[Axis] = []
    for dim in datum.dims:
        labels = time_labels if dim == TIME_DIM else mi.dimensions[dim]
        axes.append((dim, labels))
    return datum.dims, axes, values


def get_dataframe(source, comp: str, *names: str) -> pd.DataFrame:
    """DataFrame of `names` (variables or parameters of `comp`), one column each.

    `source` is a `ModelInstance` or anything exposing one as `.instance`
    (a `Model`). All requested names must share the same dimensions.
    """
    mi = source if isinstance(source, ModelInstance) else source.instance
    if not names:
        raise ValueError("Name at least one variable or parameter")

    columns = []
    dims = None
    for name in names:
        these_dims, axes, values = _axes_and_values(mi, comp, name)
        if dims is None:
            dims = these_dims
        elif these_dims != dims:
            raise ValueError(
                f"Cannot combine {datum_key(comp, name)} with dimensions {these_dims} "
                f"and {datum_key(comp, names[0])} with dimensions {dims} in one DataFrame"
            )
        columns.append(to_series(values, axes, name=name))
    df = pd.concat(columns, axis=1)
    if TIME_DIM in dims:
        full = [(dim, mi.grid.labels() if dim == TIME_DIM else mi.dimensions[dim]) for dim in dims]
        df = df.reindex(_index(full))
    return df
