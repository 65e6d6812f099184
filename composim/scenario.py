from __future__ import annotations

"""
Run configuration loader (YAML/JSON) and strict application to a model.

A run configuration fixes the inputs of one run of an already composed model:

    name: baseline
    time: {first: 2020, step: 1, count: 10}   # or {first, step, last} or {labels: [...]}
    dimensions:
      regions: [USA, EU, CHN]
    parameters:
      growth.rate: 0.02
      emissions.intensity: [0.5, 0.48, 0.46]
    leftovers:
      discount_rate: 0.03

Responsibilities
- Load the file (`yaml.safe_load` or `json.loads`) and validate its
  structure: unknown top-level or time keys, malformed time blocks, keys not of
  the form `component.param` and non-numeric values are errors.
- Coerce numeric values (strings like "2.5%" or "1,000" are accepted; no unit
  interpretation is applied).
- Apply a validated configuration to a `ModelDef` (or `Model`). Every component and
  parameter name is checked first, with close-match suggestions for typos;
  nothing is applied unless everything checks out.

This module does not know about any particular model. It returns a frozen
`RunConfig` and leaves composition (components, connections) to code.
"""

from dataclasses import dataclass, field
import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import yaml

from .build import check_parameter_value
from .exceptions import ShapeMismatchError
from .model import Model
from .model_def import ModelDef
from .naming import datum_key, nearest_matches, split_datum_key, validate_name
from .time_grid import TimeGrid, make_grid


log = logging.getLogger(__name__)


TOP_LEVEL_KEYS = ("name", "time", "dimensions", "parameters", "leftovers")
TIME_KEYS = ("first", "step", "count", "last", "labels")


@dataclass(frozen=True)
class RunConfig:
    name: str
    # Normalized keyword arguments for `make_grid`; None keeps the model's grid
    time: Optional[Dict[str, object]] = None
    dimensions: Dict[str, List] = field(default_factory=dict)
    # "component.param" -> float or nested list of floats
    parameters: Dict[str, object] = field(default_factory=dict)
    leftovers: Dict[str, object] = field(default_factory=dict)


def _coerce_numeric(value: object, field_name: str) -> float:
    """Attempt to coerce an object to a primitive float, stripping simple symbols.

    Accepted inputs include numeric types and strings that may contain common
    currency or formatting symbols. No semantic transformation is applied
    (percent values are not divided by 100).
    """
    if isinstance(value, bool):
        raise ValueError(f"Non-numeric value for '{field_name}': {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        s = value.strip()
        for ch in ["%", "$", "€", "£", ","]:
            s = s.replace(ch, "")
        try:
            return float(s)
        except ValueError as exc:
            raise ValueError(f"Non-numeric value for '{field_name}': {value!r}") from exc
    raise ValueError(f"Non-numeric value for '{field_name}': {value!r}")


def _coerce_label(value: object, field_name: str) -> Union[int, float]:
    """Numeric period label; integral values stay ints so `2020` reads back as `2020`."""
    num = _coerce_numeric(value, field_name)
    return int(num) if num.is_integer() else num


def _coerce_values(value: object, field_name: str):
    """Scalar or (nested) list of numbers, coerced to floats."""
    if isinstance(value, (list, tuple)):
        if not value:
            raise ValueError(f"'{field_name}' must not be an empty list")
        return [_coerce_values(v, f"{field_name}[{i}]") for i, v in enumerate(value)]
    return _coerce_numeric(value, field_name)


def _unknown_keys_message(what: str, unknown: Sequence[str], known: Iterable[str]) -> str:
    known = list(known)
    parts = []
    for name in unknown:
        suggestions = nearest_matches(name, known)
        parts.append(f"{name} (suggest: {', '.join(suggestions)})" if suggestions else name)
    return f"Unknown {what}: " + ", ".join(parts)


def _load_raw_config(path: Path) -> Dict[str, object]:
    """Load YAML/JSON as a plain dict; ensure the root is a mapping."""
    if not path.exists():
        raise FileNotFoundError(f"Run configuration file not found: {path}")
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        # YAML for .yaml/.yml and unknown extensions
        data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ValueError("Run configuration file must deserialize to a mapping/dictionary at top level")
    return data


def _validate_time(raw_time: object) -> Optional[Dict[str, object]]:
    if raw_time is None:
        return None
    if not isinstance(raw_time, Mapping):
        raise ValueError("'time' must be a mapping with 'first'/'step'/'count|last' or 'labels'")
    extras = [k for k in raw_time if k not in TIME_KEYS]
    if extras:
        raise ValueError(_unknown_keys_message("time keys", extras, TIME_KEYS))

    if "labels" in raw_time:
        if any(k in raw_time for k in ("first", "step", "count", "last")):
            raise ValueError("'time' takes either 'labels' or 'first'/'step'/'count|last', not both")
        labels = raw_time["labels"]
        if not isinstance(labels, (list, tuple)) or not labels:
            raise ValueError("time.labels must be a non-empty list of period labels")
        coerced = [_coerce_label(v, f"time.labels[{i}]") for i, v in enumerate(labels)]
        for prev, cur in zip(coerced, coerced[1:]):
            if not prev < cur:
                raise ValueError(f"time.labels must be strictly increasing; offending pair: {prev!r}, {cur!r}")
        return {"labels": coerced}

    for key in ("first", "step"):
        if key not in raw_time:
            raise ValueError(f"time.{key} is required for a uniform grid")
    if ("count" in raw_time) == ("last" in raw_time):
        raise ValueError("'time' needs exactly one of 'count' or 'last'")
    out: Dict[str, object] = {
        "first": _coerce_label(raw_time["first"], "time.first"),
        "step": _coerce_label(raw_time["step"], "time.step"),
    }
    if out["step"] <= 0:
        raise ValueError("time.step must be positive")
    if "count" in raw_time:
        count = _coerce_numeric(raw_time["count"], "time.count")
        if not count.is_integer() or count < 1:
            raise ValueError(f"time.count must be a positive integer, got {raw_time['count']!r}")
        out["count"] = int(count)
    else:
        out["last"] = _coerce_label(raw_time["last"], "time.last")
        if out["last"] < out["first"]:
            raise ValueError("time.first must not be after time.last")
    return out


def _validate_dimensions(raw: object) -> Dict[str, List]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError("'dimensions' must be a mapping of name -> list of labels (or a count)")
    out: Dict[str, List] = {}
    for name, labels in raw.items():
        validate_name(str(name), "dimension name")
        if isinstance(labels, int) and not isinstance(labels, bool):
            if labels < 1:
                raise ValueError(f"dimensions.{name} must be a positive count, got {labels}")
            out[str(name)] = list(range(1, labels + 1))
        elif isinstance(labels, (list, tuple)) and labels:
            if len(set(labels)) != len(labels):
                raise ValueError(f"dimensions.{name} has duplicate labels: {list(labels)}")
            out[str(name)] = list(labels)
        else:
            raise ValueError(f"dimensions.{name} must be a non-empty list of labels or a positive count")
    return out


def _validate_parameters(raw: object) -> Dict[str, object]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError("'parameters' must be a mapping of 'component.param' -> value")
    out: Dict[str, object] = {}
    for key, value in raw.items():
        split_datum_key(key)
        out[str(key)] = _coerce_values(value, f"parameters['{key}']")
    return out


def _validate_leftovers(raw: object) -> Dict[str, object]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError("'leftovers' must be a mapping of parameter name -> value")
    out: Dict[str, object] = {}
    for name, value in raw.items():
        validate_name(str(name), "parameter name")
        out[str(name)] = _coerce_values(value, f"leftovers['{name}']")
    return out


def parse_run_config(raw: Mapping[str, object], *, default_name: str = "run") -> RunConfig:
    """Validate an already deserialized configuration mapping."""
    extras = [k for k in raw if k not in TOP_LEVEL_KEYS]
    if extras:
        raise ValueError(_unknown_keys_message("top-level keys", extras, TOP_LEVEL_KEYS))
    return RunConfig(
        name=str(raw.get("name") or default_name),
        time=_validate_time(raw.get("time")),
        dimensions=_validate_dimensions(raw.get("dimensions")),
        parameters=_validate_parameters(raw.get("parameters")),
        leftovers=_validate_leftovers(raw.get("leftovers")),
    )


def load_run_config(path: Union[str, Path]) -> RunConfig:
    """Load a run configuration file and validate its structure.

    Parameters
    ----------
    path : str or Path
        YAML (`.yaml`/`.yml`) or JSON (`.json`) file

    Returns
    -------
    RunConfig
        Validated, normalized configuration; names are checked against a model
        only when it is applied.
    """
    path = Path(path)
    config = parse_run_config(_load_raw_config(path), default_name=path.stem)
    log.info(
        "Loaded run configuration '%s' from %s (%d parameters, %d leftovers)",
        config.name,
        path,
        len(config.parameters),
        len(config.leftovers),
    )
    return config


def make_grid_from_config(config: RunConfig) -> TimeGrid:
    if config.time is None:
        raise ValueError(f"Run configuration '{config.name}' has no 'time' block")
    return make_grid(**config.time)


def _check_names(md: ModelDef, config: RunConfig) -> List[Tuple[str, str]]:
    """Resolve every `component.param` key or raise one ValueError listing all problems."""
    components = md.components()
    resolved: List[Tuple[str, str]] = []
    unknown_components: List[str] = []
    unknown_params: List[str] = []
    connected: List[str] = []
    for key in config.parameters:
        comp, param = split_datum_key(key)
        if comp not in components:
            unknown_components.append(comp)
            continue
        params = md.parameters(comp)
        if param not in params:
            unknown_params.append(key)
            continue
        if md.edge_into(comp, param) is not None:
            connected.append(key)
            continue
        resolved.append((comp, param))

    messages: List[str] = []
    if unknown_components:
        messages.append(_unknown_keys_message("components", sorted(set(unknown_components)), components))
    if unknown_params:
        all_keys = [f"{c}.{p}" for c in components for p in md.parameters(c)]
        messages.append(_unknown_keys_message("parameters", unknown_params, all_keys))
    if connected:
        messages.append("Connected parameters cannot be set: " + ", ".join(connected))
    if messages:
        raise ValueError(f"Run configuration '{config.name}' does not match the model. " + " | ".join(messages))
    return resolved


def _check_values(
    target: Union[ModelDef, Model],
    md: ModelDef,
    config: RunConfig,
    resolved: List[Tuple[str, str]],
    grid: Optional[TimeGrid],
) -> None:
    """Shape-check every parameter value before anything is written."""
    if grid is not None:
        for comp in md.components():
            entry = md.component_entry(comp)
            for bound, label in (("first", entry.first), ("last", entry.last)):
                if label is not None and not grid.contains(label):
                    raise ValueError(
                        f"Run configuration '{config.name}': component '{comp}' {bound} period {label!r} "
                        "is not on the configured time grid"
                    )
    # Values land in a live instance only when the structure stays the same
    live = isinstance(target, Model) and target.is_built and grid is None and not config.dimensions
    externals = md.external_parameters()
    problems: List[str] = []
    for comp, param in resolved:
        key = datum_key(comp, param)
        value = config.parameters[key]
        try:
            check_parameter_value(md, comp, param, value, grid=grid, dimensions=config.dimensions)
            if live and (comp, param) in externals:
                target.instance.check_external_value(key, value)
        except ShapeMismatchError as exc:
            problems.append(str(exc))
    if problems:
        raise ValueError(f"Run configuration '{config.name}' has values of the wrong shape: " + " | ".join(problems))


def apply_run_config(target: Union[ModelDef, Model], config: RunConfig) -> Union[ModelDef, Model]:
    """Apply `config` to a `ModelDef` or `Model` in place and return it.

    Validation of every name and of the time grid happens before the first
    change, so a failing configuration leaves the definition untouched. When
    given a `Model`, values of parameters that already have external values
    are updated through the model so a built instance sees them without a
    rebuild.
    """
    md = target if isinstance(target, ModelDef) else target.md
    resolved = _check_names(md, config)
    grid = make_grid_from_config(config) if config.time is not None else None
    _check_values(target, md, config, resolved, grid)

    if grid is not None:
        md.set_time_grid(grid)
    for name, labels in config.dimensions.items():
        md.set_dimension(name, labels)
    externals = md.external_parameters()
    for comp, param in resolved:
        value = config.parameters[f"{comp}.{param}"]
        if (comp, param) in externals and isinstance(target, Model):
            target.update_external_parameter(comp, param, value)
        elif (comp, param) in externals:
            md.update_parameter(comp, param, value)
        else:
            md.set_parameter(comp, param, value)
    if config.leftovers:
        md.set_leftover_parameters(config.leftovers)

    log.info("Applied run configuration '%s' to model '%s'", config.name, md.name)
    return target
