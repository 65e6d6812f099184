from __future__ import annotations

"""
Name helpers for components, parameters and variables.

Components and their data are addressed throughout the package (error
messages, configuration keys, result labels) by a dotted key
`<component>.<datum>`. This module keeps that convention in one place.

Design goals:
- Names must be valid Python identifiers so they can be exposed as
  attributes on the `p`/`v`/`d` namespaces handed to `run_timestep`.
- Unknown names are reported with close matches to make typos obvious.
"""

import difflib
import keyword
from typing import Iterable, List, Tuple


# Reserved because `d.time` always carries the time labels
TIME_DIM = "time"


def validate_name(name: str, kind: str = "name") -> str:
    """Return `name` unchanged if it is a usable identifier, else raise ValueError."""
    if not isinstance(name, str) or not name:
        raise ValueError(f"Invalid {kind} {name!r}: must be a non-empty string")
    if not name.isidentifier() or keyword.iskeyword(name):
        raise ValueError(f"Invalid {kind} {name!r}: must be a valid Python identifier")
    if name.startswith("_"):
        raise ValueError(f"Invalid {kind} {name!r}: leading underscores are reserved")
    return name


def datum_key(component: str, datum: str) -> str:
    return f"{component}.{datum}"


def split_datum_key(key: str) -> Tuple[str, str]:
    """Split `component.datum` into its two parts.

    Raises ValueError when the key does not contain exactly one dot.
    """
    parts = str(key).split(".")
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Expected a key of the form '<component>.<name>', got {key!r}")
    return parts[0], parts[1]


def nearest_matches(name: str, candidates: Iterable[str], n: int = 3) -> List[str]:
    return difflib.get_close_matches(name, list(candidates), n=n)


def unknown_name_message(kind: str, name: str, candidates: Iterable[str]) -> str:
    candidates = list(candidates)
    msg = f"Unknown {kind} '{name}'"
    suggestions = nearest_matches(name, candidates)
    if suggestions:
        msg += f". Did you mean: {', '.join(suggestions)}?"
    elif candidates:
        msg += f". Known: {', '.join(sorted(candidates))}"
    return msg
