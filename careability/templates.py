"""
Variable substitution for permission conditions, e.g.

    {"entityIds": "${user.entity.id}"}  ->  {"entityIds": "cvs"}
"""

import dataclasses
import re
from collections.abc import Mapping
from typing import Any

from careability.errors import UndefinedVariableError

PLACEHOLDER = re.compile(r"\$\{([^{}\s]+)\}")

_MISSING = object()


def _step(value: Any, part: str) -> Any:
    """One path segment: a mapping key, a list index or a data field."""
    if isinstance(value, Mapping):
        return value.get(part, _MISSING)
    if isinstance(value, (list, tuple)):
        if not part.isdigit():
            return _MISSING
        index = int(part)
        return value[index] if index < len(value) else _MISSING
    if part.startswith("_"):
        return _MISSING
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        names = {f.name for f in dataclasses.fields(value)}
    else:
        names = set(getattr(value, "__dict__", {}))
    if part not in names:
        return _MISSING
    return getattr(value, part)


def lookup(variables: Any, path: str) -> Any:
    """Follow a dotted *path* through mappings, lists and data fields."""
    value = variables
    for part in path.split("."):
        value = _step(value, part)
        if value is _MISSING:
            raise UndefinedVariableError(path)
    return value


def resolve_variables(template: Any, variables: Mapping) -> Any:
    """Return a copy of *template* with every ``${path}`` string substituted."""
    if isinstance(template, str):
        match = PLACEHOLDER.fullmatch(template)
        if not match:
            return template
        return lookup(variables, match.group(1))
    if isinstance(template, Mapping):
        return {key: resolve_variables(value, variables) for key, value in template.items()}
    if isinstance(template, (list, tuple)):
        return [resolve_variables(value, variables) for value in template]
    return template
