from __future__ import annotations

import json
from copy import deepcopy
from typing import Any
from typing import Iterable
from typing import Mapping
from typing import MutableMapping

import pydantic

# Marks a path lookup that found nothing, since None is a legal stored value.
MISSING: Any = object()


def get_path(data: Mapping[str, Any] | None, path: str, default: Any = MISSING) -> Any:
    """Look up a dotted path in nested mappings.

    `get_path({"a": {"b": 1}}, "a.b")` returns 1. If any segment is missing
    (or an intermediate value is not a mapping) the default is returned.
    """
    current: Any = data
    for segment in path.split("."):
        if not isinstance(current, Mapping) or segment not in current:
            return default
        current = current[segment]
    return current


def set_path(data: MutableMapping[str, Any], path: str, value: Any) -> None:
    """Write a value at a dotted path, creating intermediate dicts as needed."""
    *parents, leaf = path.split(".")
    current = data
    for segment in parents:
        child = current.get(segment)
        if not isinstance(child, MutableMapping):
            child = current[segment] = {}
        current = child
    current[leaf] = value


def delete_path(data: MutableMapping[str, Any], path: str) -> bool:
    """Remove the value at a dotted path. Returns True if something was removed."""
    *parents, leaf = path.split(".")
    current: Any = data
    for segment in parents:
        if not isinstance(current, MutableMapping) or segment not in current:
            return False
        current = current[segment]
    if isinstance(current, MutableMapping) and leaf in current:
        del current[leaf]
        return True
    return False


def remove_undefined(data: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively copy a mapping, dropping None values.

    Empty branches are kept: a table row stripped of every computed cell still
    exists as a row.
    """
    cleaned: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, Mapping):
            cleaned[key] = remove_undefined(value)
        elif value is not None:
            cleaned[key] = deepcopy(value)
    return cleaned


def merge(target: MutableMapping[str, Any], source: Mapping[str, Any]) -> None:
    """Recursively merge `source` into `target` in place."""
    for key, value in source.items():
        existing = target.get(key)
        if isinstance(value, Mapping) and isinstance(existing, MutableMapping):
            merge(existing, value)
        else:
            target[key] = value


def as_number(value: Any) -> int | float | None:
    """Coerce a value to a number, or None if it doesn't look like one.

    Integral floats come back as ints so that "12" and 12.0 both display as 12.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else value
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return as_number(number)
    return None


def live_rows(props: Mapping[str, Any], table_key: str) -> Iterable[tuple[str, dict]]:
    """Yield (row_id, row) for every row of a dynamic table that isn't deleted."""
    rows = get_path(props, table_key, None)
    if not isinstance(rows, Mapping):
        return
    for row_id, row in rows.items():
        if isinstance(row, Mapping) and not row.get("deleted"):
            yield row_id, row


class JSONEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        if isinstance(obj, pydantic.BaseModel):
            return obj.model_dump(by_alias=True, exclude_none=True)
        return json.JSONEncoder.default(self, obj)


def dump_dict(data: pydantic.BaseModel | dict) -> dict:
    # Defaults are kept: component `type` tags must survive a round trip.
    if isinstance(data, pydantic.BaseModel):
        return data.model_dump(by_alias=True, exclude_none=True)
    return data


def dump_json(data: pydantic.BaseModel | dict, *args, **kwargs) -> str:
    return json.dumps(dump_dict(data), cls=JSONEncoder, *args, **kwargs)
