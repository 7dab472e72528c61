"""Convert pydantic models into strict structured-output JSON schemas."""

import copy
from typing import Any, Dict, Type

from pydantic import BaseModel

_DROPPED_KEYS = ("title", "default")


def strict_json_schema(model: Type[BaseModel]) -> Dict[str, Any]:
    """Build a schema accepted by strict structured-output mode.

    Every object closes ``additionalProperties`` and lists all of its
    properties as required. Optional fields stay nullable through their
    ``anyOf`` branch. Titles and defaults are removed.
    """
    return _make_strict(copy.deepcopy(model.model_json_schema()))


def _make_strict(node: Any) -> Any:
    if isinstance(node, list):
        return [_make_strict(item) for item in node]
    if not isinstance(node, dict):
        return node

    for key in _DROPPED_KEYS:
        node.pop(key, None)

    properties = node.get("properties")
    if isinstance(properties, dict):
        node["properties"] = {name: _make_strict(sub) for name, sub in properties.items()}
        node["required"] = list(properties)
        node["additionalProperties"] = False

    for key, value in list(node.items()):
        if key == "properties":
            continue
        if key == "$defs" and isinstance(value, dict):
            node[key] = {name: _make_strict(sub) for name, sub in value.items()}
        elif isinstance(value, (dict, list)):
            node[key] = _make_strict(value)
    return node
