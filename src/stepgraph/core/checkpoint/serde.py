"""JSON serialization for checkpoint payloads.

Plain JSON loses the types of channel values (message models, tuples, sets,
timestamps). ``JsonSerializer`` wraps those in small tagged objects so a
checkpoint read back from disk holds the same Python values that were written.
Pydantic models and enums are rebuilt from their importable class path, so
classes defined inside functions cannot round-trip. Tags naming anything other
than a ``BaseModel`` or ``Enum`` subclass are rejected.
"""

import importlib
import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic_core import to_jsonable_python

TYPE_KEY = "__stepgraph__"


def _class_path(cls: type) -> str:
    return f"{cls.__module__}:{cls.__qualname__}"


def _import_class(path: str, base: type) -> type:
    """Resolve ``module:qualname`` to a subclass of ``base``.

    Raises:
        ImportError: If the path names a locally defined class
        TypeError: If the path does not name a subclass of ``base``
    """
    module_name, _, qualname = path.partition(":")
    if "<locals>" in qualname:
        raise ImportError(f"Cannot import locally defined class '{path}'")
    target: Any = importlib.import_module(module_name)
    for part in qualname.split("."):
        target = getattr(target, part)
    if not (isinstance(target, type) and issubclass(target, base)):
        raise TypeError(f"'{path}' is not a {base.__name__} subclass")
    return target


class JsonSerializer:
    """Encode and decode checkpoint payloads as JSON text."""

    def dumps(self, obj: Any) -> str:
        return json.dumps(self._encode(obj), separators=(",", ":"))

    def loads(self, data: str) -> Any:
        return self._decode(json.loads(data))

    def _encode(self, obj: Any) -> Any:
        if obj is None or isinstance(obj, (bool, int, float, str)) and not isinstance(obj, Enum):
            return obj
        if isinstance(obj, BaseModel):
            fields = {name: self._encode(getattr(obj, name)) for name in type(obj).model_fields}
            return {TYPE_KEY: "model", "cls": _class_path(type(obj)), "data": fields}
        if isinstance(obj, Enum):
            return {TYPE_KEY: "enum", "cls": _class_path(type(obj)), "value": self._encode(obj.value)}
        if isinstance(obj, dict):
            if all(isinstance(key, str) for key in obj) and TYPE_KEY not in obj:
                return {key: self._encode(value) for key, value in obj.items()}
            return {TYPE_KEY: "dict", "items": [[self._encode(k), self._encode(v)] for k, v in obj.items()]}
        if isinstance(obj, list):
            return [self._encode(item) for item in obj]
        if isinstance(obj, tuple):
            return {TYPE_KEY: "tuple", "items": [self._encode(item) for item in obj]}
        if isinstance(obj, (set, frozenset)):
            return {TYPE_KEY: "set", "items": [self._encode(item) for item in obj]}
        if isinstance(obj, datetime):
            return {TYPE_KEY: "datetime", "value": obj.isoformat()}
        return to_jsonable_python(obj)

    def _decode(self, obj: Any) -> Any:
        if isinstance(obj, list):
            return [self._decode(item) for item in obj]
        if not isinstance(obj, dict):
            return obj
        kind = obj.get(TYPE_KEY)
        if kind is None:
            return {key: self._decode(value) for key, value in obj.items()}
        if kind == "model":
            cls = _import_class(obj["cls"], BaseModel)
            return cls.model_validate({k: self._decode(v) for k, v in obj["data"].items()})
        if kind == "enum":
            return _import_class(obj["cls"], Enum)(self._decode(obj["value"]))
        if kind == "dict":
            return {self._decode(k): self._decode(v) for k, v in obj["items"]}
        if kind == "tuple":
            return tuple(self._decode(item) for item in obj["items"])
        if kind == "set":
            return set(self._decode(item) for item in obj["items"])
        if kind == "datetime":
            return datetime.fromisoformat(obj["value"])
        raise ValueError(f"Unknown serialized type tag '{kind}'")
