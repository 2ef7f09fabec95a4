"""Tagged data sources for value resolution.

Host data arrives as anything: a dict, a model object with getters, a plain
scalar. ``as_data_source`` tags it once, and ``ObjectAdapter`` is the only
place that reflects on host objects (attribute lookup, callability and
signature checks).
"""

from __future__ import annotations

import inspect
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union


class _Missing:
    def __repr__(self) -> str:  # pragma: no cover - simple formatting
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

_OPAQUE_TYPES = (str, bytes, bytearray, int, float, complex, bool, list, tuple, set, frozenset)


@dataclass(frozen=True)
class MappingSource:
    mapping: Mapping


@dataclass(frozen=True)
class StructuredSource:
    obj: Any


@dataclass(frozen=True)
class OpaqueSource:
    value: Any


DataSource = Union[MappingSource, StructuredSource, OpaqueSource]


def as_data_source(value: Any) -> DataSource:
    if isinstance(value, Mapping):
        return MappingSource(value)
    if value is None or isinstance(value, _OPAQUE_TYPES):
        return OpaqueSource(value)
    return StructuredSource(value)


def camel_case(key: str) -> str:
    parts = [p for p in key.split("_") if p]
    if not parts:
        return key
    return parts[0][:1].lower() + parts[0][1:] + "".join(p[:1].upper() + p[1:] for p in parts[1:])


def _accepts_no_args(fn: Any) -> bool:
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError):
        return True
    for param in sig.parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        if param.default is param.empty:
            return False
    return True


class ObjectAdapter:
    """Reflection over one host object. Lookups return MISSING instead of raising."""

    def __init__(self, obj: Any) -> None:
        self._obj = obj

    def _lookup(self, name: str) -> Any:
        if not name or name.startswith("__"):
            return MISSING
        try:
            return getattr(self._obj, name)
        except AttributeError:
            return MISSING

    def call(self, name: str) -> Any:
        """Call a zero-argument method ``name``; MISSING when there is none."""
        attr = self._lookup(name)
        if attr is MISSING or not callable(attr) or not _accepts_no_args(attr):
            return MISSING
        return attr()

    def read(self, name: str) -> Any:
        """Read a non-callable attribute or property ``name``."""
        attr = self._lookup(name)
        if attr is MISSING or callable(attr):
            return MISSING
        return attr
