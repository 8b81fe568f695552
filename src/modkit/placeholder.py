"""Placeholder parsing and dotted-path resolution for operation templates."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any


class _Undefined:
    """Marker for a placeholder whose path resolved to nothing.

    Distinct from ``None``: a context may legitimately carry ``None`` values.
    """

    _instance: "_Undefined | None" = None

    def __new__(cls) -> "_Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> "_Undefined":
        return self

    def __deepcopy__(self, memo: dict) -> "_Undefined":
        return self

    def __reduce__(self) -> str:
        return "UNDEFINED"


UNDEFINED = _Undefined()

PLACEHOLDER_PREFIX = "$"
TYPE_SEPARATOR = ":"


@dataclass(frozen=True)
class Placeholder:
    path: str
    type: str | None = None

    @property
    def segments(self) -> list[str]:
        return self.path.split(".")

    def __str__(self) -> str:
        if self.type:
            return f"{PLACEHOLDER_PREFIX}{self.path}{TYPE_SEPARATOR}{self.type}"
        return f"{PLACEHOLDER_PREFIX}{self.path}"


def is_placeholder(value: Any) -> bool:
    return parse_placeholder(value) is not None


def parse_placeholder(value: Any) -> Placeholder | None:
    """Parse ``$path`` or ``$path:type``; return None for literals."""
    if not isinstance(value, str) or not value.startswith(PLACEHOLDER_PREFIX):
        return None
    body = value[len(PLACEHOLDER_PREFIX) :]
    path, sep, type_name = body.partition(TYPE_SEPARATOR)
    if not path:
        return None
    return Placeholder(path=path, type=type_name if sep and type_name else None)


def resolve_path(context: Any, path: str) -> Any:
    """Walk ``path`` (dot separated) through mappings and sequences.

    Returns ``UNDEFINED`` instead of raising when any segment is missing.
    """
    current = context
    for segment in path.split("."):
        if isinstance(current, Mapping):
            if segment not in current:
                return UNDEFINED
            current = current[segment]
            continue
        if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            if not segment.isdigit():
                return UNDEFINED
            idx = int(segment)
            if idx >= len(current):
                return UNDEFINED
            current = current[idx]
            continue
        return UNDEFINED
    return current
