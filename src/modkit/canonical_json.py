"""Deterministic canonical JSON serialization."""

from __future__ import annotations

import json
import math
from datetime import date, datetime
from typing import Any


class CanonicalJsonTypeError(TypeError):
    """Raised when an object cannot be serialized to canonical JSON."""


def _normalize(obj: Any, path: str = "$") -> Any:
    if isinstance(obj, dict):
        out = {}
        for key, value in obj.items():
            if not isinstance(key, str):
                raise CanonicalJsonTypeError(
                    f"Unsupported key type at {path}: {type(key).__name__}"
                )
            out[key] = _normalize(value, f"{path}.{key}")
        return out
    if isinstance(obj, (list, tuple)):
        return [_normalize(item, f"{path}[{idx}]") for idx, item in enumerate(obj)]
    if obj is None:
        return None
    if isinstance(obj, float):
        if not math.isfinite(obj):
            raise ValueError(f"Non-finite float at {path}: {obj!r}")
        return obj
    if isinstance(obj, (str, int, bool)):
        return obj
    # Collection versions are datetimes; they travel as ISO strings.
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise CanonicalJsonTypeError(
        f"Unsupported type at {path}: {type(obj).__name__}"
    )


def canonical_dumps(obj: Any) -> str:
    """Serialize an object to deterministic canonical JSON.

    Rules:
    - Sort dict keys recursively.
    - Preserve list order; tuples are written as lists.
    - Dates and datetimes are written as ISO-8601 strings.
    - UTF-8 with non-ASCII preserved.
    - No extra whitespace.
    """
    return json.dumps(
        _normalize(obj),
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )
