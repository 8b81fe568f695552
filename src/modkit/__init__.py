"""modkit kernel utilities."""

from .canonical_json import CanonicalJsonTypeError, canonical_dumps
from .placeholder import UNDEFINED, Placeholder, parse_placeholder, resolve_path

__all__ = [
    "CanonicalJsonTypeError",
    "Placeholder",
    "UNDEFINED",
    "canonical_dumps",
    "parse_placeholder",
    "resolve_path",
]
