"""Public method signatures declared by storage modules.

These describe the typed surface a module exposes (for docs and
introspection); the runtime never calls them through this metadata.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Union

from jinja2 import StrictUndefined
from jinja2.sandbox import ImmutableSandboxedEnvironment


METHOD_KINDS = ("query", "mutation")
VOID = "void"

_ALLOWED_FILTERS = {
    "join",
    "length",
    "default",
}


@dataclass(frozen=True)
class ArrayType:
    array: "ValueType"


@dataclass(frozen=True)
class ObjectType:
    fields: Dict[str, "DetailedValue"]
    singular: str


@dataclass(frozen=True)
class CollectionType:
    collection: str


ValueType = Union[str, ArrayType, ObjectType, CollectionType]


@dataclass(frozen=True)
class DetailedValue:
    type: ValueType
    optional: bool = False
    positional: bool = False


@dataclass(frozen=True)
class PublicMethodDefinition:
    type: str
    args: Dict[str, DetailedValue] = field(default_factory=dict)
    returns: Union[ValueType, str] = VOID


def is_detailed_value(raw: Any) -> bool:
    return isinstance(raw, DetailedValue) or (isinstance(raw, dict) and "type" in raw)


def parse_value_type(raw: Any, path: str = "type") -> ValueType:
    if isinstance(raw, (str, ArrayType, ObjectType, CollectionType)):
        return raw
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: value type must be a string or object")
    if "array" in raw:
        return ArrayType(array=parse_value_type(raw["array"], f"{path}.array"))
    if "object" in raw:
        values = raw["object"]
        if not isinstance(values, dict):
            raise ValueError(f"{path}.object: must be an object")
        singular = raw.get("singular")
        if not isinstance(singular, str):
            raise ValueError(f"{path}.singular: required for object types")
        return ObjectType(
            fields={name: ensure_detailed_value(value, f"{path}.object.{name}") for name, value in values.items()},
            singular=singular,
        )
    if "collection" in raw:
        if not isinstance(raw["collection"], str):
            raise ValueError(f"{path}.collection: must be a string")
        return CollectionType(collection=raw["collection"])
    raise ValueError(f"{path}: unknown value type")


def ensure_detailed_value(raw: Any, path: str = "value") -> DetailedValue:
    if isinstance(raw, DetailedValue):
        return raw
    if is_detailed_value(raw):
        return DetailedValue(
            type=parse_value_type(raw["type"], f"{path}.type"),
            optional=bool(raw.get("optional")),
            positional=bool(raw.get("positional")),
        )
    return DetailedValue(type=parse_value_type(raw, path))


def parse_public_methods(raw: Any) -> Dict[str, PublicMethodDefinition]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise TypeError("methods must be an object")
    methods: Dict[str, PublicMethodDefinition] = {}
    for name, method in raw.items():
        if isinstance(method, PublicMethodDefinition):
            methods[name] = method
            continue
        path = f"methods.{name}"
        if not isinstance(method, dict) or method.get("type") not in METHOD_KINDS:
            raise ValueError(f"{path}.type: must be one of {', '.join(METHOD_KINDS)}")
        args = method.get("args") or {}
        if not isinstance(args, dict):
            raise ValueError(f"{path}.args: must be an object")
        returns = method.get("returns", VOID)
        methods[name] = PublicMethodDefinition(
            type=method["type"],
            args={arg: ensure_detailed_value(value, f"{path}.args.{arg}") for arg, value in args.items()},
            returns=returns if returns == VOID else parse_value_type(returns, f"{path}.returns"),
        )
    return methods


def describe_value_type(value_type: Union[ValueType, str]) -> str:
    if isinstance(value_type, ArrayType):
        return f"{describe_value_type(value_type.array)}[]"
    if isinstance(value_type, ObjectType):
        return value_type.singular
    if isinstance(value_type, CollectionType):
        return f"<{value_type.collection}>"
    return str(value_type)


def _describe_arg(name: str, value: DetailedValue) -> str:
    label = f"{name}{'?' if value.optional else ''}: {describe_value_type(value.type)}"
    return f"*{label}" if value.positional else label


class _LockedSandbox(ImmutableSandboxedEnvironment):
    def is_safe_attribute(self, obj, attr, value) -> bool:
        return False

    def is_safe_callable(self, obj) -> bool:
        return False


def _env() -> _LockedSandbox:
    env = _LockedSandbox(autoescape=False, undefined=StrictUndefined, trim_blocks=True, lstrip_blocks=True)
    env.globals = {}
    env.filters = {key: val for key, val in env.filters.items() if key in _ALLOWED_FILTERS}
    return env


_DOC_TEMPLATE = """\
{% if title %}{{ title }}
{% endif %}
{% for method in methods %}
{{ method.name }}({{ method.args | join(", ") }}) -> {{ method.returns }} [{{ method.kind }}]
{% endfor %}
"""


def render_method_docs(methods: Dict[str, PublicMethodDefinition], title: str | None = None) -> str:
    """Render a plain-text summary of a module's public methods."""
    rows = [
        {
            "name": name,
            "kind": method.type,
            "args": [_describe_arg(arg, value) for arg, value in method.args.items()],
            "returns": describe_value_type(method.returns),
        }
        for name, method in sorted(methods.items())
    ]
    return _env().from_string(_DOC_TEMPLATE).render(title=title, methods=rows)
