"""Typed storage-module configuration: collections, operations, rules, methods."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Tuple, Union

from access_rules import AccessRules, parse_access_rules
from public_methods import PublicMethodDefinition, parse_public_methods


CREATE_OBJECT = "createObject"

_RELATIONSHIP_KINDS = ("childOf", "singleChildOf", "connects")


@dataclass
class ModuleConfigError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


def _raise(code: str, message: str, path: str | None = None) -> None:
    raise ModuleConfigError(code=code, message=message, path=path)


def _as_utc(value: datetime) -> datetime:
    # naive values are read as UTC, the same instant an ISO string with Z names
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_version(value: Any, path: str = "version") -> datetime:
    """Normalize a version to an aware UTC datetime."""
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            return _as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            _raise("CONFIG_VERSION_INVALID", f"version is not ISO8601: {value!r}", path)
    _raise("CONFIG_VERSION_INVALID", "version must be a datetime, date or ISO8601 string", path)


def freeze(value: Any) -> Any:
    """Read-only copy of a JSON-like tree: mappings become proxies, lists tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Plain mutable copy of a tree built by ``freeze``."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(item) for item in value]
    return copy.deepcopy(value)


@dataclass(frozen=True)
class FieldDefinition:
    type: str
    optional: bool = False
    extras: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        out: dict = {"type": self.type}
        if self.optional:
            out["optional"] = True
        out.update(copy.deepcopy(self.extras))
        return out


@dataclass(frozen=True)
class ChildOf:
    """This collection stores a reference to one parent object."""

    target: str
    alias: str | None = None
    single: bool = False
    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return self.alias or self.target

    def to_dict(self) -> dict:
        out: dict = {"singleChildOf" if self.single else "childOf": self.target}
        if self.alias:
            out["alias"] = self.alias
        out.update(copy.deepcopy(self.extras))
        return out


@dataclass(frozen=True)
class ConnectsMany:
    """Many-to-many link collection between two or more targets."""

    targets: Tuple[str, ...]
    aliases: Tuple[str, ...] | None = None
    extras: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        out: dict = {"connects": list(self.targets)}
        if self.aliases:
            out["aliases"] = list(self.aliases)
        out.update(copy.deepcopy(self.extras))
        return out


Relationship = Union[ChildOf, ConnectsMany]


@dataclass(frozen=True)
class CollectionDefinition:
    version: datetime
    fields: Dict[str, FieldDefinition] = field(default_factory=dict)
    relationships: Tuple[Relationship, ...] = ()
    history: Tuple["CollectionDefinition", ...] = ()
    extras: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "version", parse_version(self.version))
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(self, "relationships", tuple(self.relationships))
        object.__setattr__(self, "history", tuple(self.history))
        object.__setattr__(self, "extras", freeze(self.extras))

    def child_of(self) -> List[ChildOf]:
        return [rel for rel in self.relationships if isinstance(rel, ChildOf)]

    def with_version(self, version: datetime) -> "CollectionDefinition":
        return replace(self, version=version)

    def to_dict(self) -> dict:
        out: dict = {
            "version": self.version,
            "fields": {name: fdef.to_dict() for name, fdef in self.fields.items()},
        }
        if self.relationships:
            out["relationships"] = [rel.to_dict() for rel in self.relationships]
        if self.history:
            out["history"] = [entry.to_dict() for entry in self.history]
        out.update(thaw(self.extras))
        return out


@dataclass(frozen=True)
class OperationDefinition:
    operation: str
    collection: str | None = None
    args: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", freeze(self.args))

    @property
    def has_args(self) -> bool:
        return self.args is not None

    @property
    def is_create(self) -> bool:
        return self.operation == CREATE_OBJECT

    def to_dict(self) -> dict:
        out: dict = {"operation": self.operation}
        if self.collection:
            out["collection"] = self.collection
        if self.args is not None:
            out["args"] = thaw(self.args)
        return out


@dataclass(frozen=True)
class ModuleConfig:
    collections: Dict[str, CollectionDefinition] = field(default_factory=dict)
    operations: Dict[str, OperationDefinition] = field(default_factory=dict)
    access_rules: AccessRules = field(default_factory=AccessRules)
    methods: Dict[str, PublicMethodDefinition] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("collections", "operations", "methods"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))


def _parse_field(name: str, raw: Any, path: str) -> FieldDefinition:
    if isinstance(raw, str):
        return FieldDefinition(type=raw)
    if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
        _raise("CONFIG_FIELD_INVALID", f"field {name} needs a string type", path)
    extras = {k: copy.deepcopy(v) for k, v in raw.items() if k not in ("type", "optional")}
    return FieldDefinition(type=raw["type"], optional=bool(raw.get("optional")), extras=extras)


def _parse_relationship(raw: Any, path: str) -> Relationship:
    if isinstance(raw, (ChildOf, ConnectsMany)):
        return raw
    if not isinstance(raw, dict):
        _raise("CONFIG_RELATIONSHIP_INVALID", "relationship must be an object", path)
    kinds = [kind for kind in _RELATIONSHIP_KINDS if kind in raw]
    if len(kinds) != 1:
        _raise("CONFIG_RELATIONSHIP_INVALID", "relationship needs exactly one of childOf, singleChildOf, connects", path)
    kind = kinds[0]
    if kind == "connects":
        targets = raw["connects"]
        if not isinstance(targets, (list, tuple)) or not all(isinstance(t, str) for t in targets):
            _raise("CONFIG_RELATIONSHIP_INVALID", "connects must be a list of collection names", f"{path}.connects")
        aliases = raw.get("aliases")
        extras = {k: copy.deepcopy(v) for k, v in raw.items() if k not in ("connects", "aliases")}
        return ConnectsMany(
            targets=tuple(targets),
            aliases=tuple(aliases) if isinstance(aliases, (list, tuple)) else None,
            extras=extras,
        )
    target = raw[kind]
    if not isinstance(target, str):
        _raise("CONFIG_RELATIONSHIP_INVALID", f"{kind} must be a collection name", f"{path}.{kind}")
    alias = raw.get("alias")
    if alias is not None and not isinstance(alias, str):
        _raise("CONFIG_RELATIONSHIP_INVALID", "alias must be a string", f"{path}.alias")
    extras = {k: copy.deepcopy(v) for k, v in raw.items() if k not in (kind, "alias")}
    return ChildOf(target=target, alias=alias, single=kind == "singleChildOf", extras=extras)


def parse_collection(name: str, raw: Any, path: str | None = None, allow_history: bool = True) -> CollectionDefinition:
    path = path or f"collections.{name}"
    if isinstance(raw, CollectionDefinition):
        return raw
    if not isinstance(raw, dict):
        _raise("CONFIG_COLLECTION_INVALID", "collection must be an object", path)
    if "version" not in raw:
        _raise("CONFIG_VERSION_MISSING", f"collection {name} has no version", f"{path}.version")
    version = parse_version(raw["version"], f"{path}.version")

    raw_fields = raw.get("fields") or {}
    if not isinstance(raw_fields, dict):
        _raise("CONFIG_FIELD_INVALID", "fields must be an object", f"{path}.fields")
    fields = {fname: _parse_field(fname, fdef, f"{path}.fields.{fname}") for fname, fdef in raw_fields.items()}

    raw_rels = raw.get("relationships") or []
    if not isinstance(raw_rels, list):
        _raise("CONFIG_RELATIONSHIP_INVALID", "relationships must be a list", f"{path}.relationships")
    relationships = tuple(_parse_relationship(rel, f"{path}.relationships[{idx}]") for idx, rel in enumerate(raw_rels))

    history: Tuple[CollectionDefinition, ...] = ()
    raw_history = raw.get("history")
    if raw_history:
        if not allow_history:
            _raise("CONFIG_HISTORY_NESTED", "history entries cannot carry their own history", f"{path}.history")
        if not isinstance(raw_history, list):
            _raise("CONFIG_HISTORY_INVALID", "history must be a list", f"{path}.history")
        history = tuple(
            parse_collection(name, entry, f"{path}.history[{idx}]", allow_history=False)
            for idx, entry in enumerate(raw_history)
        )
        previous = None
        for idx, entry in enumerate(history):
            if previous is not None and entry.version <= previous:
                _raise("CONFIG_HISTORY_ORDER", "history must be ordered oldest first", f"{path}.history[{idx}]")
            previous = entry.version
        if previous is not None and previous >= version:
            _raise("CONFIG_HISTORY_ORDER", "history entries must predate the current version", f"{path}.history")

    extras = {
        k: copy.deepcopy(v)
        for k, v in raw.items()
        if k not in ("version", "fields", "relationships", "history")
    }
    return CollectionDefinition(
        version=version,
        fields=fields,
        relationships=relationships,
        history=history,
        extras=extras,
    )


def parse_operation(name: str, raw: Any) -> OperationDefinition:
    path = f"operations.{name}"
    if isinstance(raw, OperationDefinition):
        return raw
    if not isinstance(raw, dict) or not isinstance(raw.get("operation"), str):
        _raise("CONFIG_OPERATION_INVALID", f"operation {name} needs an operation kind", path)
    collection = raw.get("collection")
    if collection is not None and not isinstance(collection, str):
        _raise("CONFIG_OPERATION_INVALID", "collection must be a string", f"{path}.collection")
    return OperationDefinition(
        operation=raw["operation"],
        collection=collection,
        args=copy.deepcopy(raw.get("args")),
    )


def parse_module_config(raw: Any) -> ModuleConfig:
    """Normalize a raw config mapping into a ModuleConfig.

    Accepts the camelCase keys module authors write (``accessRules``) as well
    as snake_case. Operation args are not synthesized here.
    """
    if isinstance(raw, ModuleConfig):
        return raw
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        _raise("CONFIG_INVALID", "module config must be an object")

    raw_collections = raw.get("collections") or {}
    raw_operations = raw.get("operations") or {}
    if not isinstance(raw_collections, dict):
        _raise("CONFIG_INVALID", "collections must be an object", "collections")
    if not isinstance(raw_operations, dict):
        _raise("CONFIG_INVALID", "operations must be an object", "operations")

    rules_raw = raw.get("accessRules", raw.get("access_rules"))
    try:
        access_rules = parse_access_rules(rules_raw)
    except (TypeError, ValueError) as exc:
        _raise("CONFIG_ACCESS_RULES_INVALID", str(exc), "accessRules")
    try:
        methods = parse_public_methods(raw.get("methods"))
    except (TypeError, ValueError) as exc:
        _raise("CONFIG_METHODS_INVALID", str(exc), "methods")

    return ModuleConfig(
        collections={name: parse_collection(name, cdef) for name, cdef in raw_collections.items()},
        operations={name: parse_operation(name, odef) for name, odef in raw_operations.items()},
        access_rules=access_rules,
        methods=methods,
    )
