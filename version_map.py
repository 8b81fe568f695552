"""Translate module-internal collection versions into application versions.

A module versions its collections on its own timeline. The application that
embeds it supplies a table saying which module version shipped in which
application version; this module rewrites every collection (and its history)
onto the application timeline before the collections reach a backend.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List

from module_config import CollectionDefinition, ModuleConfigError, parse_version


logger = logging.getLogger("modkit")


@dataclass
class VersionMapError(Exception):
    code: str
    message: str
    collection: str | None = None
    version: datetime | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (collection={self.collection})" if self.collection else base


def _mapping_version(value: Any, path: str) -> datetime:
    try:
        return parse_version(value, path)
    except ModuleConfigError as exc:
        raise VersionMapError("VERSION_MAPPING_INVALID", f"{path}: {exc.message}") from exc


@dataclass(frozen=True)
class CollectionVersionMapEntry:
    module_version: datetime
    application_version: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "module_version", _mapping_version(self.module_version, "module_version"))
        object.__setattr__(
            self, "application_version", _mapping_version(self.application_version, "application_version")
        )

    @classmethod
    def from_dict(cls, raw: dict) -> "CollectionVersionMapEntry":
        return cls(
            module_version=raw.get("module_version", raw.get("moduleVersion")),
            application_version=raw.get("application_version", raw.get("applicationVersion")),
        )


class CurrentVersionPolicy(enum.Enum):
    """What to do when a collection's current version is not in the table.

    Either way an unmapped current version with surviving history is an
    error. ``FALLBACK_TO_FLOOR`` places a collection without surviving
    history at the earliest application version; ``STRICT`` refuses.
    """

    FALLBACK_TO_FLOOR = "fallback_to_floor"
    STRICT = "strict"


def _build_lookup(mappings: Iterable[CollectionVersionMapEntry]) -> Dict[datetime, CollectionVersionMapEntry]:
    lookup: Dict[datetime, CollectionVersionMapEntry] = {}
    for entry in mappings:
        if isinstance(entry, dict):
            entry = CollectionVersionMapEntry.from_dict(entry)
        elif not isinstance(entry, CollectionVersionMapEntry):
            raise VersionMapError("VERSION_MAPPING_INVALID", f"unsupported version mapping: {entry!r}")
        if entry.module_version in lookup:
            raise VersionMapError(
                "VERSION_MAPPING_DUPLICATE",
                f"module version {entry.module_version.isoformat()} is mapped more than once",
                version=entry.module_version,
            )
        lookup[entry.module_version] = entry
    if not lookup:
        raise VersionMapError("VERSION_MAPPINGS_EMPTY", "at least one version mapping is required")
    return lookup


def _unmapped(collection_name: str, version: datetime) -> VersionMapError:
    return VersionMapError(
        "VERSION_UNMAPPED",
        f"Could not map collection version of collection {collection_name} "
        f"to application version: {version.isoformat()}",
        collection=collection_name,
        version=version,
    )


def map_collection_versions(
    collections: Dict[str, CollectionDefinition],
    mappings: Iterable[CollectionVersionMapEntry],
    *,
    current_version_policy: CurrentVersionPolicy = CurrentVersionPolicy.FALLBACK_TO_FLOOR,
) -> Dict[str, CollectionDefinition]:
    lookup = _build_lookup(mappings)
    minimal_module_version = min(lookup)
    minimal_application_version = lookup[minimal_module_version].application_version

    mapped: Dict[str, CollectionDefinition] = {}
    for name, latest in collections.items():
        history: List[CollectionDefinition] = []
        for past in latest.history:
            if past.version < minimal_module_version:
                logger.debug(
                    "version_history_dropped collection=%s version=%s",
                    name,
                    past.version.isoformat(),
                )
                continue
            entry = lookup.get(past.version)
            if entry is None:
                raise _unmapped(name, past.version)
            history.append(past.with_version(entry.application_version))

        entry = lookup.get(latest.version)
        if entry is not None:
            version = entry.application_version
        elif history or current_version_policy is CurrentVersionPolicy.STRICT:
            raise _unmapped(name, latest.version)
        else:
            logger.debug(
                "version_floor_fallback collection=%s version=%s floor=%s",
                name,
                latest.version.isoformat(),
                minimal_application_version.isoformat(),
            )
            version = minimal_application_version

        mapped[name] = replace(latest, version=version, history=tuple(history))
    return mapped


def collection_history(collections: Dict[str, CollectionDefinition]) -> Dict[str, List[CollectionDefinition]]:
    """Every known shape of each collection, oldest first, current last."""
    return {name: [*definition.history, definition] for name, definition in collections.items()}
