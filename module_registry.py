"""In-memory registry of storage modules and their collection registration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

from access_rules import AccessRules, merge_access_rules
from module_config import CollectionDefinition
from module_runtime import StorageModule
from public_methods import PublicMethodDefinition, render_method_docs
from version_map import CollectionVersionMapEntry, CurrentVersionPolicy, map_collection_versions


logger = logging.getLogger("modkit")

VersionMappings = Iterable[CollectionVersionMapEntry]


@dataclass
class RegistryError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


def module_collections(
    module: StorageModule,
    mappings: VersionMappings | None = None,
    *,
    current_version_policy: CurrentVersionPolicy = CurrentVersionPolicy.FALLBACK_TO_FLOOR,
) -> Dict[str, CollectionDefinition]:
    collections = module.finalize().collections
    if mappings is None:
        return dict(collections)
    return map_collection_versions(collections, mappings, current_version_policy=current_version_policy)


def register_module_collections(
    schema_registry: Any,
    module: StorageModule,
    mappings: VersionMappings | None = None,
    *,
    current_version_policy: CurrentVersionPolicy = CurrentVersionPolicy.FALLBACK_TO_FLOOR,
) -> List[str]:
    """Hand a module's (version-mapped) collections to a backend schema registry."""
    collections = module_collections(module, mappings, current_version_policy=current_version_policy)
    schema_registry.register_collections({name: cdef.to_dict() for name, cdef in collections.items()})
    return list(collections)


class StorageModuleRegistry:
    def __init__(self) -> None:
        self._modules: Dict[str, StorageModule] = {}

    @property
    def modules(self) -> Dict[str, StorageModule]:
        return dict(self._modules)

    def register(self, name: str, module: StorageModule) -> StorageModule:
        if name in self._modules:
            raise RegistryError("MODULE_ALREADY_REGISTERED", f"module {name} already registered", name)
        module.name = name
        config = module.finalize()
        self._modules[name] = module
        logger.info(
            "module_registered name=%s collections=%s operations=%s",
            name,
            len(config.collections),
            len(config.operations),
        )
        return module

    def get(self, name: str) -> StorageModule:
        module = self._modules.get(name)
        if module is None:
            raise RegistryError("MODULE_NOT_FOUND", f"module {name} not registered", name)
        return module

    def list(self) -> list[str]:
        return sorted(self._modules.keys())

    def collections(
        self,
        version_mappings: Dict[str, VersionMappings] | None = None,
        *,
        current_version_policy: CurrentVersionPolicy = CurrentVersionPolicy.FALLBACK_TO_FLOOR,
    ) -> Dict[str, CollectionDefinition]:
        """All collections across modules, keyed by collection name.

        ``version_mappings`` is keyed by module name; modules without an
        entry keep their own versions.
        """
        version_mappings = version_mappings or {}
        unknown = sorted(set(version_mappings) - set(self._modules))
        if unknown:
            raise RegistryError("MODULE_NOT_FOUND", f"version mappings for unknown modules: {', '.join(unknown)}")
        merged: Dict[str, CollectionDefinition] = {}
        owners: Dict[str, str] = {}
        for module_name in self.list():
            collections = module_collections(
                self._modules[module_name],
                version_mappings.get(module_name),
                current_version_policy=current_version_policy,
            )
            for collection_name, definition in collections.items():
                if collection_name in merged:
                    raise RegistryError(
                        "COLLECTION_CONFLICT",
                        f"collection {collection_name} declared by {owners[collection_name]} and {module_name}",
                        collection_name,
                    )
                merged[collection_name] = definition
                owners[collection_name] = module_name
        return merged

    def register_collections(
        self,
        schema_registry: Any,
        version_mappings: Dict[str, VersionMappings] | None = None,
        *,
        current_version_policy: CurrentVersionPolicy = CurrentVersionPolicy.FALLBACK_TO_FLOOR,
    ) -> List[str]:
        collections = self.collections(version_mappings, current_version_policy=current_version_policy)
        schema_registry.register_collections({name: cdef.to_dict() for name, cdef in collections.items()})
        logger.info("collections_registered count=%s", len(collections))
        return list(collections)

    def access_rules(self) -> AccessRules:
        return merge_access_rules([self._modules[name].config.access_rules for name in self.list()])

    def methods(self) -> Dict[str, Dict[str, PublicMethodDefinition]]:
        return {name: dict(self._modules[name].config.methods) for name in self.list()}

    def method_docs(self) -> str:
        sections = []
        for name, methods in self.methods().items():
            if methods:
                sections.append(render_method_docs(methods, title=name))
        return "\n".join(sections)
