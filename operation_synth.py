"""Default argument templates for createObject operations."""

from __future__ import annotations

from dataclasses import replace
from typing import Dict

from modkit.placeholder import PLACEHOLDER_PREFIX, Placeholder
from module_config import CollectionDefinition, ModuleConfigError, OperationDefinition


def create_object_template(collection: CollectionDefinition) -> Dict[str, str]:
    """Template for creating one object of ``collection``.

    Uses the current shape only. Fields render as ``$name:type``; child-of
    relationships add their key as an untyped ``$key`` reference. Connects
    relationships are left for the operation author to add.
    """
    template: Dict[str, str] = {}
    for name, field_def in collection.fields.items():
        template[name] = str(Placeholder(path=name, type=field_def.type))
    for relationship in collection.child_of():
        template[relationship.key] = f"{PLACEHOLDER_PREFIX}{relationship.key}"
    return template


def synthesize_operation_args(
    operations: Dict[str, OperationDefinition],
    collections: Dict[str, CollectionDefinition],
) -> Dict[str, OperationDefinition]:
    """Fill in args for createObject operations that declare none.

    Operations that already carry args are returned as-is, so running this
    on its own output changes nothing.
    """
    out: Dict[str, OperationDefinition] = {}
    for name, definition in operations.items():
        if not definition.is_create or definition.has_args:
            out[name] = definition
            continue
        if not definition.collection:
            raise ModuleConfigError(
                "OPERATION_COLLECTION_MISSING",
                f"createObject operation {name} needs a collection",
                f"operations.{name}.collection",
            )
        collection = collections.get(definition.collection)
        if collection is None:
            raise ModuleConfigError(
                "OPERATION_COLLECTION_UNKNOWN",
                f"operation {name} targets unknown collection {definition.collection}",
                f"operations.{name}.collection",
            )
        out[name] = replace(definition, args=create_object_template(collection))
    return out
