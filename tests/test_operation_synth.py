import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from module_config import ModuleConfigError, parse_collection, parse_module_config
from operation_synth import create_object_template, synthesize_operation_args


def _config() -> dict:
    return {
        "collections": {
            "user": {"version": "2019-02-05", "fields": {"displayName": {"type": "string"}}},
            "sharedList": {
                "version": "2019-02-05",
                "fields": {"title": {"type": "string"}, "createdWhen": {"type": "timestamp"}},
                "relationships": [{"alias": "creator", "childOf": "user"}],
            },
            "sharedListRole": {
                "version": "2019-02-05",
                "fields": {"type": {"type": "int"}},
                "relationships": [{"connects": ["user", "sharedList"]}],
            },
            "sharedListEntry": {
                "history": [
                    {"version": "2019-01-01", "fields": {"label": {"type": "string"}, "legacy": {"type": "text"}}},
                ],
                "version": "2019-02-05",
                "fields": {"label": {"type": "string"}, "createdWhen": {"type": "timestamp"}},
                "relationships": [
                    {"alias": "list", "childOf": "sharedList"},
                    {"singleChildOf": "user"},
                ],
            },
        },
        "operations": {
            "createList": {"operation": "createObject", "collection": "sharedList"},
            "createRole": {"operation": "createObject", "collection": "sharedListRole"},
            "createEntry": {"operation": "createObject", "collection": "sharedListEntry"},
            "createUser": {
                "operation": "createObject",
                "collection": "user",
                "args": {"displayName": "$name:string"},
            },
            "findList": {"operation": "findObject", "collection": "sharedList", "args": {"id": "$id"}},
        },
    }


class TestOperationSynth(unittest.TestCase):
    def setUp(self) -> None:
        self.config = parse_module_config(_config())
        self.operations = synthesize_operation_args(self.config.operations, self.config.collections)

    def test_fields_become_typed_placeholders(self) -> None:
        self.assertEqual(
            self.operations["createList"].args,
            {"title": "$title:string", "createdWhen": "$createdWhen:timestamp", "creator": "$creator"},
        )

    def test_connects_relationships_not_included(self) -> None:
        self.assertEqual(self.operations["createRole"].args, {"type": "$type:int"})

    def test_uses_current_shape_and_target_name_without_alias(self) -> None:
        self.assertEqual(
            self.operations["createEntry"].args,
            {
                "label": "$label:string",
                "createdWhen": "$createdWhen:timestamp",
                "list": "$list",
                "user": "$user",
            },
        )

    def test_one_entry_per_field_and_child_relationship(self) -> None:
        for name, collection in self.config.collections.items():
            template = create_object_template(collection)
            self.assertEqual(len(template), len(collection.fields) + len(collection.child_of()), name)

    def test_child_of_key_overrides_same_named_field(self) -> None:
        collection = parse_collection(
            "note",
            {
                "version": "2019-02-05",
                "fields": {"owner": {"type": "string"}, "body": {"type": "text"}},
                "relationships": [{"childOf": "user", "alias": "owner"}],
            },
        )
        self.assertEqual(create_object_template(collection), {"owner": "$owner", "body": "$body:text"})

    def test_explicit_args_untouched(self) -> None:
        self.assertIs(self.operations["createUser"], self.config.operations["createUser"])
        self.assertIs(self.operations["findList"], self.config.operations["findList"])

    def test_idempotent(self) -> None:
        again = synthesize_operation_args(self.operations, self.config.collections)
        self.assertEqual(again, self.operations)
        for name in again:
            self.assertIs(again[name], self.operations[name])

    def test_input_not_mutated(self) -> None:
        self.assertIsNone(self.config.operations["createList"].args)

    def test_unknown_collection_raises(self) -> None:
        raw = _config()
        raw["operations"] = {"createThing": {"operation": "createObject", "collection": "thing"}}
        config = parse_module_config(raw)
        with self.assertRaises(ModuleConfigError) as ctx:
            synthesize_operation_args(config.operations, config.collections)
        self.assertEqual(ctx.exception.code, "OPERATION_COLLECTION_UNKNOWN")

    def test_missing_collection_raises(self) -> None:
        raw = _config()
        raw["operations"] = {"createThing": {"operation": "createObject"}}
        config = parse_module_config(raw)
        with self.assertRaises(ModuleConfigError) as ctx:
            synthesize_operation_args(config.operations, config.collections)
        self.assertEqual(ctx.exception.code, "OPERATION_COLLECTION_MISSING")


if __name__ == "__main__":
    unittest.main()
