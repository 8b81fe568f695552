import os
import sys
import unittest
from unittest import mock


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from module_runtime import (
    DebugConfig,
    ModuleStateError,
    OperationNotFoundError,
    StorageModule,
    debug_config_from_env,
    default_operation_executor,
    format_debug_value,
    normalize_debug,
)


class UserStorageModule(StorageModule):
    collections = {
        "user": {
            "version": "2019-01-01",
            "fields": {"displayName": {"type": "text"}, "email": {"type": "text", "optional": True}},
        }
    }
    operations = {
        "createUser": {
            "operation": "createObject",
            "collection": "user",
            "args": {"displayName": "$displayName:string"},
        },
        "createUserDefault": {"operation": "createObject", "collection": "user"},
        "findUser": {"operation": "findObject", "collection": "user", "args": {"id": "$id"}},
    }

    async def register_user(self, display_name: str):
        return await self.operation("createUser", {"displayName": display_name}, method="register_user")


class SyncBackend:
    def __init__(self) -> None:
        self.calls = []

    def operation(self, name, *args):
        self.calls.append((name, *args))
        return {"object": {"id": 1}}


class AsyncBackend(SyncBackend):
    async def operation(self, name, *args):
        return super().operation(name, *args)


class TestStorageModule(unittest.IsolatedAsyncioTestCase):
    def _recording_module(self, debug=False) -> tuple:
        executions = []

        async def executor(*, name, context, method, debug, render):
            executions.append({"name": name, "context": context, "method": method, "rendered": render()})
            return "done"

        module = UserStorageModule(operation_executor=executor, debug=debug)
        module.finalize()
        return module, executions

    async def test_executor_receives_rendered_call(self) -> None:
        module, executions = self._recording_module()
        result = await module.register_user("John Doe")
        self.assertEqual(result, "done")
        self.assertEqual(
            executions,
            [
                {
                    "name": "createUser",
                    "context": {"displayName": "John Doe"},
                    "method": "register_user",
                    "rendered": ["createObject", "user", {"displayName": "John Doe"}],
                }
            ],
        )

    async def test_synthesized_create_drops_missing_fields(self) -> None:
        module, executions = self._recording_module()
        await module.invoke("createUserDefault", {"displayName": "Jane"})
        self.assertEqual(executions[0]["rendered"], ["createObject", "user", {"displayName": "Jane"}])
        self.assertIsNone(executions[0]["method"])

    async def test_unknown_operation_raises(self) -> None:
        module, executions = self._recording_module()
        with self.assertRaises(OperationNotFoundError) as ctx:
            await module.invoke("deleteEverything", {})
        self.assertEqual(ctx.exception.code, "OPERATION_NOT_FOUND")
        self.assertEqual(executions, [])

    async def test_requires_finalize(self) -> None:
        module = UserStorageModule(backend=SyncBackend())
        with self.assertRaises(ModuleStateError) as ctx:
            await module.invoke("findUser", {"id": 1})
        self.assertEqual(ctx.exception.code, "MODULE_NOT_FINALIZED")

    async def test_requires_backend_or_executor(self) -> None:
        module = UserStorageModule()
        module.finalize()
        with self.assertRaises(ModuleStateError) as ctx:
            await module.invoke("findUser", {"id": 1})
        self.assertEqual(ctx.exception.code, "MODULE_NO_EXECUTOR")

    async def test_default_executor_calls_backend(self) -> None:
        backend = SyncBackend()
        module = UserStorageModule(backend=backend)
        module.finalize()
        result = await module.invoke("findUser", {"id": 7})
        self.assertEqual(result, {"object": {"id": 1}})
        self.assertEqual(backend.calls, [("findObject", "user", {"id": 7})])

    async def test_default_executor_awaits_async_backend(self) -> None:
        backend = AsyncBackend()
        executor = default_operation_executor(backend)
        result = await executor(name="x", context={}, method=None, debug=None, render=lambda: ["countObjects", "user", {}])
        self.assertEqual(result, {"object": {"id": 1}})
        self.assertEqual(backend.calls, [("countObjects", "user", {})])

    async def test_debug_logs_call_and_result(self) -> None:
        module, executions = self._recording_module(debug=DebugConfig(include_return_values=True))
        with self.assertLogs("modkit.operations", level="INFO") as logs:
            result = await module.invoke("findUser", {"id": 3})
        self.assertEqual(result, "done")
        self.assertEqual(len(logs.output), 2)
        self.assertIn("operation_call", logs.output[0])
        self.assertIn("name=findUser", logs.output[0])
        self.assertIn("operation_result", logs.output[1])

    async def test_debug_restricted_to_named_operations(self) -> None:
        module, executions = self._recording_module(debug=DebugConfig(only_module_operations=("findUser",)))
        with self.assertLogs("modkit.operations", level="INFO") as logs:
            await module.invoke("createUser", {"displayName": "x"})
            await module.invoke("findUser", {"id": 3})
        self.assertEqual(len(logs.output), 1)
        self.assertIn("name=findUser", logs.output[0])
        self.assertEqual(len(executions), 2)

    def test_finalize_is_memoized(self) -> None:
        module = UserStorageModule()
        self.assertFalse(module.is_finalized)
        first = module.finalize()
        self.assertIs(module.finalize(), first)
        self.assertIs(module.config, first)
        self.assertEqual(first.operations["createUserDefault"].args, {"displayName": "$displayName:text", "email": "$email:text"})

    def test_get_config_override(self) -> None:
        class ListModule(StorageModule):
            def get_config(self):
                return {
                    "collections": {"list": {"version": "2019-02-05", "fields": {"title": {"type": "string"}}}},
                    "operations": {"createList": {"operation": "createObject", "collection": "list"}},
                }

        config = ListModule().finalize()
        self.assertEqual(config.operations["createList"].args, {"title": "$title:string"})

    async def test_finalized_config_is_read_only(self) -> None:
        module, executions = self._recording_module()
        config = module.finalize()
        with self.assertRaises(TypeError):
            del config.operations["createUser"]
        with self.assertRaises(TypeError):
            config.operations["findUser"].args["id"] = "$other"
        with self.assertRaises(TypeError):
            config.collections["user"].fields["extra"] = None
        with self.assertRaises(TypeError):
            config.methods["anything"] = None
        self.assertIn("createUser", module.finalize().operations)
        await module.invoke("findUser", {"id": 3})
        self.assertEqual(executions[0]["rendered"], ["findObject", "user", {"id": 3}])


class TestDebugConfig(unittest.TestCase):
    def test_normalize(self) -> None:
        self.assertEqual(normalize_debug(True), DebugConfig())
        self.assertIsNone(normalize_debug(False))
        self.assertEqual(
            normalize_debug({"onlyModuleOperations": ["a"], "printDeepObjects": True}),
            DebugConfig(only_module_operations=("a",), print_deep_objects=True),
        )
        self.assertEqual(
            normalize_debug({"onlyModuleOperations": "findUser"}),
            DebugConfig(only_module_operations=("findUser",)),
        )

    def test_from_env_all_operations(self) -> None:
        with mock.patch.dict(os.environ, {"MODKIT_DEBUG": "true", "MODKIT_DEBUG_DEEP": "1"}, clear=False):
            self.assertEqual(debug_config_from_env(), DebugConfig(print_deep_objects=True))

    def test_from_env_named_operations(self) -> None:
        env = {"MODKIT_DEBUG": "createUser, findUser", "MODKIT_DEBUG_RETURN_VALUES": "yes"}
        with mock.patch.dict(os.environ, env, clear=False):
            config = debug_config_from_env()
        self.assertEqual(config.only_module_operations, ("createUser", "findUser"))
        self.assertTrue(config.include_return_values)
        self.assertFalse(config.applies_to("deleteUser"))

    def test_from_env_disabled(self) -> None:
        with mock.patch.dict(os.environ, {"MODKIT_DEBUG": "0"}, clear=False):
            self.assertIsNone(debug_config_from_env())

    def test_explicit_false_wins_over_env(self) -> None:
        with mock.patch.dict(os.environ, {"MODKIT_DEBUG": "1"}, clear=False):
            self.assertIsNone(normalize_debug(False))

    def test_format_shallow_and_deep(self) -> None:
        value = ["createObject", "user", {"a": {"b": {"c": 1}}}]
        self.assertEqual(format_debug_value(value, deep=False), "['createObject', 'user', {'a': '{...}'}]")
        self.assertEqual(format_debug_value(value, deep=True), '["createObject","user",{"a":{"b":{"c":1}}}]')


if __name__ == "__main__":
    unittest.main()
