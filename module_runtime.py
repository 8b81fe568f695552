"""Storage module runtime: named operations rendered and handed to an executor."""

from __future__ import annotations

import inspect
import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, Tuple, Union

from modkit.canonical_json import CanonicalJsonTypeError, canonical_dumps
from module_config import ModuleConfig, parse_module_config
from operation_render import render_operation
from operation_synth import synthesize_operation_args


logger = logging.getLogger("modkit")
_operation_logger = logging.getLogger("modkit.operations")

_TRUTHY = ("1", "true", "yes")

OperationExecutor = Callable[..., Awaitable[Any]]


@dataclass
class ModuleRuntimeError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


class OperationNotFoundError(ModuleRuntimeError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("OPERATION_NOT_FOUND", message, path)


class ModuleStateError(ModuleRuntimeError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(code, message, None)


@dataclass(frozen=True)
class DebugConfig:
    include_return_values: bool = False
    only_module_operations: Tuple[str, ...] | None = None
    print_deep_objects: bool = False

    def applies_to(self, operation_name: str) -> bool:
        if self.only_module_operations is None:
            return True
        return operation_name in self.only_module_operations


DebugSetting = Union[bool, DebugConfig, None]


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in _TRUTHY


def debug_config_from_env() -> DebugConfig | None:
    raw = os.getenv("MODKIT_DEBUG", "").strip()
    if not raw or raw.lower() in ("0", "false", "no"):
        return None
    only = None
    if raw.lower() not in _TRUTHY:
        only = tuple(name.strip() for name in raw.split(",") if name.strip())
    return DebugConfig(
        include_return_values=_env_flag("MODKIT_DEBUG_RETURN_VALUES"),
        only_module_operations=only,
        print_deep_objects=_env_flag("MODKIT_DEBUG_DEEP"),
    )


def _operation_names(only: Any) -> Tuple[str, ...] | None:
    if only is None:
        return None
    if isinstance(only, str):
        return (only,)
    return tuple(only)


def normalize_debug(debug: DebugSetting) -> DebugConfig | None:
    if debug is None:
        return debug_config_from_env()
    if debug is True:
        return DebugConfig()
    if debug is False:
        return None
    if isinstance(debug, dict):
        only = debug.get("only_module_operations", debug.get("onlyModuleOperations"))
        return DebugConfig(
            include_return_values=bool(debug.get("include_return_values", debug.get("includeReturnValues"))),
            only_module_operations=_operation_names(only),
            print_deep_objects=bool(debug.get("print_deep_objects", debug.get("printDeepObjects"))),
        )
    return debug


def _shallow(value: Any, depth: int = 0) -> Any:
    if isinstance(value, dict):
        if depth >= 2:
            return "{...}"
        return {key: _shallow(val, depth + 1) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        if depth >= 2:
            return "[...]"
        return [_shallow(item, depth + 1) for item in value]
    return value


def format_debug_value(value: Any, deep: bool) -> str:
    if not deep:
        return repr(_shallow(value))
    try:
        return canonical_dumps(value)
    except (CanonicalJsonTypeError, ValueError):
        return repr(value)


def default_operation_executor(backend: Any) -> OperationExecutor:
    """Executor that sends the rendered call straight to ``backend.operation``."""

    async def _execute(*, render: Callable[[], list], **_: Any) -> Any:
        operation, *args = render()
        result = backend.operation(operation, *args)
        if inspect.isawaitable(result):
            result = await result
        return result

    return _execute


class StorageModule:
    """Base class for modules that declare collections and operations as data.

    Subclasses either override ``get_config`` or set ``collections``,
    ``operations``, ``access_rules`` and ``methods`` as class attributes.
    ``finalize`` must run once (the registry does it) before ``invoke``.
    """

    def __init__(
        self,
        backend: Any = None,
        operation_executor: OperationExecutor | None = None,
        debug: DebugSetting = None,
    ) -> None:
        if operation_executor is None and backend is not None:
            operation_executor = default_operation_executor(backend)
        self.backend = backend
        self.name: str | None = None
        self._operation_executor = operation_executor
        self._debug = normalize_debug(debug)
        self._config: ModuleConfig | None = None

    def get_config(self) -> Union[ModuleConfig, Dict[str, Any]]:
        return {
            "collections": getattr(self, "collections", None),
            "operations": getattr(self, "operations", None),
            "accessRules": getattr(self, "access_rules", None),
            "methods": getattr(self, "methods", None),
        }

    def finalize(self) -> ModuleConfig:
        if self._config is not None:
            return self._config
        parsed = parse_module_config(self.get_config())
        config = replace(parsed, operations=synthesize_operation_args(parsed.operations, parsed.collections))
        self._config = config
        return config

    @property
    def is_finalized(self) -> bool:
        return self._config is not None

    @property
    def config(self) -> ModuleConfig:
        if self._config is None:
            raise ModuleStateError("MODULE_NOT_FINALIZED", f"module {self._label()} used before finalize()")
        return self._config

    @property
    def debug(self) -> DebugConfig | None:
        return self._debug

    def _label(self) -> str:
        return self.name or type(self).__name__

    async def invoke(self, name: str, context: Dict[str, Any] | None = None, *, method: str | None = None) -> Any:
        definition = self.config.operations.get(name)
        if definition is None:
            raise OperationNotFoundError(f"module {self._label()} has no operation {name}", name)
        if self._operation_executor is None:
            raise ModuleStateError("MODULE_NO_EXECUTOR", f"module {self._label()} has no backend or executor")
        context = context if context is not None else {}

        def render() -> list:
            return render_operation(definition, context)

        debug = self._debug if self._debug and self._debug.applies_to(name) else None
        if debug:
            _operation_logger.info(
                "operation_call module=%s name=%s method=%s call=%s",
                self._label(),
                name,
                method,
                format_debug_value(render(), debug.print_deep_objects),
            )

        result = await self._operation_executor(
            name=name,
            context=context,
            method=method,
            debug=self._debug,
            render=render,
        )

        if debug and debug.include_return_values:
            _operation_logger.info(
                "operation_result module=%s name=%s method=%s result=%s",
                self._label(),
                name,
                method,
                format_debug_value(result, debug.print_deep_objects),
            )
        return result

    async def operation(self, name: str, context: Dict[str, Any] | None = None, method: str | None = None) -> Any:
        return await self.invoke(name, context, method=method)
