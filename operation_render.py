"""Render operation argument templates against a call context."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Dict, List, Tuple

from modkit.placeholder import UNDEFINED, parse_placeholder, resolve_path


def render_operation_args(template: Any, context: Any, *, remove_undefined_values: bool = False) -> Any:
    """Substitute ``$path[:type]`` placeholders in a nested template.

    Missing paths render as ``UNDEFINED``. With ``remove_undefined_values``
    such keys are left out of rendered objects instead.
    """
    if isinstance(template, Mapping):
        obj: Dict[Any, Any] = {}
        for key, value in template.items():
            rendered = render_operation_args(value, context, remove_undefined_values=remove_undefined_values)
            if rendered is UNDEFINED and remove_undefined_values:
                continue
            obj[key] = rendered
        return obj
    if isinstance(template, (list, tuple)):
        return [
            render_operation_args(elem, context, remove_undefined_values=remove_undefined_values)
            for elem in template
        ]
    placeholder = parse_placeholder(template)
    if placeholder is not None:
        return resolve_path(context, placeholder.path)
    return template


def render_operation(definition: Any, context: Any) -> List[Any]:
    """Build the ``[operation, collection?, args]`` call for a definition."""
    call: List[Any] = [definition.operation]
    if definition.collection:
        call.append(definition.collection)
    call.append(
        render_operation_args(
            definition.args,
            context,
            remove_undefined_values=definition.is_create,
        )
    )
    return call


def placeholder_variables(template: Any) -> List[Tuple[str, str | None]]:
    """List ``(path, type)`` for every placeholder, in template order."""
    found: List[Tuple[str, str | None]] = []

    def _walk(node: Any) -> None:
        if isinstance(node, Mapping):
            for value in node.values():
                _walk(value)
        elif isinstance(node, (list, tuple)):
            for item in node:
                _walk(item)
        else:
            placeholder = parse_placeholder(node)
            if placeholder is not None:
                found.append((placeholder.path, placeholder.type))

    _walk(template)
    return found
