"""
@operation decorator — marks a handler as a connector operation and
declares its input schema.

Usage:
    from tools import operation
    from tools import schema as s

    @operation("get_record", {"baseId": s.string(), "recordId": s.string()})
    async def get_record(args, credentials):
        ...

    @operation("delete_record", {...}, destructive=True)
    async def delete_record(args, credentials):
        ...

A connector module's tagged handlers are registered in one go with
``OperationRegistry.register_module(module)``.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional


def operation(
    name: str,
    input_schema: Any = None,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    **annotations: Any,
) -> Callable:
    """
    Decorator that tags a function as an operation handler.

    Parameters
    ----------
    name : unique operation name within the connector.
    input_schema : ObjectKind, mapping of field → kind, or None.
    title, description : catalog metadata (description defaults to the
        function's docstring).
    **annotations : free-form hints, e.g. ``destructive=True``.
    """

    def decorator(func: Callable) -> Callable:
        func.is_operation = True  # type: ignore[attr-defined]
        func.operation_name = name  # type: ignore[attr-defined]
        func.input_schema = input_schema  # type: ignore[attr-defined]
        func.operation_meta: Dict[str, Any] = {  # type: ignore[attr-defined]
            "title": title,
            "description": description or (func.__doc__ or "").strip() or None,
            "annotations": dict(annotations),
        }
        return func

    return decorator
