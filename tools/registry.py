"""
OperationRegistry — name → (input schema, handler, metadata) for one
connector, with a single validated entry point.

``invoke`` validates the caller's arguments *before* the handler runs.
A handler that would send a DELETE / merge / cancel request is never
entered with malformed input.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from types import MappingProxyType, ModuleType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from pydantic import PydanticUserError
from pydantic import ValidationError as PydanticValidationError

from tools.schema import ObjectKind, as_object_schema, validate_arguments
from utils.errors import ConfigurationError, NotFound, OperationError, ValidationError
from utils.schemas import ContentEnvelope, CredentialBundle, Result

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationDescriptor:
    name: str
    input_schema: ObjectKind
    handler: Callable
    title: Optional[str] = None
    description: Optional[str] = None
    annotations: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def to_catalog_entry(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title or self.name,
            "description": self.description or "",
            "inputSchema": self.input_schema.to_json_schema(),
            "annotations": dict(self.annotations),
        }


class OperationRegistry:
    """Per-connector operation table.  Read-only once the connector is set up."""

    def __init__(self, connector: str = "connector") -> None:
        self.connector = connector
        self._operations: Dict[str, OperationDescriptor] = {}

    # ── registration ────────────────────────────────────────────────────

    def register(
        self,
        name: str,
        input_schema: Any,
        handler: Callable,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        annotations: Optional[Mapping[str, Any]] = None,
    ) -> OperationDescriptor:
        """
        Register an operation.

        Raises
        ------
        ConfigurationError – empty or duplicate name, bad schema, handler
            not callable.  An existing registration is never replaced.
        """
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError("Operation name must be a non-empty string")
        if name in self._operations:
            raise ConfigurationError(
                f"Operation '{name}' is already registered on {self.connector}"
            )
        if not callable(handler):
            raise ConfigurationError(f"Handler for '{name}' is not callable")

        schema = as_object_schema(input_schema)
        try:
            schema.adapter  # compile now, not on first invoke
        except (TypeError, PydanticUserError) as exc:
            raise ConfigurationError(f"Input schema for '{name}' does not compile: {exc}") from exc

        descriptor = OperationDescriptor(
            name=name,
            input_schema=schema,
            handler=handler,
            title=title,
            description=description,
            annotations=MappingProxyType(dict(annotations or {})),
        )
        self._operations[name] = descriptor
        logger.debug("[%s] registered operation %s", self.connector, name)
        return descriptor

    def operation(
        self,
        name: str,
        input_schema: Any = None,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        **annotations: Any,
    ) -> Callable:
        """Decorator form of :meth:`register`."""

        def decorator(func: Callable) -> Callable:
            self.register(
                name,
                input_schema,
                func,
                title=title,
                description=description or (func.__doc__ or "").strip() or None,
                annotations=annotations,
            )
            return func

        return decorator

    def register_module(self, module: ModuleType) -> int:
        """
        Register every ``@operation``-tagged function of *module*.

        Returns the number of operations added.
        """
        count = 0
        for attr, obj in inspect.getmembers(module, callable):
            if not getattr(obj, "is_operation", False):
                continue
            meta = getattr(obj, "operation_meta", {})
            self.register(
                getattr(obj, "operation_name", attr),
                getattr(obj, "input_schema", None),
                obj,
                title=meta.get("title"),
                description=meta.get("description"),
                annotations=meta.get("annotations"),
            )
            count += 1
        logger.info(
            "[%s] registered %d operations from %s",
            self.connector, count, module.__name__,
        )
        return count

    # ── lookup ──────────────────────────────────────────────────────────

    def has_operation(self, name: str) -> bool:
        return name in self._operations

    def get(self, name: str) -> Optional[OperationDescriptor]:
        return self._operations.get(name)

    def list_operations(self) -> List[Dict[str, Any]]:
        """Catalog entries (name, title, description, JSON-Schema input) in registration order."""
        return [d.to_catalog_entry() for d in self._operations.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._operations

    def __iter__(self) -> Iterator[OperationDescriptor]:
        return iter(list(self._operations.values()))

    def __len__(self) -> int:
        return len(self._operations)

    # ── invocation ──────────────────────────────────────────────────────

    async def invoke(
        self,
        name: str,
        raw_args: Any,
        credentials: Optional[CredentialBundle] = None,
    ) -> ContentEnvelope:
        """
        Validate *raw_args* against the operation's schema, then call it.

        Always returns a ContentEnvelope.  Failures come back with
        ``is_error=True``, a readable message and the structured error in
        ``envelope.error``.
        """
        descriptor = self._operations.get(name)
        if descriptor is None:
            return ContentEnvelope.from_error(NotFound(f"operation '{name}'"))

        try:
            parsed = validate_arguments(descriptor.input_schema, raw_args)
        except ValidationError as exc:
            logger.info("[%s] %s rejected: %s", self.connector, name, exc)
            return ContentEnvelope.from_error(exc, prefix="Invalid arguments: ")

        try:
            outcome = descriptor.handler(parsed, credentials)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            return _to_envelope(outcome)
        except OperationError as exc:
            logger.warning("[%s] %s failed: %s", self.connector, name, exc)
            return ContentEnvelope.from_error(exc)
        except Exception as exc:
            logger.exception("[%s] %s raised", self.connector, name)
            return ContentEnvelope.from_error(
                OperationError(f"Operation '{name}' failed: {exc}")
            )


def _looks_like_envelope(outcome: Mapping) -> bool:
    content = outcome.get("content")
    return isinstance(content, list) and all(
        isinstance(block, Mapping) and ("type" in block or "kind" in block)
        for block in content
    )


def _to_envelope(outcome: Any) -> ContentEnvelope:
    """Normalise whatever a handler returned into a ContentEnvelope."""
    if isinstance(outcome, ContentEnvelope):
        return outcome
    if isinstance(outcome, Result):
        if outcome.error is not None:
            return ContentEnvelope.from_error(outcome.error)
        return _to_envelope(outcome.value)
    if isinstance(outcome, Mapping) and _looks_like_envelope(outcome):
        try:
            return ContentEnvelope.model_validate(dict(outcome))
        except PydanticValidationError:
            # A vendor body that happens to carry a "content" list.
            return ContentEnvelope.from_json(dict(outcome))
    if isinstance(outcome, str):
        return ContentEnvelope.from_text(outcome)
    return ContentEnvelope.from_json(outcome)
