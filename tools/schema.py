"""
Input schemas for operations — a small tree of kinds compiled to pydantic
types.

    from tools import schema as s

    SEND_MESSAGE = s.obj(
        channel=s.string().describe("Channel ID"),
        text=s.string(min_length=1),
        blocks=s.array(s.record(s.string())).optional(),
        unfurl=s.boolean().with_default(True),
    )

Each kind builds an ``Annotated`` type (strict scalars, ``Literal`` enums,
``Union``, ``Dict[str, T]`` records, ``create_model`` objects) and
validates through a cached ``TypeAdapter``:

  • required + absent (or null)  → ValidationError(field, "required")
  • present                      → type / shape check, no coercion
  • absent with a default        → the default (explicit > default > absence)
  • unknown extra object keys    → dropped, never rejected

Errors name the dotted path of the offending field (``blocks.2.type``).
The catalog schema is pydantic's JSON Schema with titles and ``$defs``
inlined away.
"""

from __future__ import annotations

import copy
from typing import Annotated, Any, Callable, Dict, List, Literal, Mapping, Optional, Sequence, Union

from pydantic import (
    AfterValidator,
    BeforeValidator,
    ConfigDict,
    Field,
    Strict,
    TypeAdapter,
    WrapValidator,
    create_model,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from utils.errors import ConfigurationError, ValidationError

_MISSING: Any = object()
ROOT = "<root>"

_TYPE_ERRORS = {
    "string_type": "string",
    "int_type": "integer",
    "int_from_float": "integer",
    "int_parsing": "integer",
    "float_type": "number",
    "float_parsing": "number",
    "bool_type": "boolean",
    "bool_parsing": "boolean",
    "list_type": "array",
    "dict_type": "object",
    "model_type": "object",
    "model_attributes_type": "object",
}


def _type_label(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def _reason(error: Dict[str, Any]) -> str:
    kind = error["type"]
    ctx = error.get("ctx") or {}
    if kind == "missing":
        return "required"
    if kind in _TYPE_ERRORS:
        return f"expected {_TYPE_ERRORS[kind]}, got {_type_label(error.get('input'))}"
    if kind == "string_too_short":
        return f"must be at least {ctx['min_length']} characters"
    if kind == "string_too_long":
        return f"must be at most {ctx['max_length']} characters"
    if kind == "too_short":
        return f"must contain at least {ctx['min_length']} items"
    if kind == "too_long":
        return f"must contain at most {ctx['max_length']} items"
    if kind == "greater_than_equal":
        return f"must be >= {ctx['ge']}"
    if kind == "less_than_equal":
        return f"must be <= {ctx['le']}"
    if kind == "literal_error":
        return f"must be one of: {ctx.get('expected', '')}"
    return error["msg"]


def _translate(exc: PydanticValidationError, path: str) -> ValidationError:
    """First pydantic error → ValidationError(<dotted path>, <reason>)."""
    error = exc.errors()[0]
    parts = [str(p) for p in error["loc"] if p != "[key]"]
    if path:
        parts.insert(0, path)
    return ValidationError(".".join(parts) or ROOT, _reason(error))


# ── validators attached to the compiled types ──────────────────────────────


def _integral(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _choice(values: List[Any]) -> Callable[[Any], Any]:
    allowed = ", ".join(repr(v) for v in values)

    def check(value: Any) -> Any:
        for candidate in values:
            if type(value) is type(candidate) and value == candidate:
                return value
        raise PydanticCustomError("choice", "must be one of: {allowed}", {"allowed": allowed})

    return check


def _any_of(value: Any, handler: Callable[[Any], Any]) -> Any:
    try:
        return handler(value)
    except PydanticValidationError:
        raise PydanticCustomError("union_mismatch", "did not match any allowed type")


def _drop_nulls(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: v for k, v in value.items() if v is not None}
    return value


def _copier(value: Any) -> Callable[[], Any]:
    return lambda: copy.deepcopy(value)


# ── JSON Schema clean-up ───────────────────────────────────────────────────

_NESTED = ("items", "additionalProperties", "anyOf", "allOf", "oneOf")


def _clean(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Inline ``$ref``s and drop pydantic's generated titles."""
    defs = schema.get("$defs", {})

    def walk(node: Any) -> Any:
        if isinstance(node, list):
            return [walk(n) for n in node]
        if not isinstance(node, dict):
            return node
        if "$ref" in node:
            target = defs[node["$ref"].rsplit("/", 1)[-1]]
            rest = {k: v for k, v in node.items() if k != "$ref"}
            return walk({**target, **rest})
        out: Dict[str, Any] = {}
        for key, value in node.items():
            if key in ("title", "$defs"):
                continue
            if key == "default" and value is None:
                continue
            if key == "properties":
                out[key] = {name: walk(sub) for name, sub in value.items()}
            elif key in _NESTED:
                out[key] = walk(value)
            else:
                out[key] = value
        wrapped = out.get("allOf")
        if isinstance(wrapped, list) and len(wrapped) == 1:
            rest = {k: v for k, v in out.items() if k != "allOf"}
            out = {**wrapped[0], **rest}
        return out

    return walk(schema)


# ── kinds ──────────────────────────────────────────────────────────────────


class Kind:
    """Base schema node."""

    def __init__(self, *, description: Optional[str] = None, default: Any = _MISSING) -> None:
        self.description = description
        self.default = default
        self._annotation: Any = None
        self._adapter: Optional[TypeAdapter] = None

    def _clone(self) -> "Kind":
        clone = copy.copy(self)
        clone._annotation = None
        clone._adapter = None
        return clone

    # ── chaining ────────────────────────────────────────────────────────

    def describe(self, description: str) -> "Kind":
        clone = self._clone()
        clone.description = description
        return clone

    def with_default(self, value: Any) -> "Kind":
        try:
            self.validate(value, "default")
        except ValidationError as exc:
            raise ConfigurationError(f"Default {value!r} is invalid: {exc}") from exc
        clone = self._clone()
        clone.default = value
        return clone

    def optional(self) -> "OptionalKind":
        return OptionalKind(self, description=self.description)

    # ── introspection ───────────────────────────────────────────────────

    @property
    def has_default(self) -> bool:
        return self.default is not _MISSING

    @property
    def required(self) -> bool:
        return not self.has_default

    def default_value(self) -> Any:
        return copy.deepcopy(self.default)

    # ── compilation ─────────────────────────────────────────────────────

    def _build(self) -> Any:
        raise NotImplementedError

    def annotation(self) -> Any:
        """The pydantic type this kind compiles to."""
        if self._annotation is None:
            self._annotation = self._build()
        return self._annotation

    @property
    def adapter(self) -> TypeAdapter:
        if self._adapter is None:
            self._adapter = TypeAdapter(self.annotation())
        return self._adapter

    def field_info(self, alias: str) -> Any:
        """FieldInfo used when this kind is a property of an object."""
        if self.has_default:
            return Field(
                default_factory=_copier(self.default),
                alias=alias,
                description=self.description,
                json_schema_extra={"default": self.default},
            )
        return Field(alias=alias, description=self.description)

    # ── validation / export ─────────────────────────────────────────────

    def validate(self, value: Any, path: str = "") -> Any:
        try:
            return self.adapter.validate_python(value)
        except PydanticValidationError as exc:
            raise _translate(exc, path) from None

    def to_json_schema(self) -> Dict[str, Any]:
        schema = _clean(self.adapter.json_schema())
        if self.description:
            schema["description"] = self.description
        if self.has_default:
            schema["default"] = self.default
        return schema

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class StringKind(Kind):
    def __init__(
        self,
        *,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        self.min_length = min_length
        self.max_length = max_length
        super().__init__(**kwargs)

    def _build(self) -> Any:
        return Annotated[
            str, Strict(), Field(min_length=self.min_length, max_length=self.max_length)
        ]


class NumberKind(Kind):
    """Numbers.  Booleans are never numbers; ``integer=True`` rejects fractions."""

    def __init__(
        self,
        *,
        integer: bool = False,
        minimum: Optional[float] = None,
        maximum: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        self.integer = integer
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(**kwargs)

    def _build(self) -> Any:
        bounds = Field(ge=self.minimum, le=self.maximum)
        if self.integer:
            return Annotated[int, Strict(), bounds, BeforeValidator(_integral)]
        return Annotated[float, Strict(), bounds]


class BooleanKind(Kind):
    def _build(self) -> Any:
        return Annotated[bool, Strict()]


class EnumKind(Kind):
    """One of a fixed set of literals, matched by type as well as value."""

    def __init__(self, values: Sequence[Any], **kwargs: Any) -> None:
        if not values:
            raise ConfigurationError("enum() needs at least one value")
        self.values = list(values)
        super().__init__(**kwargs)

    def _build(self) -> Any:
        return Annotated[Literal[tuple(self.values)], BeforeValidator(_choice(self.values))]


class ArrayKind(Kind):
    def __init__(
        self,
        items: Kind,
        *,
        min_items: Optional[int] = None,
        max_items: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        self.items = _ensure_kind(items, "array items")
        self.min_items = min_items
        self.max_items = max_items
        super().__init__(**kwargs)

    def _build(self) -> Any:
        return Annotated[
            List[self.items.annotation()],
            Field(min_length=self.min_items, max_length=self.max_items),
        ]


class ObjectKind(Kind):
    """Named fields.  Unknown keys in the input are ignored."""

    def __init__(self, fields: Optional[Mapping[str, Kind]] = None, **kwargs: Any) -> None:
        self.fields: Dict[str, Kind] = {
            name: _ensure_kind(kind, f"field '{name}'") for name, kind in (fields or {}).items()
        }
        super().__init__(**kwargs)

    def _build(self) -> Any:
        # Internal attribute names avoid clashes with BaseModel members;
        # the real key is the alias.
        definitions: Dict[str, Any] = {}
        keys: Dict[str, str] = {}
        for index, (name, kind) in enumerate(self.fields.items()):
            attr = f"f{index}"
            keys[attr] = name
            if isinstance(kind, OptionalKind):
                annotation = kind.inner.annotation()
                if kind.has_default:
                    info = kind.field_info(name)
                else:
                    info = Field(None, alias=name, description=kind.description)
            else:
                annotation = kind.annotation()
                info = kind.field_info(name)
            definitions[attr] = (annotation, info)

        model = create_model(
            "Arguments",
            __config__=ConfigDict(extra="ignore"),
            **definitions,
        )
        absent_when_none = {
            attr
            for attr, name in keys.items()
            if isinstance(self.fields[name], OptionalKind) and not self.fields[name].has_default
        }

        def dump(instance: Any) -> Dict[str, Any]:
            out: Dict[str, Any] = {}
            for attr, name in keys.items():
                value = getattr(instance, attr)
                if value is None and attr in absent_when_none:
                    continue
                out[name] = value
            return out

        return Annotated[model, BeforeValidator(_drop_nulls), AfterValidator(dump)]


class OptionalKind(Kind):
    """Absent or null allowed; otherwise the inner kind applies."""

    def __init__(self, inner: Kind, **kwargs: Any) -> None:
        self.inner = _ensure_kind(inner, "optional()")
        if "default" not in kwargs and inner.has_default:
            kwargs["default"] = inner.default
        super().__init__(**kwargs)

    @property
    def required(self) -> bool:
        return False

    def _build(self) -> Any:
        return Optional[self.inner.annotation()]

    def to_json_schema(self) -> Dict[str, Any]:
        schema = self.inner.to_json_schema()
        if self.description:
            schema["description"] = self.description
        if self.has_default:
            schema["default"] = self.default
        return schema


class UnionKind(Kind):
    """First variant that validates wins."""

    def __init__(self, variants: Sequence[Kind], **kwargs: Any) -> None:
        if len(variants) < 2:
            raise ConfigurationError("union() needs at least two variants")
        self.variants = [_ensure_kind(v, "union variant") for v in variants]
        super().__init__(**kwargs)

    def _build(self) -> Any:
        members = tuple(v.annotation() for v in self.variants)
        return Annotated[Union[members], WrapValidator(_any_of)]


class RecordKind(Kind):
    """Map of string keys to values of one kind."""

    def __init__(self, values: Kind, **kwargs: Any) -> None:
        self.values = _ensure_kind(values, "record values")
        super().__init__(**kwargs)

    def _build(self) -> Any:
        return Dict[Annotated[str, Strict()], self.values.annotation()]


def _ensure_kind(kind: Any, where: str) -> Kind:
    if not isinstance(kind, Kind):
        raise ConfigurationError(f"{where} must be a schema kind, got {type(kind).__name__}")
    return kind


def as_object_schema(schema: Any) -> ObjectKind:
    """
    Normalise what callers pass as an input schema.

    ``None`` → no inputs; a dict of field → kind → ObjectKind.
    """
    if schema is None:
        return ObjectKind({})
    if isinstance(schema, ObjectKind):
        return schema
    if isinstance(schema, Mapping):
        return ObjectKind(schema)
    raise ConfigurationError(
        f"input schema must be an object schema or a mapping of fields, got {type(schema).__name__}"
    )


def validate_arguments(schema: ObjectKind, raw_args: Any) -> Dict[str, Any]:
    """Validate an operation's top-level argument bag.  ``None`` means ``{}``."""
    if raw_args is None:
        raw_args = {}
    if not isinstance(raw_args, Mapping):
        raise ValidationError(ROOT, "expected object")
    return schema.validate(raw_args, "")


# ── builders ────────────────────────────────────────────────────────────────


def string(**kwargs: Any) -> StringKind:
    return StringKind(**kwargs)


def number(**kwargs: Any) -> NumberKind:
    return NumberKind(**kwargs)


def integer(**kwargs: Any) -> NumberKind:
    return NumberKind(integer=True, **kwargs)


def boolean(**kwargs: Any) -> BooleanKind:
    return BooleanKind(**kwargs)


def enum(*values: Any, **kwargs: Any) -> EnumKind:
    return EnumKind(values, **kwargs)


def array(items: Kind, **kwargs: Any) -> ArrayKind:
    return ArrayKind(items, **kwargs)


def obj(fields: Optional[Mapping[str, Kind]] = None, /, **named: Kind) -> ObjectKind:
    merged: Dict[str, Kind] = dict(fields or {})
    merged.update(named)
    return ObjectKind(merged)


def optional(kind: Kind) -> OptionalKind:
    return kind.optional()


def union(*variants: Kind, **kwargs: Any) -> UnionKind:
    return UnionKind(variants, **kwargs)


def record(values: Kind, **kwargs: Any) -> RecordKind:
    return RecordKind(values, **kwargs)


__all__: List[str] = [
    "Kind",
    "StringKind",
    "NumberKind",
    "BooleanKind",
    "EnumKind",
    "ArrayKind",
    "ObjectKind",
    "OptionalKind",
    "UnionKind",
    "RecordKind",
    "as_object_schema",
    "validate_arguments",
    "string",
    "number",
    "integer",
    "boolean",
    "enum",
    "array",
    "obj",
    "optional",
    "union",
    "record",
]
