"""
Pydantic schemas shared by the connector core.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Generic, List, Literal, Mapping, Optional, TypeVar, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator

from utils.errors import OperationError

T = TypeVar("T")


# ═══════════════════════════════════════════════════════════════════════════════
# Result — explicit success / failure value
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Either a value or an OperationError.

    Returned by the dispatch helper and the OAuth manager so that vendor
    failures travel as ordinary return values.
    """

    value: Optional[T] = None
    error: Optional[OperationError] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: OperationError) -> "Result[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


# ═══════════════════════════════════════════════════════════════════════════════
# Content envelope — what every operation returns
# ═══════════════════════════════════════════════════════════════════════════════


class TextContent(BaseModel):
    type: Literal["text"] = Field("text", validation_alias=AliasChoices("type", "kind"))
    text: str

    @property
    def kind(self) -> str:
        return self.type


class EmbeddedResource(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uri: str
    mime_type: Optional[str] = Field(None, alias="mimeType")
    text: str


class ResourceContent(BaseModel):
    type: Literal["resource"] = Field(
        "resource", validation_alias=AliasChoices("type", "kind")
    )
    resource: EmbeddedResource

    @property
    def kind(self) -> str:
        return self.type


ContentBlock = Union[TextContent, ResourceContent]


class ContentEnvelope(BaseModel):
    """
    Uniform output wrapper for every operation.

    ``error`` carries the structured OperationError for programmatic
    callers and is never serialized.
    """

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    content: List[ContentBlock] = Field(default_factory=list)
    is_error: bool = Field(False, alias="isError")
    error: Optional[OperationError] = Field(None, exclude=True)

    @classmethod
    def from_text(cls, text: str) -> "ContentEnvelope":
        return cls(content=[TextContent(text=text)])

    @classmethod
    def from_json(cls, data: Any) -> "ContentEnvelope":
        """Pretty-printed JSON of a vendor response as a single text block."""
        return cls.from_text(json.dumps(data, indent=2, default=str))

    @classmethod
    def from_error(cls, error: OperationError, prefix: str = "") -> "ContentEnvelope":
        message = f"{prefix}{error.message}" if prefix else error.message
        return cls(
            content=[TextContent(text=message)],
            is_error=True,
            error=error,
        )

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with camelCase keys (``isError``, ``mimeType``)."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Resources
# ═══════════════════════════════════════════════════════════════════════════════


class ResourceContents(BaseModel):
    """Result of reading a resource URI."""

    contents: List[EmbeddedResource] = Field(default_factory=list)

    @classmethod
    def from_json(cls, uri: str, data: Any) -> "ResourceContents":
        return cls(
            contents=[
                EmbeddedResource(
                    uri=uri,
                    mime_type="application/json",
                    text=json.dumps(data, indent=2, default=str),
                )
            ]
        )


# ═══════════════════════════════════════════════════════════════════════════════
# OAuth
# ═══════════════════════════════════════════════════════════════════════════════


class CredentialBundle(BaseModel):
    """
    Opaque credentials produced by a successful code exchange.

    Frozen: a refresh builds a new bundle, readers in flight keep seeing
    the old one intact.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    provider_fields: Mapping[str, Any] = Field(
        default_factory=dict,
        validate_default=True,
        description="Provider-specific extras (workspace id, instance_url, realmId, …)",
    )

    @field_validator("provider_fields", mode="after")
    @classmethod
    def _freeze_provider_fields(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(value))

    @field_serializer("provider_fields")
    def _dump_provider_fields(self, value: Mapping[str, Any]) -> Dict[str, Any]:
        return dict(value)

    def with_provider_fields(self, fields: Mapping[str, Any]) -> "CredentialBundle":
        """A new bundle carrying *fields*; this one is left as is."""
        data = self.model_dump()
        data["provider_fields"] = dict(fields)
        return CredentialBundle.model_validate(data)

    def authorization_header(self) -> Dict[str, str]:
        scheme = self.token_type or "Bearer"
        if scheme.lower() == "bearer":
            scheme = "Bearer"
        return {"Authorization": f"{scheme} {self.access_token}"}


class PKCEState(BaseModel):
    code_verifier: str
    code_challenge: str
    method: Literal["S256"] = "S256"


class AuthorizationRequest(BaseModel):
    url: str
    pkce_verifier: Optional[str] = None


class AuthFormOption(BaseModel):
    label: str
    value: str


class AuthFormField(BaseModel):
    """One extra input a provider needs before authorization (site, environment)."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["text", "password", "select"] = "text"
    key: str
    label: str
    is_required: bool = Field(False, alias="isRequired")
    placeholder: Optional[str] = None
    description: Optional[str] = None
    options: List[AuthFormOption] = Field(default_factory=list)
