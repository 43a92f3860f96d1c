"""
Error taxonomy for the connector core.

OperationError subclasses describe why a single operation failed and are
surfaced to the caller (never retried here).  ConfigurationError is a
setup-time programmer error and is raised eagerly.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ConfigurationError(Exception):
    """Raised at registration / wiring time — duplicate names, bad schemas."""


class OperationError(Exception):
    """Base class for every caller-visible operation failure."""

    kind: str = "operation_error"

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message}


class ValidationError(OperationError):
    """Caller input failed schema validation.  Never reaches the network."""

    kind = "validation_error"

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "field": self.field, "reason": self.reason}


class TransportError(OperationError):
    """
    Non-2xx vendor response.

    ``status_code`` is None when no response was received at all
    (DNS failure, connection refused, …).  ``raw_body`` is the vendor's
    error text, unmodified.
    """

    kind = "transport_error"

    def __init__(self, status_code: Optional[int], raw_body: str) -> None:
        self.status_code = status_code
        self.raw_body = raw_body
        if status_code is None:
            text = f"Request failed: {raw_body}"
        else:
            text = f"API error ({status_code}): {raw_body}"
        super().__init__(text)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **super().to_dict(),
            "status_code": self.status_code,
            "raw_body": self.raw_body,
        }


class AuthError(OperationError):
    """Missing authorization code, failed token exchange or failed refresh."""

    kind = "auth_error"

    def __init__(self, reason: str, raw_body: Optional[str] = None) -> None:
        self.reason = reason
        self.raw_body = raw_body
        super().__init__(reason)

    def to_dict(self) -> Dict[str, Any]:
        data = {**super().to_dict(), "reason": self.reason}
        if self.raw_body is not None:
            data["raw_body"] = self.raw_body
        return data


class NotFound(OperationError):
    """A handler looked for a sub-resource (or an operation name) and found none."""

    kind = "not_found"

    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__(f"Not found: {resource}")

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "resource": self.resource}
