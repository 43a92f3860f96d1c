"""
ProviderProfile — declarative description of one OAuth2 provider.

Every connector (Jira, Salesforce, Notion, …) describes its provider with a
profile instead of hand-writing the authorize / token / refresh calls; the
OAuth2Manager interprets it.

Endpoint URLs may contain ``{key}`` placeholders filled from the provider's
auth-form fields, e.g. ``https://{domain}.zendesk.com/oauth/tokens``.
"""

from __future__ import annotations

import re
import string
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from utils.errors import ValidationError
from utils.schemas import AuthFormField

_URL_PART = re.compile(r"[A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9])?")


class ProviderProfile(BaseModel):
    """Immutable provider description consumed by the OAuth2Manager."""

    model_config = ConfigDict(frozen=True)

    # ── Identity ────────────────────────────────────────────────────────
    name: str = Field(..., min_length=1, description="Unique slug: 'jira', 'notion'")
    display_name: str = ""
    icon: str = "🔗"

    # ── Endpoints ───────────────────────────────────────────────────────
    authorization_url: str
    token_url: str

    # ── Authorization request ───────────────────────────────────────────
    scopes: List[str] = Field(default_factory=list)
    scope_separator: str = " "
    extra_auth_params: Dict[str, str] = Field(default_factory=dict)
    pkce_required: bool = False

    # ── Token request ───────────────────────────────────────────────────
    token_auth_method: Literal["client_secret_post", "client_secret_basic"] = (
        "client_secret_post"
    )
    token_request_format: Literal["form", "json"] = "form"
    extra_token_params: Dict[str, str] = Field(default_factory=dict)

    # ── Extras ──────────────────────────────────────────────────────────
    auth_form: List[AuthFormField] = Field(default_factory=list)
    callback_fields: List[str] = Field(
        default_factory=list,
        description="Callback query params kept in provider_fields (e.g. 'realmId')",
    )

    @property
    def label(self) -> str:
        return self.display_name or self.name

    # ── Auth form ───────────────────────────────────────────────────────

    def validate_fields(self, fields: Optional[Mapping[str, Any]]) -> Dict[str, str]:
        """
        Check caller-supplied auth-form values against the declared form.

        Returns the values as strings, restricted to declared keys.

        Raises
        ------
        ValidationError – required field missing, or select value not offered.
        """
        fields = fields or {}
        cleaned: Dict[str, str] = {}
        for form_field in self.auth_form:
            raw = fields.get(form_field.key)
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                if form_field.is_required:
                    raise ValidationError(form_field.key, "required")
                continue
            value = str(raw).strip()
            if form_field.type == "select":
                allowed = [opt.value for opt in form_field.options]
                if value not in allowed:
                    raise ValidationError(
                        form_field.key, f"must be one of: {', '.join(allowed)}"
                    )
            cleaned[form_field.key] = value
        return cleaned

    def auth_form_dict(self) -> Dict[str, Any]:
        return {
            "fields": [
                f.model_dump(by_alias=True, exclude_none=True) for f in self.auth_form
            ]
        }

    # ── Endpoint resolution ─────────────────────────────────────────────

    def authorization_endpoint(self, fields: Optional[Mapping[str, str]] = None) -> str:
        return _fill(self.authorization_url, fields or {})

    def token_endpoint(self, fields: Optional[Mapping[str, str]] = None) -> str:
        return _fill(self.token_url, fields or {})


def _fill(template: str, fields: Mapping[str, str]) -> str:
    names = [name for _, name, _, _ in string.Formatter().parse(template) if name]
    for name in names:
        value = fields.get(name)
        if not value:
            raise ValidationError(name, "required")
        if not _URL_PART.fullmatch(value):
            raise ValidationError(name, "must be a single host label or path segment")
    return template.format_map({name: fields[name] for name in names})
