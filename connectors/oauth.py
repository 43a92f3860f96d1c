"""
OAuth2Manager — authorization URL, code exchange and refresh for one
provider profile.

The manager is memoryless between calls: it holds only the immutable
ProviderProfile (and an optional shared httpx client).  Every method is a
function of its arguments.  The caller keeps the PKCE verifier between
``build_authorization_url`` and ``exchange_code`` and decides when to
refresh.

Flow::

    Unauthenticated ──build_authorization_url──▶ AuthorizationRequested
        ──(user consents, provider redirects)──▶ CodeReceived
        ──exchange_code / handle_callback──▶ Authenticated
        ──refresh_access_token──▶ Authenticated | AuthError
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qs, urlencode, urlsplit

import httpx

from connectors.base import ProviderProfile
from connectors.pkce import create_pkce_state
from utils import http
from utils.errors import AuthError, OperationError, TransportError
from utils.schemas import AuthorizationRequest, CredentialBundle, Result

logger = logging.getLogger(__name__)

_STANDARD_TOKEN_KEYS = ("access_token", "refresh_token", "expires_in", "token_type", "scope")


class OAuth2Manager:
    """Token lifecycle for a single provider profile."""

    def __init__(
        self,
        profile: ProviderProfile,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.profile = profile
        self._client = http_client

    # ── Authorization URL ───────────────────────────────────────────────

    def build_authorization_url(
        self,
        client_id: str,
        redirect_uri: str,
        state: str,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> AuthorizationRequest:
        """
        Build the provider's authorization URL.

        Parameters
        ----------
        client_id, redirect_uri : str
            OAuth app registration values.
        state : str
            Opaque anti-CSRF value echoed back on the callback.
        fields : mapping, optional
            Auth-form values (site, environment, …).

        Returns
        -------
        AuthorizationRequest with the URL and, for PKCE providers, the
        verifier the caller must hand back to ``exchange_code``.

        Raises
        ------
        ValidationError – auth-form field missing or invalid.
        """
        profile = self.profile
        form = profile.validate_fields(fields)

        params: Dict[str, str] = dict(profile.extra_auth_params)
        params.update(
            {
                "client_id": client_id,
                "redirect_uri": redirect_uri,
                "response_type": "code",
                "state": state,
            }
        )
        if profile.scopes:
            params["scope"] = profile.scope_separator.join(profile.scopes)

        verifier: Optional[str] = None
        if profile.pkce_required:
            pkce = create_pkce_state()
            verifier = pkce.code_verifier
            params["code_challenge"] = pkce.code_challenge
            params["code_challenge_method"] = pkce.method

        endpoint = profile.authorization_endpoint(form)
        sep = "&" if urlsplit(endpoint).query else "?"
        return AuthorizationRequest(
            url=f"{endpoint}{sep}{urlencode(params)}",
            pkce_verifier=verifier,
        )

    # ── Code exchange ───────────────────────────────────────────────────

    async def exchange_code(
        self,
        code: Optional[str],
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        pkce_verifier: Optional[str] = None,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> Result[CredentialBundle]:
        """
        Exchange an authorization code for a CredentialBundle.

        Unknown keys of the token response are kept in ``provider_fields``.
        """
        if not code:
            return Result.failure(AuthError("No authorization code received"))
        if self.profile.pkce_required and not pkce_verifier:
            return Result.failure(AuthError("Missing PKCE code verifier"))

        try:
            form = self.profile.validate_fields(fields)
        except OperationError as exc:
            return Result.failure(exc)

        params = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }
        if pkce_verifier:
            params["code_verifier"] = pkce_verifier

        result = await self._post_token(params, client_id, client_secret, form, "Token exchange failed")
        if not result.ok:
            return Result.failure(result.error)

        try:
            bundle = _bundle_from_token_data(result.value, extra=form)
        except AuthError as exc:
            return Result.failure(exc)

        logger.info("Exchanged authorization code with %s", self.profile.label)
        return Result.success(bundle)

    async def handle_callback(
        self,
        full_url: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        pkce_verifier: Optional[str] = None,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> Result[CredentialBundle]:
        """
        Pull ``code`` out of the provider's redirect URL and exchange it.

        Provider-reported errors (``?error=access_denied``) and a missing
        ``code`` fail without touching the network.
        """
        query = parse_qs(urlsplit(full_url).query)

        def _param(key: str) -> Optional[str]:
            values = query.get(key)
            return values[0] if values else None

        if _param("error"):
            reason = _param("error")
            if _param("error_description"):
                reason = f"{reason}: {_param('error_description')}"
            logger.warning("%s authorization denied: %s", self.profile.label, reason)
            return Result.failure(AuthError(reason))

        code = _param("code")
        if not code:
            return Result.failure(AuthError("No authorization code received"))

        result = await self.exchange_code(
            code, client_id, client_secret, redirect_uri, pkce_verifier, fields
        )
        if not result.ok:
            return result

        captured = {
            key: _param(key)
            for key in self.profile.callback_fields
            if _param(key) is not None
        }
        if not captured:
            return result
        bundle = result.value
        return Result.success(
            bundle.with_provider_fields({**bundle.provider_fields, **captured})
        )

    # ── Refresh ─────────────────────────────────────────────────────────

    async def refresh_access_token(
        self,
        refresh_token: Optional[str],
        client_id: str,
        client_secret: str,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> Result[CredentialBundle]:
        """
        Use a refresh token to get a new CredentialBundle.

        When the provider does not rotate the refresh token (omits it from
        the response) the input refresh token is carried into the new bundle.
        """
        if not refresh_token:
            return Result.failure(AuthError("No refresh token available"))

        try:
            form = self.profile.validate_fields(fields)
        except OperationError as exc:
            return Result.failure(exc)

        params = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        result = await self._post_token(params, client_id, client_secret, form, "Token refresh failed")
        if not result.ok:
            return Result.failure(result.error)

        try:
            bundle = _bundle_from_token_data(result.value, fallback_refresh=refresh_token)
        except AuthError as exc:
            return Result.failure(exc)

        logger.info("Refreshed access token with %s", self.profile.label)
        return Result.success(bundle)

    async def refresh_bundle(
        self,
        bundle: CredentialBundle,
        client_id: str,
        client_secret: str,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> Result[CredentialBundle]:
        """
        Refresh *bundle* and carry its provider_fields into the new one.

        The old bundle is left untouched.
        """
        result = await self.refresh_access_token(
            bundle.refresh_token, client_id, client_secret, fields
        )
        if not result.ok:
            return result
        fresh = result.value
        return Result.success(
            fresh.with_provider_fields({**bundle.provider_fields, **fresh.provider_fields})
        )

    # ── Internals ───────────────────────────────────────────────────────

    async def _post_token(
        self,
        params: Dict[str, str],
        client_id: str,
        client_secret: str,
        form: Mapping[str, str],
        failure_prefix: str,
    ) -> Result[Any]:
        profile = self.profile
        try:
            url = profile.token_endpoint(form)
        except OperationError as exc:
            return Result.failure(exc)

        payload: Dict[str, str] = dict(profile.extra_token_params)
        payload.update(params)
        headers = {"Accept": "application/json"}

        if profile.token_auth_method == "client_secret_basic":
            raw = f"{client_id}:{client_secret}".encode()
            headers["Authorization"] = f"Basic {base64.b64encode(raw).decode()}"
        else:
            payload["client_id"] = client_id
            payload["client_secret"] = client_secret

        if profile.token_request_format == "json":
            result = await http.request("POST", url, headers=headers, json=payload, client=self._client)
        else:
            result = await http.request("POST", url, headers=headers, data=payload, client=self._client)

        error = result.error
        if isinstance(error, TransportError):
            logger.warning(
                "%s token endpoint error (%s)", profile.label, error.status_code
            )
            return Result.failure(
                AuthError(f"{failure_prefix}: {error.raw_body}", raw_body=error.raw_body)
            )
        return result


def _bundle_from_token_data(
    data: Any,
    *,
    fallback_refresh: Optional[str] = None,
    extra: Optional[Mapping[str, Any]] = None,
) -> CredentialBundle:
    """Build a CredentialBundle from a token endpoint body."""
    if isinstance(data, str):
        # Legacy form-encoded token responses (``access_token=…&scope=…``).
        parsed = {k: v[0] for k, v in parse_qs(data).items()}
        if not parsed:
            raise AuthError("Token endpoint returned an unexpected response", raw_body=data)
        data = parsed
    if not isinstance(data, dict):
        raise AuthError("Token endpoint returned an unexpected response", raw_body=str(data))

    if data.get("error"):
        raise AuthError(
            str(data.get("error_description") or data["error"]),
            raw_body=str(data),
        )

    access_token = data.get("access_token")
    if not access_token:
        raise AuthError("Token response did not include an access_token", raw_body=str(data))

    expires_in = _seconds(data.get("expires_in"))

    scope = data.get("scope")
    if isinstance(scope, list):
        scope = " ".join(str(s) for s in scope)

    provider_fields: Dict[str, Any] = dict(extra or {})
    provider_fields.update(
        {k: v for k, v in data.items() if k not in _STANDARD_TOKEN_KEYS}
    )

    return CredentialBundle(
        access_token=str(access_token),
        refresh_token=data.get("refresh_token") or fallback_refresh,
        expires_in=expires_in,
        token_type=data.get("token_type"),
        scope=scope,
        provider_fields=provider_fields,
    )


def _seconds(value: Any) -> Optional[int]:
    """``expires_in`` as whole seconds; ``3600``, ``"3600"`` and ``"3600.0"`` all work."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
