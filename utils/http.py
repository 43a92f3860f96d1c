"""
HTTP dispatch helper — the single request/response contract every
operation handler uses to reach a vendor API.

Semantics:
  • 2xx (except 204) → parsed JSON when the content type is JSON,
    raw text otherwise (file downloads, CSV exports, …).
  • 204 → ``{"success": True}`` instead of parsing an empty body.
  • non-2xx → ``TransportError(status_code, raw_body)`` with the vendor's
    text verbatim.
  • One attempt.  No retries, no backoff.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from config.settings import config
from utils.errors import ConfigurationError, TransportError
from utils.schemas import ContentEnvelope, Result

logger = logging.getLogger(__name__)

NO_CONTENT_SENTINEL: Dict[str, Any] = {"success": True}


def bearer_headers(token: str, **extra: str) -> Dict[str, str]:
    """Standard ``Authorization: Bearer`` + JSON headers."""
    headers = {
        "Authorization": f"Bearer {token}",
        "Accept": "application/json",
    }
    headers.update(extra)
    return headers


def clean_params(params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Drop ``None`` values so optional tool arguments don't leak as ``"None"``."""
    if not params:
        return {}
    cleaned: Dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        cleaned[key] = value
    return cleaned


def _is_json(resp: httpx.Response) -> bool:
    content_type = resp.headers.get("content-type", "").split(";", 1)[0].strip().lower()
    return content_type == "application/json" or content_type.endswith("+json")


def _read_error_body(resp: httpx.Response) -> str:
    try:
        return resp.text
    except Exception:
        logger.debug("Could not decode error body (status %d)", resp.status_code)
        return ""


def parse_response(resp: httpx.Response) -> Result[Any]:
    """Apply the status / content-type rules to an already-received response."""
    if not 200 <= resp.status_code < 300:
        return Result.failure(TransportError(resp.status_code, _read_error_body(resp)))

    if resp.status_code == 204:
        return Result.success(dict(NO_CONTENT_SENTINEL))

    if _is_json(resp):
        if not resp.content.strip():
            return Result.success(dict(NO_CONTENT_SENTINEL))
        try:
            return Result.success(resp.json())
        except ValueError:
            return Result.success(resp.text)

    return Result.success(resp.text)


async def request(
    method: str,
    url: str,
    *,
    headers: Optional[Mapping[str, str]] = None,
    params: Optional[Mapping[str, Any]] = None,
    json: Any = None,
    data: Optional[Mapping[str, Any]] = None,
    content: Optional[bytes] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Result[Any]:
    """
    Issue one HTTP request and normalise the outcome.

    Parameters
    ----------
    method : str
        HTTP verb.
    url : str
        Absolute URL.
    headers : mapping, optional
        Request headers (use ``bearer_headers`` / ``CredentialBundle.authorization_header``).
    params : mapping, optional
        Query parameters; ``None`` values are dropped.
    json / data / content :
        JSON body, form-encoded body, or raw bytes — at most one.
    client : httpx.AsyncClient, optional
        Shared client.  A short-lived client is used when omitted.

    Returns
    -------
    Result whose value is the parsed body, or whose error is a TransportError.

    Raises
    ------
    ConfigurationError – more than one of json / data / content given.
    """
    bodies = [
        name
        for name, value in (("json", json), ("data", data), ("content", content))
        if value is not None
    ]
    if len(bodies) > 1:
        raise ConfigurationError(f"request() takes at most one body, got {', '.join(bodies)}")

    req_headers = {"User-Agent": config.http_user_agent}
    if headers:
        req_headers.update(headers)

    kwargs: Dict[str, Any] = {
        "headers": req_headers,
        "params": clean_params(params) or None,
    }
    if json is not None:
        kwargs["json"] = json
    elif data is not None:
        kwargs["data"] = dict(data)
    elif content is not None:
        kwargs["content"] = content

    try:
        if client is not None:
            resp = await client.request(method.upper(), url, **kwargs)
        else:
            async with httpx.AsyncClient(timeout=config.http_timeout) as own_client:
                resp = await own_client.request(method.upper(), url, **kwargs)
    except httpx.HTTPError as exc:
        logger.warning("%s %s failed before a response: %s", method.upper(), url, exc)
        return Result.failure(TransportError(None, str(exc)))

    result = parse_response(resp)
    if not result.ok:
        logger.warning(
            "%s %s → %d: %s",
            method.upper(), url, resp.status_code, result.error.raw_body[:500],
        )
    return result


def json_result_envelope(result: Result[Any]) -> ContentEnvelope:
    """Turn a dispatch Result into the envelope an operation returns."""
    if result.error is not None:
        return ContentEnvelope.from_error(result.error)
    value = result.value
    if isinstance(value, str):
        return ContentEnvelope.from_text(value)
    return ContentEnvelope.from_json(value)
