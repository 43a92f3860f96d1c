"""
Connector core — composition helpers for a connector shell.

A shell (the per-vendor "server") builds one Connector, registers its
operations and resources, and hands calls from its transport to
``call_tool`` / ``read_resource``.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from types import ModuleType
from typing import Any, Dict, Iterable, Optional

import httpx

from config.settings import config
from connectors.base import ProviderProfile
from connectors.oauth import OAuth2Manager
from tools.registry import OperationRegistry
from tools.resources import ResourceRegistry
from utils.schemas import ContentEnvelope, CredentialBundle

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.DEBUG if config.debug else getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        stream=sys.stdout,
    )
    for _noisy in ("httpcore", "httpx"):
        logging.getLogger(_noisy).setLevel(logging.WARNING)


@dataclass
class Connector:
    """One vendor's operations, resources and (optional) OAuth wiring."""

    name: str
    version: str = "1.0.0"
    operations: OperationRegistry = field(default=None)  # type: ignore[assignment]
    resources: ResourceRegistry = field(default=None)  # type: ignore[assignment]
    oauth: Optional[OAuth2Manager] = None

    def __post_init__(self) -> None:
        if self.operations is None:
            self.operations = OperationRegistry(self.name)
        if self.resources is None:
            self.resources = ResourceRegistry(self.name)

    def catalog(self) -> Dict[str, Any]:
        """Everything a transport needs to advertise this connector."""
        data: Dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "tools": self.operations.list_operations(),
            "resources": self.resources.list_templates(),
        }
        if self.oauth is not None:
            data["auth"] = {
                "provider": self.oauth.profile.name,
                "pkce": self.oauth.profile.pkce_required,
                "form": self.oauth.profile.auth_form_dict(),
            }
        return data

    async def call_tool(
        self,
        name: str,
        arguments: Any,
        credentials: Optional[CredentialBundle] = None,
    ) -> Dict[str, Any]:
        envelope = await self.operations.invoke(name, arguments, credentials)
        return envelope.to_wire()

    async def read_resource(
        self,
        uri: str,
        credentials: Optional[CredentialBundle] = None,
    ) -> Dict[str, Any]:
        result = await self.resources.read(uri, credentials)
        if result.error is not None:
            return ContentEnvelope.from_error(result.error).to_wire()
        return result.value.model_dump(by_alias=True, exclude_none=True)


def build_connector(
    name: str,
    *,
    version: str = "1.0.0",
    profile: Optional[ProviderProfile] = None,
    modules: Iterable[ModuleType] = (),
    http_client: Optional[httpx.AsyncClient] = None,
) -> Connector:
    """
    Assemble a Connector.

    Parameters
    ----------
    name : connector slug, used in log lines.
    profile : OAuth provider profile; omit for API-key / public connectors.
    modules : modules whose ``@operation`` handlers should be registered.
    http_client : shared client for token requests.
    """
    connector = Connector(
        name=name,
        version=version,
        oauth=OAuth2Manager(profile, http_client=http_client) if profile else None,
    )
    for module in modules:
        connector.operations.register_module(module)
    logger.info(
        "Connector %s v%s ready — %d operations, %d resources",
        name, version, len(connector.operations), len(connector.resources.list_templates()),
    )
    return connector
