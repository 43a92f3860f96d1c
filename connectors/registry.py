"""
ProviderRegistry — process-wide lookup of provider profiles by slug.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from connectors.base import ProviderProfile
from connectors.oauth import OAuth2Manager
from utils.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Singleton registry for all OAuth provider profiles."""

    _instance: Optional["ProviderRegistry"] = None

    def __new__(cls) -> "ProviderRegistry":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._profiles = {}
        return cls._instance

    def register(self, profile: ProviderProfile) -> None:
        if profile.name in self._profiles:
            raise ConfigurationError(f"Provider '{profile.name}' is already registered")
        self._profiles[profile.name] = profile
        logger.info("Provider registered: %s (%s)", profile.label, profile.name)

    def get(self, provider: str) -> Optional[ProviderProfile]:
        """Get a profile by provider name."""
        return self._profiles.get(provider)

    def manager(
        self,
        provider: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> OAuth2Manager:
        """OAuth2Manager bound to *provider*'s profile."""
        profile = self._profiles.get(provider)
        if profile is None:
            raise ConfigurationError(f"Provider '{provider}' not registered")
        return OAuth2Manager(profile, http_client=http_client)

    def list_providers(self) -> List[Dict[str, Any]]:
        """Return info about all registered providers."""
        return [
            {
                "provider": p.name,
                "display_name": p.label,
                "icon": p.icon,
                "pkce": p.pkce_required,
                "auth_form": p.auth_form_dict(),
            }
            for p in self._profiles.values()
        ]

    # ── reset (for tests) ──────────────────────────────────────────────

    @classmethod
    def reset(cls) -> None:
        """Destroy singleton — only useful in test teardown."""
        cls._instance = None
