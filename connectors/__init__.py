"""
connectors — OAuth2 support for service connectors.

Provides a generic, profile-driven framework that handles:
  • authorization-URL generation (with PKCE when the provider needs it)
  • callback handling (code → CredentialBundle)
  • refresh (keeping the old refresh token when the provider doesn't rotate)

Each provider (Jira, Notion, Salesforce, …) is described by a
ProviderProfile rather than a subclass.
"""
