"""Credential capabilities for storage accounts.

Each variant knows how to produce the object the Azure SDK expects as its
``credential`` argument, so call sites never inspect which kind they hold.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, Optional, Protocol

from .config import IntegrationConfig
from .errors import CredentialError

LOGGER = logging.getLogger(__name__)


class Credential(Protocol):
    """Capability that authorizes requests against one storage account."""

    def authorize(self) -> Any:
        """Return the value passed to the SDK client as ``credential``."""


class SharedKeyCredential:
    """Account name plus shared access key."""

    def __init__(self, account_name: str, account_key: str) -> None:
        self.account_name = account_name
        self._account_key = account_key

    def authorize(self) -> Any:
        from azure.core.credentials import AzureNamedKeyCredential

        return AzureNamedKeyCredential(self.account_name, self._account_key)

    def __repr__(self) -> str:
        return f"SharedKeyCredential(account_name={self.account_name!r})"


class SasTokenCredential:
    """Shared access signature appended to every request."""

    def __init__(self, sas_token: str) -> None:
        self._sas_token = sas_token.lstrip("?")

    def authorize(self) -> Any:
        from azure.core.credentials import AzureSasCredential

        return AzureSasCredential(self._sas_token)

    def __repr__(self) -> str:
        return "SasTokenCredential()"


class TokenCredentialAdapter:
    """Wrap an Azure AD token credential (client secret, managed identity...)."""

    def __init__(self, token_credential: Any) -> None:
        self._token_credential = token_credential

    def authorize(self) -> Any:
        return self._token_credential

    def __repr__(self) -> str:
        return f"TokenCredentialAdapter({type(self._token_credential).__name__})"


class AnonymousCredential:
    """Public containers; requests are sent unsigned."""

    def authorize(self) -> Any:
        return None

    def __repr__(self) -> str:
        return "AnonymousCredential()"


class CredentialsManager(Protocol):
    """Resolve the credential for a storage account by name."""

    def get_credentials(self, account_name: str) -> Credential:
        """Return a credential or raise :class:`CredentialError`."""


def credential_for_integration(integration: IntegrationConfig) -> Credential:
    """Select the credential variant implied by an integration's settings."""

    if integration.account_key:
        return SharedKeyCredential(integration.account_name, integration.account_key)
    if integration.sas_token:
        return SasTokenCredential(integration.sas_token)
    if integration.aad_credential is not None:
        aad = integration.aad_credential
        try:
            if aad.is_client_secret:
                from azure.identity import ClientSecretCredential

                return TokenCredentialAdapter(
                    ClientSecretCredential(
                        tenant_id=aad.tenant_id,
                        client_id=aad.client_id,
                        client_secret=aad.client_secret,
                    )
                )
            from azure.identity import DefaultAzureCredential

            return TokenCredentialAdapter(DefaultAzureCredential())
        except Exception as exc:
            raise CredentialError(
                f"Unable to create Azure AD credential for account {integration.account_name}",
                cause=exc,
            ) from exc
    return AnonymousCredential()


class DefaultCredentialsManager:
    """Credentials manager backed by the configured integrations.

    Credentials are built on first request for an account and reused after.
    """

    def __init__(self, integrations: Iterable[IntegrationConfig]) -> None:
        self._integrations: Dict[str, IntegrationConfig] = {
            integration.account_name: integration for integration in integrations
        }
        self._cache: Dict[str, Credential] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_integrations(cls, integrations: Iterable[IntegrationConfig]) -> "DefaultCredentialsManager":
        return cls(integrations)

    def get_credentials(self, account_name: str) -> Credential:
        with self._lock:
            cached: Optional[Credential] = self._cache.get(account_name)
            if cached is not None:
                return cached
            integration = self._integrations.get(account_name)
            if integration is None:
                raise CredentialError(
                    f"No azureBlobStorage integration configured for account {account_name}"
                )
            credential = credential_for_integration(integration)
            LOGGER.debug("Resolved %r for account %s", credential, account_name)
            self._cache[account_name] = credential
            return credential


__all__ = [
    "AnonymousCredential",
    "Credential",
    "CredentialsManager",
    "DefaultCredentialsManager",
    "SasTokenCredential",
    "SharedKeyCredential",
    "TokenCredentialAdapter",
    "credential_for_integration",
]
