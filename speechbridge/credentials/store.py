"""Secure, provider-keyed secret storage backed by the platform keyring."""

from typing import Optional

import keyring
import structlog
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from ..providers.errors import SecretWriteError
from ..providers.types import ProviderKind


logger = structlog.get_logger()

DEFAULT_SERVICE_NAME = "com.speechbridge.providers"


class CredentialStore:
    """
    Stores one API key per provider in the host's secure secret facility.

    Entries live under ``service_name`` with the account ``"{provider}_api_key"``.
    Secrets are never logged or returned through any other channel.
    """

    def __init__(
        self,
        service_name: str = DEFAULT_SERVICE_NAME,
        backend: Optional[KeyringBackend] = None,
    ):
        self.service_name = service_name
        self._backend = backend

    @property
    def backend(self) -> KeyringBackend:
        return self._backend or keyring.get_keyring()

    @staticmethod
    def account_for(provider: ProviderKind) -> str:
        return f"{provider.value}_api_key"

    def store(self, secret: str, provider: ProviderKind) -> None:
        """Store ``secret`` for ``provider``, replacing any existing entry."""
        account = self.account_for(provider)
        try:
            self._delete_entry(account)
            self.backend.set_password(self.service_name, account, secret)
        except KeyringError as e:
            logger.error("Failed to store credential", provider=provider.value, error=type(e).__name__)
            raise SecretWriteError(provider=provider) from e

        logger.info("Stored credential", provider=provider.value)

    def retrieve(self, provider: ProviderKind) -> Optional[str]:
        """Return the stored secret for ``provider`` or ``None``."""
        try:
            return self.backend.get_password(self.service_name, self.account_for(provider))
        except KeyringError as e:
            logger.warning("Failed to read credential", provider=provider.value, error=type(e).__name__)
            return None

    def delete(self, provider: ProviderKind) -> None:
        """Remove the secret for ``provider``; a missing entry is not an error."""
        try:
            self._delete_entry(self.account_for(provider))
        except KeyringError as e:
            logger.error("Failed to delete credential", provider=provider.value, error=type(e).__name__)
            raise SecretWriteError(provider=provider) from e

        logger.info("Deleted credential", provider=provider.value)

    def exists(self, provider: ProviderKind) -> bool:
        return self.retrieve(provider) is not None

    def _delete_entry(self, account: str) -> None:
        if self.backend.get_password(self.service_name, account) is None:
            return
        try:
            self.backend.delete_password(self.service_name, account)
        except PasswordDeleteError:
            # Removed concurrently between the lookup and the delete
            pass
