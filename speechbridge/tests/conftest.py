"""Shared fixtures: in-memory keyring backends and scriptable provider adapters."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from speechbridge.credentials.store import CredentialStore
from speechbridge.health.tracker import HealthTracker
from speechbridge.providers.base import ProviderAdapter
from speechbridge.providers.types import ProviderKind, ServiceKind


class MemoryKeyring(KeyringBackend):
    """Keyring backend that keeps secrets in a dict."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.passwords: Dict[tuple, str] = {}

    def set_password(self, service, username, password):
        self.passwords[(service, username)] = password

    def get_password(self, service, username):
        return self.passwords.get((service, username))

    def delete_password(self, service, username):
        if (service, username) not in self.passwords:
            raise PasswordDeleteError("not found")
        del self.passwords[(service, username)]


class LockedKeyring(MemoryKeyring):
    """Keyring backend whose writes are refused."""

    def set_password(self, service, username, password):
        raise KeyringError("keychain locked")

    def delete_password(self, service, username):
        raise KeyringError("keychain locked")


class UndeletableKeyring(MemoryKeyring):
    """Keyring backend that stores secrets but refuses to delete them."""

    def delete_password(self, service, username):
        raise KeyringError("keychain locked")


class FakeAdapter(ProviderAdapter):
    """
    Adapter whose outcomes are scripted per call.

    Each entry in ``outcomes`` is either a value to return or an exception to
    raise; the last entry repeats once the list is exhausted.
    """

    def __init__(self, kind: ProviderKind, configured: bool = True,
                 outcomes: Optional[List[Any]] = None, delay: float = 0.0,
                 credential_store=None, events=None):
        self.kind = kind
        super().__init__(credential_store=credential_store, events=events)
        if kind.requires_secret:
            self._configured = configured
            self._secret = "sk-test" if configured else None
        self.outcomes = list(outcomes or [f"{kind.value} result"])
        self.delay = delay
        self.probe_outcome: Any = True
        self.calls: List[ServiceKind] = []

    async def test_connection(self) -> bool:
        if self.kind.requires_secret:
            self._require_secret()
        if isinstance(self.probe_outcome, BaseException):
            raise self.probe_outcome
        return self.probe_outcome

    async def invoke(self, service: ServiceKind, payload: Any, preferences=None) -> Any:
        self.calls.append(service)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def keyring_backend():
    return MemoryKeyring()


@pytest.fixture
def credential_store(keyring_backend):
    return CredentialStore(service_name="test.speechbridge", backend=keyring_backend)


@pytest.fixture
def health():
    return HealthTracker()


def make_adapters(configured=(), **overrides) -> Dict[ProviderKind, FakeAdapter]:
    """One fake adapter per provider; remote ones configured only if listed."""
    adapters = {}
    for kind in ProviderKind:
        adapters[kind] = overrides.get(kind.value) or FakeAdapter(kind, configured=kind in configured)
    return adapters
