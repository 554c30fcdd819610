"""Credential storage."""

from .store import CredentialStore

__all__ = ["CredentialStore"]
