"""Persistent state helpers for userprov."""
from __future__ import annotations

from .credentials import CredentialStore, CredentialStoreError

__all__ = ["CredentialStore", "CredentialStoreError"]
