"""Credential registry core.

Quick start
-----------
::

    from credential_registry.registry import CallContext, CredentialRegistry

    registry = CredentialRegistry(authority="did:key:zAuthority")
    authority = CallContext(caller="did:key:zAuthority")

    badge = registry.create_credential_type(
        authority, "Badge", "Completed onboarding", revocable=True
    ).unwrap()
    registry.issue_credential(authority, badge, "did:key:zHolder")
    registry.has_credential("did:key:zHolder", badge)  # True
"""
from __future__ import annotations

from credential_registry.registry.credential_registry import CredentialRegistry
from credential_registry.registry.models import (
    PROVENANCE_UNAVAILABLE,
    CallContext,
    CredentialType,
    IssuanceRecord,
)
from credential_registry.registry.results import CallResult, ErrorKind, RegistryCallError
from credential_registry.registry.store import (
    FilesystemRegistryStore,
    InMemoryRegistryStore,
    RegistryState,
    RegistryStore,
    RegistryStoreError,
    Transaction,
)

__all__ = [
    "CallContext",
    "CallResult",
    "CredentialRegistry",
    "CredentialType",
    "ErrorKind",
    "FilesystemRegistryStore",
    "InMemoryRegistryStore",
    "IssuanceRecord",
    "PROVENANCE_UNAVAILABLE",
    "RegistryCallError",
    "RegistryState",
    "RegistryStore",
    "RegistryStoreError",
    "Transaction",
]
