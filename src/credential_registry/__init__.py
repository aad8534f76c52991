"""credential-registry - non-transferable credential issuance, revocation and verification.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import credential_registry
>>> credential_registry.__version__
'0.1.0'

Quick start
-----------
::

    from credential_registry import AuthorityKey, CredentialRegistry

    authority = AuthorityKey.generate()
    registry = CredentialRegistry(authority=authority.identity)

    badge = registry.create_credential_type(
        authority.context(), "Badge", "Completed onboarding", revocable=True
    ).unwrap()
    registry.issue_credential(authority.context(), badge, "did:key:zHolder")
    assert registry.has_credential("did:key:zHolder", badge)
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ------------------------------------------------------------------
# Registry core
# ------------------------------------------------------------------
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
    RegistryStore,
    RegistryStoreError,
)

# ------------------------------------------------------------------
# Audit log
# ------------------------------------------------------------------
from credential_registry.audit import RegistryAuditLogger, RegistryEvent

# ------------------------------------------------------------------
# Keys and signed calls
# ------------------------------------------------------------------
from credential_registry.signing import (
    AuthorityKey,
    SignatureVerificationError,
    SignedCall,
    apply_signed_call,
    verify_signed_call,
)

__all__ = [
    "__version__",
    # registry
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
    "RegistryStore",
    "RegistryStoreError",
    # audit
    "RegistryAuditLogger",
    "RegistryEvent",
    # signing
    "AuthorityKey",
    "SignatureVerificationError",
    "SignedCall",
    "apply_signed_call",
    "verify_signed_call",
]
