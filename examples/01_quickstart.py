#!/usr/bin/env python3
"""Example: Quickstart

Creates an authority key and an in-memory registry, then walks one
credential through issuance, verification and revocation.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install credential-registry
"""
from __future__ import annotations

import credential_registry
from credential_registry import AuthorityKey, CredentialRegistry


def main() -> None:
    print(f"credential-registry version: {credential_registry.__version__}")

    # Step 1: The authority key decides who may mutate the registry
    authority = AuthorityKey.generate()
    registry = CredentialRegistry(authority=authority.identity)
    print(f"Authority: {authority.identity}")

    # Step 2: Define a revocable credential type
    badge = registry.create_credential_type(
        authority.context(),
        name="Clarity Developer",
        description="Certified Clarity programming skills",
        metadata_uri="ipfs://QmExample",
        revocable=True,
    ).unwrap()
    print(f"Created credential type {badge}")

    # Step 3: Issue it to a holder and verify
    holder = AuthorityKey.generate().identity
    registry.issue_credential(authority.context(), badge, holder)
    print(f"Holder has credential: {registry.has_credential(holder, badge)}")

    # Step 4: Revoke and verify again
    registry.revoke_credential(authority.context(), badge, holder)
    print(f"Holder has credential after revocation: {registry.has_credential(holder, badge)}")
    print(f"Revoked: {registry.is_credential_revoked(holder, badge)}")

    # Step 5: Anyone else is turned away
    outsider = AuthorityKey.generate()
    result = registry.issue_credential(outsider.context(), badge, outsider.identity)
    print(f"Outsider issue attempt: error {result.code} ({result.reason})")


if __name__ == "__main__":
    main()
