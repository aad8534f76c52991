#!/usr/bin/env python3
"""Example: Signed calls

The authority signs a call offline; a relayer that holds no keys verifies
the signature and applies the call to a file-backed registry. Each call
commits at most once.

Usage:
    python examples/02_signed_calls.py

Requirements:
    pip install credential-registry
"""
from __future__ import annotations

import json
import tempfile
from pathlib import Path

from credential_registry import (
    AuthorityKey,
    CredentialRegistry,
    FilesystemRegistryStore,
    SignedCall,
    apply_signed_call,
)
from credential_registry.signing import CREATE_CREDENTIAL_TYPE, ISSUE_CREDENTIAL


def main() -> None:
    authority = AuthorityKey.generate()
    holder = "SP2CY5V39NHDPWSXMW9QDT3HC3GD6Q6XX4CFRK9AG"

    with tempfile.TemporaryDirectory() as tmp:
        state_file = Path(tmp) / "registry.json"
        registry = CredentialRegistry(
            store=FilesystemRegistryStore(state_file, authority=authority.identity)
        )

        # Step 1: Signed calls name the registry and the sequence they expect,
        # and travel as plain JSON
        registry_id = registry.registry_id
        calls = [
            authority.sign_call(
                CREATE_CREDENTIAL_TYPE, registry_id, 0, name="Badge", description="A badge"
            ),
            authority.sign_call(
                ISSUE_CREDENTIAL, registry_id, 1, credential_type_id=0, holder=holder
            ),
        ]
        wire = [json.dumps(call.to_dict()) for call in calls]

        # Step 2: The relayer verifies and applies them in order
        for height, payload in enumerate(wire, start=1):
            call = SignedCall.from_dict(json.loads(payload))
            result = apply_signed_call(registry, call, block_height=height)
            print(f"{call.operation}: {result.to_dict()}")

        # Step 3: Replaying a call that already committed changes nothing
        replayed = apply_signed_call(registry, SignedCall.from_dict(json.loads(wire[0])))
        print(f"replay: {replayed.to_dict()}")

        # Step 4: State survives a reopen
        reopened = CredentialRegistry(store=FilesystemRegistryStore(state_file))
        print(f"Holder has credential: {reopened.has_credential(holder, 0)}")


if __name__ == "__main__":
    main()
