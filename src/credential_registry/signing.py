"""Ed25519 caller keys, ``did:key`` identities and signed registry calls.

Registry identities are ``did:key`` strings derived from Ed25519 public
keys:

1. Take the 32 raw public key bytes.
2. Prepend the Ed25519 multicodec prefix ``0xed 0x01``.
3. Encode with base58btc and prefix ``z`` (multibase).
4. Assemble ``did:key:z<encoded>``.

Because the public key is recoverable from the identity, a signed call
carries everything needed to authenticate its caller. A host that accepts
calls from the outside verifies them with :func:`verify_signed_call` and
passes the resulting :class:`CallContext` to the registry;
:func:`apply_signed_call` does both steps.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)
from pydantic import ValidationError

from credential_registry.registry.credential_registry import CredentialRegistry
from credential_registry.registry.models import CallContext
from credential_registry.registry.results import CallResult
from credential_registry.registry.schema import (
    CreateCredentialTypeRequest,
    CredentialTargetRequest,
)

DID_KEY_PREFIX: str = "did:key:z"

_ED25519_MULTICODEC_PREFIX: bytes = b"\xed\x01"
_BASE58_ALPHABET: str = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

CREATE_CREDENTIAL_TYPE = "create_credential_type"
ISSUE_CREDENTIAL = "issue_credential"
REVOKE_CREDENTIAL = "revoke_credential"
SIGNED_OPERATIONS = frozenset({CREATE_CREDENTIAL_TYPE, ISSUE_CREDENTIAL, REVOKE_CREDENTIAL})


class SignatureVerificationError(ValueError):
    """Raised when a signed call is malformed or its signature does not verify."""


# ---------------------------------------------------------------------------
# did:key encoding
# ---------------------------------------------------------------------------


def _base58btc_encode(data: bytes) -> str:
    n = int.from_bytes(data, "big")
    result: list[str] = []
    while n > 0:
        n, remainder = divmod(n, 58)
        result.append(_BASE58_ALPHABET[remainder])
    # Leading zero bytes are encoded as '1'
    for byte in data:
        if byte != 0:
            break
        result.append("1")
    return "".join(reversed(result))


def _base58btc_decode(encoded: str) -> bytes:
    n = 0
    for char in encoded:
        index = _BASE58_ALPHABET.find(char)
        if index < 0:
            raise ValueError(f"Invalid base58btc character {char!r} in {encoded!r}")
        n = n * 58 + index
    body = n.to_bytes((n.bit_length() + 7) // 8, "big") if n > 0 else b""
    pad_size = len(encoded) - len(encoded.lstrip("1"))
    return b"\x00" * pad_size + body


def identity_for_public_key(public_key: bytes) -> str:
    """Return the ``did:key`` identity of a raw 32-byte Ed25519 public key."""
    if len(public_key) != 32:
        raise ValueError(f"Ed25519 public keys are 32 bytes, got {len(public_key)}")
    return DID_KEY_PREFIX + _base58btc_encode(_ED25519_MULTICODEC_PREFIX + public_key)


def public_key_for_identity(identity: str) -> bytes:
    """Decode the raw Ed25519 public key from a ``did:key`` identity.

    Raises
    ------
    ValueError
        If *identity* is not an Ed25519 ``did:key``.
    """
    if not identity.startswith(DID_KEY_PREFIX):
        raise ValueError(f"Not a did:key identity: {identity!r}")
    decoded = _base58btc_decode(identity[len(DID_KEY_PREFIX):])
    if not decoded.startswith(_ED25519_MULTICODEC_PREFIX) or len(decoded) != 34:
        raise ValueError(f"Not an Ed25519 did:key identity: {identity!r}")
    return decoded[len(_ED25519_MULTICODEC_PREFIX):]


# ---------------------------------------------------------------------------
# Signed calls
# ---------------------------------------------------------------------------


def canonical_payload(
    operation: str, registry_id: str, sequence: int, params: dict[str, object]
) -> bytes:
    """Return the exact bytes that are signed for a call."""
    return json.dumps(
        {
            "operation": operation,
            "params": params,
            "registry_id": registry_id,
            "sequence": sequence,
        },
        sort_keys=True,
        separators=(",", ":"),
    ).encode("utf-8")


@dataclass(frozen=True)
class SignedCall:
    """A registry call signed by its caller.

    A call is bound to one registry and to the sequence that registry was
    at when the call was prepared. It commits at most once: after any
    other call commits, or after it commits itself, the sequence no longer
    matches.

    Parameters
    ----------
    operation:
        Name of the mutating registry operation.
    signer:
        ``did:key`` identity of the signer.
    signature:
        Hex-encoded Ed25519 signature over :func:`canonical_payload`.
    registry_id:
        :attr:`CredentialRegistry.registry_id` of the target registry.
    sequence:
        :attr:`CredentialRegistry.sequence` the call expects to find.
    params:
        Keyword arguments of the operation, excluding the call context.
    """

    operation: str
    signer: str
    signature: str
    registry_id: str
    sequence: int
    params: dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "operation": self.operation,
            "registry_id": self.registry_id,
            "sequence": self.sequence,
            "params": dict(self.params),
            "signer": self.signer,
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "SignedCall":
        """Build a call from its dictionary form.

        Raises
        ------
        SignatureVerificationError
            If a required field is missing or has the wrong type.
        """
        try:
            operation = data["operation"]
            signer = data["signer"]
            signature = data["signature"]
            registry_id = data["registry_id"]
            sequence = data["sequence"]
            params = data.get("params", {})
        except KeyError as exc:
            raise SignatureVerificationError(f"Signed call is missing field {exc}") from None
        if not (
            isinstance(operation, str)
            and isinstance(signer, str)
            and isinstance(signature, str)
            and isinstance(registry_id, str)
            and isinstance(sequence, int)
            and not isinstance(sequence, bool)
            and isinstance(params, dict)
        ):
            raise SignatureVerificationError("Signed call fields have the wrong types.")
        return cls(
            operation=operation,
            signer=signer,
            signature=signature,
            registry_id=registry_id,
            sequence=sequence,
            params=params,
        )


class AuthorityKey:
    """An Ed25519 signing key and the registry identity it controls.

    Example
    -------
    ::

        key = AuthorityKey.generate()
        registry = CredentialRegistry(authority=key.identity)
        registry.create_credential_type(key.context(), "Badge", "A badge")
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key
        self._public_bytes = private_key.public_key().public_bytes(
            Encoding.Raw, PublicFormat.Raw
        )

    @classmethod
    def generate(cls) -> "AuthorityKey":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_private_bytes(cls, private_bytes: bytes) -> "AuthorityKey":
        """Load a key from its 32-byte raw private form."""
        return cls(Ed25519PrivateKey.from_private_bytes(private_bytes))

    @classmethod
    def load(cls, path: Path) -> "AuthorityKey":
        """Load a PKCS#8 PEM private key written by :meth:`save`.

        Raises
        ------
        ValueError
            If the file does not hold an unencrypted Ed25519 private key.
        """
        key = load_pem_private_key(path.read_bytes(), password=None)
        if not isinstance(key, Ed25519PrivateKey):
            raise ValueError(f"{str(path)!r} does not contain an Ed25519 private key")
        return cls(key)

    def save(self, path: Path) -> None:
        """Write the private key to *path* as unencrypted PKCS#8 PEM."""
        path.parent.mkdir(parents=True, exist_ok=True)
        pem = self._private_key.private_bytes(
            Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
        )
        path.write_bytes(pem)
        path.chmod(0o600)

    @property
    def public_key(self) -> bytes:
        return self._public_bytes

    @property
    def identity(self) -> str:
        return identity_for_public_key(self._public_bytes)

    def sign(self, data: bytes) -> bytes:
        return self._private_key.sign(data)

    def sign_call(
        self, operation: str, registry_id: str, sequence: int, **params: object
    ) -> SignedCall:
        """Sign a registry call for the registry *registry_id* at *sequence*."""
        signature = self.sign(canonical_payload(operation, registry_id, sequence, params))
        return SignedCall(
            operation=operation,
            signer=self.identity,
            signature=signature.hex(),
            registry_id=registry_id,
            sequence=sequence,
            params=dict(params),
        )

    def context(
        self, block_height: int | None = None, block_time: int | None = None
    ) -> CallContext:
        """Return a call context naming this key's identity as the caller."""
        return CallContext(
            caller=self.identity, block_height=block_height, block_time=block_time
        )


def verify_signed_call(
    call: SignedCall,
    block_height: int | None = None,
    block_time: int | None = None,
) -> CallContext:
    """Authenticate a signed call and return the signer's call context.

    The context carries the call's sequence, so the registry refuses it
    unless it is still at that sequence.

    Raises
    ------
    SignatureVerificationError
        If the signer is not an Ed25519 ``did:key``, the signature is not
        hex, or the signature does not match the call.
    """
    try:
        public_bytes = public_key_for_identity(call.signer)
        signature = bytes.fromhex(call.signature)
    except ValueError as exc:
        raise SignatureVerificationError(str(exc)) from exc

    public_key = Ed25519PublicKey.from_public_bytes(public_bytes)
    try:
        public_key.verify(
            signature,
            canonical_payload(call.operation, call.registry_id, call.sequence, call.params),
        )
    except InvalidSignature:
        raise SignatureVerificationError(
            f"Signature by {call.signer!r} does not match the {call.operation!r} call."
        ) from None
    return CallContext(
        caller=call.signer,
        block_height=block_height,
        block_time=block_time,
        expected_sequence=call.sequence,
    )


def apply_signed_call(
    registry: CredentialRegistry,
    call: SignedCall,
    block_height: int | None = None,
    block_time: int | None = None,
) -> CallResult:
    """Verify *call* and run it against *registry*.

    Raises
    ------
    SignatureVerificationError
        If the signature does not verify, the call names another registry,
        the operation is unknown, or its parameters fail validation.
        Business-rule failures, including a call whose sequence is no
        longer current, are returned as a failed :class:`CallResult`.
    """
    ctx = verify_signed_call(call, block_height=block_height, block_time=block_time)
    if call.registry_id != registry.registry_id:
        raise SignatureVerificationError(
            f"Call was signed for registry {call.registry_id!r}, "
            f"not {registry.registry_id!r}."
        )
    if call.operation not in SIGNED_OPERATIONS:
        raise SignatureVerificationError(f"Unknown registry operation {call.operation!r}.")

    try:
        if call.operation == CREATE_CREDENTIAL_TYPE:
            create = CreateCredentialTypeRequest.model_validate(call.params)
            return registry.create_credential_type(
                ctx,
                name=create.name,
                description=create.description,
                metadata_uri=create.metadata_uri,
                revocable=create.revocable,
            )
        target = CredentialTargetRequest.model_validate(call.params)
    except ValidationError as exc:
        raise SignatureVerificationError(
            f"Invalid parameters for {call.operation!r}: {exc}"
        ) from exc

    if call.operation == ISSUE_CREDENTIAL:
        return registry.issue_credential(ctx, target.credential_type_id, target.holder)
    return registry.revoke_credential(ctx, target.credential_type_id, target.holder)


__all__ = [
    "AuthorityKey",
    "CREATE_CREDENTIAL_TYPE",
    "DID_KEY_PREFIX",
    "ISSUE_CREDENTIAL",
    "REVOKE_CREDENTIAL",
    "SignatureVerificationError",
    "SignedCall",
    "apply_signed_call",
    "canonical_payload",
    "identity_for_public_key",
    "public_key_for_identity",
    "verify_signed_call",
]
