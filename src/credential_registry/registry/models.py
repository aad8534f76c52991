"""Registry records: credential types, issuance records and call contexts.

Records are frozen dataclasses. A revocation replaces the stored
:class:`IssuanceRecord` with a copy whose ``revoked`` flag is set, so a
record object handed out by the registry never changes underneath its
holder.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

# Text bounds of the persisted record shapes. The registry core does not
# enforce them; the validation schema and the stores do.
MAX_NAME_LENGTH: int = 64
MAX_DESCRIPTION_LENGTH: int = 256
MAX_METADATA_URI_LENGTH: int = 256

# Provenance value recorded when the host cannot supply a height or time.
PROVENANCE_UNAVAILABLE: int = 0


@dataclass(frozen=True)
class CredentialType:
    """A class of credential, e.g. a degree or a badge.

    Parameters
    ----------
    id:
        Sequential identifier, assigned from 0.
    name:
        Short display name.
    description:
        Longer description of what holding the credential means.
    issuer:
        Identity of the registry authority that created the type.
    metadata_uri:
        Optional pointer to off-chain descriptive data.
    revocable:
        Whether issued credentials of this type can later be revoked.
        Fixed at creation.
    """

    id: int
    name: str
    description: str
    issuer: str
    metadata_uri: Optional[str] = None
    revocable: bool = True

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "issuer": self.issuer,
            "metadata_uri": self.metadata_uri,
            "revocable": self.revocable,
        }


@dataclass(frozen=True)
class IssuanceRecord:
    """Binding of one credential type to one holder identity.

    Parameters
    ----------
    holder:
        Identity the credential was issued to.
    credential_type_id:
        The :class:`CredentialType` this record binds.
    issue_height:
        Host-supplied ordinal at issuance, or ``PROVENANCE_UNAVAILABLE``.
    issue_time:
        Host-supplied Unix timestamp at issuance, or ``PROVENANCE_UNAVAILABLE``.
    revoked:
        ``True`` once the credential has been revoked. Never reverts.
    """

    holder: str
    credential_type_id: int
    issue_height: int = PROVENANCE_UNAVAILABLE
    issue_time: int = PROVENANCE_UNAVAILABLE
    revoked: bool = False

    @property
    def key(self) -> tuple[str, int]:
        return (self.holder, self.credential_type_id)

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary."""
        return {
            "holder": self.holder,
            "credential_type_id": self.credential_type_id,
            "issue_height": self.issue_height,
            "issue_time": self.issue_time,
            "revoked": self.revoked,
        }


@dataclass(frozen=True)
class CallContext:
    """Who is calling, and the provenance the host can vouch for.

    Parameters
    ----------
    caller:
        Identity of the party making the call.
    block_height:
        Ordinal of the call in the host's total order, if known.
    block_time:
        Unix timestamp of the call as seen by the host, if known.
    expected_sequence:
        Registry sequence the call was prepared against. When set, the
        call is refused with ``ALREADY_EXISTS`` unless the registry is
        still at exactly that sequence, so one prepared call commits at
        most once.
    """

    caller: str
    block_height: Optional[int] = None
    block_time: Optional[int] = None
    expected_sequence: Optional[int] = None

    @property
    def issue_height(self) -> int:
        if self.block_height is None:
            return PROVENANCE_UNAVAILABLE
        return self.block_height

    @property
    def issue_time(self) -> int:
        if self.block_time is None:
            return PROVENANCE_UNAVAILABLE
        return self.block_time


__all__ = [
    "CallContext",
    "CredentialType",
    "IssuanceRecord",
    "MAX_DESCRIPTION_LENGTH",
    "MAX_METADATA_URI_LENGTH",
    "MAX_NAME_LENGTH",
    "PROVENANCE_UNAVAILABLE",
]
