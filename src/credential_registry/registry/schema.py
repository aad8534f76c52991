"""Pydantic models for validated registry input and persisted snapshots.

The registry core accepts whatever text it is given. These models enforce
the record bounds at the edges: request models validate CLI input before a
call reaches the registry, and snapshot models validate state files before a
store hands them to the registry.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from credential_registry.registry.models import (
    MAX_DESCRIPTION_LENGTH,
    MAX_METADATA_URI_LENGTH,
    MAX_NAME_LENGTH,
    CredentialType,
    IssuanceRecord,
)

SNAPSHOT_VERSION: int = 1


class CreateCredentialTypeRequest(BaseModel):
    """Input for creating a credential type."""

    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)
    description: str = Field(max_length=MAX_DESCRIPTION_LENGTH)
    metadata_uri: Optional[str] = Field(default=None, max_length=MAX_METADATA_URI_LENGTH)
    revocable: bool = True

    @field_validator("name")
    @classmethod
    def _name_is_ascii(cls, value: str) -> str:
        if not value.isascii():
            raise ValueError("name must contain ASCII characters only")
        return value


class CredentialTargetRequest(BaseModel):
    """Input naming one credential type and one holder."""

    credential_type_id: int = Field(ge=0)
    holder: str = Field(min_length=1)


class CredentialTypeSnapshot(BaseModel):
    """Persisted shape of a :class:`CredentialType`."""

    id: int = Field(ge=0)
    name: str = Field(max_length=MAX_NAME_LENGTH)
    description: str = Field(max_length=MAX_DESCRIPTION_LENGTH)
    issuer: str
    metadata_uri: Optional[str] = Field(default=None, max_length=MAX_METADATA_URI_LENGTH)
    revocable: bool

    def to_record(self) -> CredentialType:
        return CredentialType(**self.model_dump())


class IssuanceSnapshot(BaseModel):
    """Persisted shape of an :class:`IssuanceRecord`."""

    holder: str
    credential_type_id: int = Field(ge=0)
    issue_height: int = Field(default=0, ge=0)
    issue_time: int = Field(default=0, ge=0)
    revoked: bool = False

    def to_record(self) -> IssuanceRecord:
        return IssuanceRecord(**self.model_dump())


class RegistrySnapshot(BaseModel):
    """Persisted shape of the complete registry state.

    Validation rejects snapshots that break the registry invariants: type
    ids must be exactly ``0 .. next_credential_id - 1``, and every issuance
    must reference an existing type and be unique per holder and type.
    """

    version: int = SNAPSHOT_VERSION
    authority: str = Field(min_length=1)
    registry_id: str = Field(min_length=1)
    next_credential_id: int = Field(default=0, ge=0)
    sequence: int = Field(default=0, ge=0)
    credential_types: list[CredentialTypeSnapshot] = Field(default_factory=list)
    issuances: list[IssuanceSnapshot] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_invariants(self) -> "RegistrySnapshot":
        if self.version != SNAPSHOT_VERSION:
            raise ValueError(f"unsupported snapshot version {self.version}")
        ids = sorted(t.id for t in self.credential_types)
        if ids != list(range(self.next_credential_id)):
            raise ValueError(
                "credential type ids must be dense from 0 to next_credential_id - 1"
            )
        revocable = {t.id: t.revocable for t in self.credential_types}
        seen: set[tuple[str, int]] = set()
        for issuance in self.issuances:
            key = (issuance.holder, issuance.credential_type_id)
            if issuance.credential_type_id not in revocable:
                raise ValueError(
                    f"issuance for holder {issuance.holder!r} references unknown "
                    f"credential type {issuance.credential_type_id}"
                )
            if issuance.revoked and not revocable[issuance.credential_type_id]:
                raise ValueError(
                    f"issuance {key!r} is revoked but its credential type is not revocable"
                )
            if key in seen:
                raise ValueError(f"duplicate issuance record for {key!r}")
            seen.add(key)
        return self


__all__ = [
    "CreateCredentialTypeRequest",
    "CredentialTargetRequest",
    "CredentialTypeSnapshot",
    "IssuanceSnapshot",
    "RegistrySnapshot",
    "SNAPSHOT_VERSION",
]
