"""Registry state storage with explicit transaction boundaries.

:class:`RegistryStore` defines the storage contract. Every registry
operation opens a :class:`Transaction`, which works on a private copy of
the committed state. Committing swaps the copy in (and persists it, for
durable stores); rolling back discards it. A failed call therefore leaves
no partial update behind.

Two backends are provided: :class:`InMemoryRegistryStore` and
:class:`FilesystemRegistryStore`, which keeps a validated JSON snapshot on
disk.
"""
from __future__ import annotations

import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType

from pydantic import ValidationError

from credential_registry.registry.models import CredentialType, IssuanceRecord
from credential_registry.registry.schema import (
    CredentialTypeSnapshot,
    IssuanceSnapshot,
    RegistrySnapshot,
)

logger = logging.getLogger(__name__)


class RegistryStoreError(RuntimeError):
    """Raised when registry state cannot be loaded, validated or saved."""


@dataclass
class RegistryState:
    """The complete mutable state of one registry.

    Parameters
    ----------
    authority:
        Identity of the registry authority. Fixed when the state is created.
    registry_id:
        Random identifier of this registry, fixed at creation. Signed calls
        name it so they cannot be applied to another registry.
    credential_types:
        Credential types keyed by id.
    issuances:
        Issuance records keyed by ``(holder, credential_type_id)``.
    next_credential_id:
        Id the next created credential type receives.
    sequence:
        Number of committed mutating calls.
    """

    authority: str
    registry_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    credential_types: dict[int, CredentialType] = field(default_factory=dict)
    issuances: dict[tuple[str, int], IssuanceRecord] = field(default_factory=dict)
    next_credential_id: int = 0
    sequence: int = 0

    def copy(self) -> "RegistryState":
        """Return a working copy. Records are immutable so the maps are copied shallowly."""
        return RegistryState(
            authority=self.authority,
            registry_id=self.registry_id,
            credential_types=dict(self.credential_types),
            issuances=dict(self.issuances),
            next_credential_id=self.next_credential_id,
            sequence=self.sequence,
        )

    def to_snapshot(self) -> RegistrySnapshot:
        return RegistrySnapshot(
            authority=self.authority,
            registry_id=self.registry_id,
            next_credential_id=self.next_credential_id,
            sequence=self.sequence,
            credential_types=[
                CredentialTypeSnapshot(**self.credential_types[i].to_dict())
                for i in sorted(self.credential_types)
            ],
            issuances=[
                IssuanceSnapshot(**self.issuances[key].to_dict())
                for key in sorted(self.issuances, key=lambda k: (k[1], k[0]))
            ],
        )

    @classmethod
    def from_snapshot(cls, snapshot: RegistrySnapshot) -> "RegistryState":
        types = [t.to_record() for t in snapshot.credential_types]
        issuances = [i.to_record() for i in snapshot.issuances]
        return cls(
            authority=snapshot.authority,
            registry_id=snapshot.registry_id,
            credential_types={t.id: t for t in types},
            issuances={i.key: i for i in issuances},
            next_credential_id=snapshot.next_credential_id,
            sequence=snapshot.sequence,
        )


class Transaction:
    """One all-or-nothing unit of work against a :class:`RegistryStore`.

    Used as a context manager. Leaving the block normally commits unless
    :meth:`rollback` was called; leaving it with an exception rolls back.

    Example
    -------
    ::

        with store.transaction() as txn:
            txn.state.next_credential_id += 1
            if something_is_wrong:
                txn.rollback()
    """

    def __init__(self, store: "RegistryStore", state: RegistryState) -> None:
        self._store = store
        self.state = state
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def commit(self) -> None:
        """Make the working state the store's committed state."""
        if self._closed:
            raise RegistryStoreError("transaction is already closed")
        self._store.save_state(self.state)
        self._closed = True

    def rollback(self) -> None:
        """Discard every change made in this transaction."""
        self._closed = True

    def __enter__(self) -> "Transaction":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._closed:
            return
        if exc_type is not None:
            self.rollback()
        else:
            self.commit()


class RegistryStore(ABC):
    """Abstract base class for registry state backends."""

    @property
    def authority(self) -> str:
        """Identity of the registry authority recorded in the state."""
        return self.load_state().authority

    @abstractmethod
    def load_state(self) -> RegistryState:
        """Return the committed state.

        Callers must not mutate the returned object; use
        :meth:`transaction` to change state.
        """

    @abstractmethod
    def save_state(self, state: RegistryState) -> None:
        """Replace the committed state with *state*.

        Raises
        ------
        RegistryStoreError
            If the state cannot be persisted. The previously committed state
            stays in effect.
        """

    def transaction(self) -> Transaction:
        """Begin a transaction over a private copy of the committed state."""
        return Transaction(self, self.load_state().copy())


class InMemoryRegistryStore(RegistryStore):
    """Volatile store; state lives for as long as the object does.

    Parameters
    ----------
    authority:
        Identity of the registry authority.
    """

    def __init__(self, authority: str) -> None:
        self._state = RegistryState(authority=authority)

    def load_state(self) -> RegistryState:
        return self._state

    def save_state(self, state: RegistryState) -> None:
        self._state = state


class FilesystemRegistryStore(RegistryStore):
    """Store that persists the state as a JSON snapshot file.

    Writes go to a sibling temporary file which then replaces the snapshot,
    so a crash mid-write never leaves a truncated state file.

    Parameters
    ----------
    path:
        Location of the JSON snapshot.
    authority:
        Identity of the registry authority. Required when *path* does not
        exist yet. When *path* exists and *authority* is given, it must
        match the authority recorded in the file.

    Raises
    ------
    RegistryStoreError
        If the file is unreadable or invalid, if it belongs to a different
        authority, or if it does not exist and no authority was given.
    """

    def __init__(self, path: Path, authority: str | None = None) -> None:
        self._path = path
        if path.exists():
            self._state = self._read(path)
            if authority is not None and authority != self._state.authority:
                raise RegistryStoreError(
                    f"State file {str(path)!r} belongs to authority "
                    f"{self._state.authority!r}, not {authority!r}."
                )
        elif authority is None:
            raise RegistryStoreError(
                f"No registry state at {str(path)!r}. "
                "Create one by passing the authority identity."
            )
        else:
            self._state = RegistryState(authority=authority)

    def load_state(self) -> RegistryState:
        return self._state

    def save_state(self, state: RegistryState) -> None:
        try:
            snapshot = state.to_snapshot()
        except ValidationError as exc:
            raise RegistryStoreError(f"Registry state failed validation: {exc}") from exc
        payload = json.dumps(snapshot.model_dump(), indent=2)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            raise RegistryStoreError(
                f"Could not write registry state to {str(self._path)!r}: {exc}"
            ) from exc
        self._state = state
        logger.debug("Saved registry state to %s (sequence=%d)", self._path, state.sequence)

    @staticmethod
    def _read(path: Path) -> RegistryState:
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise RegistryStoreError(f"Could not read {str(path)!r}: {exc}") from exc
        try:
            snapshot = RegistrySnapshot.model_validate_json(raw)
        except ValidationError as exc:
            raise RegistryStoreError(f"Invalid registry state in {str(path)!r}: {exc}") from exc
        logger.debug("Loaded registry state from %s", path)
        return RegistryState.from_snapshot(snapshot)


__all__ = [
    "FilesystemRegistryStore",
    "InMemoryRegistryStore",
    "RegistryState",
    "RegistryStore",
    "RegistryStoreError",
    "Transaction",
]
