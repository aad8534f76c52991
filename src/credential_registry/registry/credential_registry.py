"""CredentialRegistry - issuance, revocation and verification of credentials.

A single registry authority defines credential types and issues them to
holder identities. Issued credentials are bound to their holder and cannot
be transferred. Anyone may query whether a holder holds a credential or
whether it was revoked.

Mutating operations take an explicit :class:`CallContext` and return a
:class:`CallResult`. Each runs as one transaction against the registry's
store: on any failed precondition nothing is written. Audit events are
written while the registry lock is held, so the audit log lists commits in
the order they happened.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Optional

from credential_registry.audit import RegistryAuditLogger
from credential_registry.registry.models import CallContext, CredentialType, IssuanceRecord
from credential_registry.registry.results import CallResult, ErrorKind
from credential_registry.registry.store import InMemoryRegistryStore, RegistryStore

logger = logging.getLogger(__name__)


class CredentialRegistry:
    """Registry of credential types and the credentials issued from them.

    Thread-safe. Every operation holds the registry lock, so calls are
    applied in one total order and each observes all prior commits.

    Parameters
    ----------
    authority:
        Identity of the registry authority, the only caller allowed to
        mutate state. May be omitted when *store* already records one.
    store:
        State backend. Defaults to a fresh :class:`InMemoryRegistryStore`.
    audit_logger:
        Optional sink for registry events.

    Raises
    ------
    ValueError
        If neither *authority* nor *store* is given, or if both are given
        and name different authorities.

    Example
    -------
    ::

        registry = CredentialRegistry(authority="did:key:zAuthority")
        ctx = CallContext(caller="did:key:zAuthority")
        type_id = registry.create_credential_type(ctx, "Badge", "A badge").unwrap()
        registry.issue_credential(ctx, type_id, "did:key:zHolder")
        assert registry.has_credential("did:key:zHolder", type_id)
    """

    def __init__(
        self,
        authority: str | None = None,
        store: RegistryStore | None = None,
        audit_logger: RegistryAuditLogger | None = None,
    ) -> None:
        if store is None:
            if not authority:
                raise ValueError("An authority identity is required to create a registry.")
            store = InMemoryRegistryStore(authority)
        elif authority is not None and authority != store.authority:
            raise ValueError(
                f"Store belongs to authority {store.authority!r}, not {authority!r}."
            )
        self._store = store
        self._audit = audit_logger
        self._lock = threading.Lock()

    @property
    def authority(self) -> str:
        return self._store.authority

    @property
    def registry_id(self) -> str:
        """Identifier signed calls must name to be applied to this registry."""
        return self._store.load_state().registry_id

    @property
    def sequence(self) -> int:
        """Number of mutating calls committed so far."""
        with self._lock:
            return self._store.load_state().sequence

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_credential_type(
        self,
        ctx: CallContext,
        name: str,
        description: str,
        metadata_uri: str | None = None,
        revocable: bool = True,
    ) -> CallResult[int]:
        """Define a new credential type.

        Returns
        -------
        CallResult[int]
            The newly allocated id on success; ``UNAUTHORIZED`` if the
            caller is not the registry authority.
        """
        with self._lock, self._store.transaction() as txn:
            state = txn.state
            stale = self._check_sequence("create_credential_type", ctx, state.sequence)
            if stale is not None:
                txn.rollback()
                return stale
            if ctx.caller != state.authority:
                txn.rollback()
                return self._reject(
                    "create_credential_type",
                    ctx,
                    ErrorKind.UNAUTHORIZED,
                    "caller is not the registry authority",
                )

            new_id = state.next_credential_id
            state.credential_types[new_id] = CredentialType(
                id=new_id,
                name=name,
                description=description,
                issuer=ctx.caller,
                metadata_uri=metadata_uri,
                revocable=revocable,
            )
            state.next_credential_id = new_id + 1
            state.sequence += 1
            txn.commit()

            logger.info("Created credential type %d (%r, revocable=%s)", new_id, name, revocable)
            if self._audit is not None:
                self._audit.log_type_created(
                    ctx.caller, new_id, name, revocable, sequence=state.sequence
                )
        return CallResult.success(new_id)

    def issue_credential(
        self, ctx: CallContext, credential_type_id: int, holder: str
    ) -> CallResult[bool]:
        """Issue a credential of the given type to *holder*.

        Preconditions are checked in this order: the type exists
        (``NOT_FOUND``), the caller is the authority (``UNAUTHORIZED``), and
        no record exists yet for the holder and type (``ALREADY_EXISTS``,
        also when the existing record is revoked).
        """
        with self._lock, self._store.transaction() as txn:
            state = txn.state
            stale = self._check_sequence(
                "issue_credential", ctx, state.sequence, credential_type_id, holder
            )
            if stale is not None:
                txn.rollback()
                return stale
            if credential_type_id not in state.credential_types:
                txn.rollback()
                return self._reject(
                    "issue_credential",
                    ctx,
                    ErrorKind.NOT_FOUND,
                    f"credential type {credential_type_id} does not exist",
                    credential_type_id,
                    holder,
                )
            if ctx.caller != state.authority:
                txn.rollback()
                return self._reject(
                    "issue_credential",
                    ctx,
                    ErrorKind.UNAUTHORIZED,
                    "caller is not the registry authority",
                    credential_type_id,
                    holder,
                )
            key = (holder, credential_type_id)
            if key in state.issuances:
                txn.rollback()
                return self._reject(
                    "issue_credential",
                    ctx,
                    ErrorKind.ALREADY_EXISTS,
                    f"credential {credential_type_id} was already issued to {holder!r}",
                    credential_type_id,
                    holder,
                )

            record = IssuanceRecord(
                holder=holder,
                credential_type_id=credential_type_id,
                issue_height=ctx.issue_height,
                issue_time=ctx.issue_time,
            )
            state.issuances[key] = record
            state.sequence += 1
            txn.commit()

            logger.info("Issued credential %d to %s", credential_type_id, holder)
            if self._audit is not None:
                self._audit.log_issued(
                    ctx.caller,
                    credential_type_id,
                    holder,
                    record.issue_height,
                    record.issue_time,
                    sequence=state.sequence,
                )
        return CallResult.success(True)

    def revoke_credential(
        self, ctx: CallContext, credential_type_id: int, holder: str
    ) -> CallResult[bool]:
        """Revoke the credential of the given type held by *holder*.

        Preconditions are checked in this order: the caller is the
        authority (``UNAUTHORIZED``), the type exists (``NOT_FOUND``), the
        type is revocable (``UNAUTHORIZED``), and a record exists
        (``NOT_FOUND``). Revoking an already revoked credential succeeds
        and changes nothing.
        """
        with self._lock, self._store.transaction() as txn:
            state = txn.state
            stale = self._check_sequence(
                "revoke_credential", ctx, state.sequence, credential_type_id, holder
            )
            if stale is not None:
                txn.rollback()
                return stale
            if ctx.caller != state.authority:
                txn.rollback()
                return self._reject(
                    "revoke_credential",
                    ctx,
                    ErrorKind.UNAUTHORIZED,
                    "caller is not the registry authority",
                    credential_type_id,
                    holder,
                )
            credential_type = state.credential_types.get(credential_type_id)
            if credential_type is None:
                txn.rollback()
                return self._reject(
                    "revoke_credential",
                    ctx,
                    ErrorKind.NOT_FOUND,
                    f"credential type {credential_type_id} does not exist",
                    credential_type_id,
                    holder,
                )
            if not credential_type.revocable:
                txn.rollback()
                return self._reject(
                    "revoke_credential",
                    ctx,
                    ErrorKind.UNAUTHORIZED,
                    f"credential type {credential_type_id} is not revocable",
                    credential_type_id,
                    holder,
                )
            key = (holder, credential_type_id)
            record = state.issuances.get(key)
            if record is None:
                txn.rollback()
                return self._reject(
                    "revoke_credential",
                    ctx,
                    ErrorKind.NOT_FOUND,
                    f"credential {credential_type_id} was never issued to {holder!r}",
                    credential_type_id,
                    holder,
                )
            if record.revoked:
                txn.rollback()
                return CallResult.success(True)

            state.issuances[key] = replace(record, revoked=True)
            state.sequence += 1
            txn.commit()

            logger.info("Revoked credential %d from %s", credential_type_id, holder)
            if self._audit is not None:
                self._audit.log_revoked(
                    ctx.caller, credential_type_id, holder, sequence=state.sequence
                )
        return CallResult.success(True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_credential(self, holder: str, credential_type_id: int) -> bool:
        """Return True if *holder* holds an unrevoked credential of this type."""
        record = self.get_issuance(holder, credential_type_id)
        return record is not None and not record.revoked

    def is_credential_revoked(self, holder: str, credential_type_id: int) -> bool:
        """Return the record's revoked flag, or True if it was never issued.

        "Never issued" and "revoked" are indistinguishable through this
        query; use :meth:`get_issuance` to tell them apart.
        """
        record = self.get_issuance(holder, credential_type_id)
        if record is None:
            return True
        return record.revoked

    def get_credential_by_id(self, credential_type_id: int) -> Optional[CredentialType]:
        """Return the credential type with this id, or None."""
        with self._lock:
            return self._store.load_state().credential_types.get(credential_type_id)

    def get_credential_count(self) -> int:
        """Return the number of credential types ever created."""
        with self._lock:
            return self._store.load_state().next_credential_id

    def get_issuance(self, holder: str, credential_type_id: int) -> Optional[IssuanceRecord]:
        """Return the issuance record for *holder* and type, or None."""
        with self._lock:
            return self._store.load_state().issuances.get((holder, credential_type_id))

    def list_credential_types(self) -> list[CredentialType]:
        """Return all credential types sorted by id."""
        with self._lock:
            types = self._store.load_state().credential_types
            return [types[i] for i in sorted(types)]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _check_sequence(
        self,
        operation: str,
        ctx: CallContext,
        current: int,
        credential_type_id: int | None = None,
        holder: str | None = None,
    ) -> CallResult | None:
        if ctx.expected_sequence is None or ctx.expected_sequence == current:
            return None
        return self._reject(
            operation,
            ctx,
            ErrorKind.ALREADY_EXISTS,
            f"call was prepared for sequence {ctx.expected_sequence} "
            f"but the registry is at {current}",
            credential_type_id,
            holder,
        )

    def _reject(
        self,
        operation: str,
        ctx: CallContext,
        kind: ErrorKind,
        reason: str,
        credential_type_id: int | None = None,
        holder: str | None = None,
    ) -> CallResult:
        logger.warning("Rejected %s from %s: %s", operation, ctx.caller, reason)
        if self._audit is not None:
            self._audit.log_rejected(
                operation,
                ctx.caller,
                int(kind),
                reason,
                credential_type_id=credential_type_id,
                holder=holder,
            )
        return CallResult.failure(kind, reason)


__all__ = ["CredentialRegistry"]
