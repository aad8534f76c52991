"""Tests for credential_registry.registry.credential_registry - CredentialRegistry."""
from __future__ import annotations

import threading

import pytest

from credential_registry.audit import RegistryAuditLogger
from credential_registry.registry.credential_registry import CredentialRegistry
from credential_registry.registry.models import (
    PROVENANCE_UNAVAILABLE,
    CallContext,
    CredentialType,
)
from credential_registry.registry.results import ErrorKind
from credential_registry.registry.store import InMemoryRegistryStore

AUTHORITY = "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"
HOLDER = "ST2CY5V39NHDPWSXMW9QDT3HC3GD6Q6XX4CFRK9AG"
OTHER = "ST2JHG361ZXG51QTKY2NQCVBPPRRE2KZB1HR05NNC"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def registry() -> CredentialRegistry:
    return CredentialRegistry(authority=AUTHORITY)


@pytest.fixture()
def authority() -> CallContext:
    return CallContext(caller=AUTHORITY)


@pytest.fixture()
def outsider() -> CallContext:
    return CallContext(caller=HOLDER)


def _create(
    registry: CredentialRegistry,
    ctx: CallContext,
    name: str = "Clarity Developer",
    revocable: bool = True,
) -> int:
    return registry.create_credential_type(
        ctx,
        name=name,
        description="Certified Clarity programming skills",
        metadata_uri="ipfs://QmExample",
        revocable=revocable,
    ).unwrap()


def _snapshot(registry: CredentialRegistry) -> tuple[object, ...]:
    types = tuple(registry.list_credential_types())
    return (
        registry.get_credential_count(),
        types,
        registry.get_issuance(HOLDER, 0),
        registry.get_issuance(OTHER, 0),
    )


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_authority_required_without_store(self) -> None:
        with pytest.raises(ValueError):
            CredentialRegistry()

    def test_authority_read_from_store(self) -> None:
        registry = CredentialRegistry(store=InMemoryRegistryStore(AUTHORITY))
        assert registry.authority == AUTHORITY

    def test_mismatched_authority_and_store_rejected(self) -> None:
        with pytest.raises(ValueError):
            CredentialRegistry(authority=OTHER, store=InMemoryRegistryStore(AUTHORITY))

    def test_new_registry_is_empty(self, registry: CredentialRegistry) -> None:
        assert registry.get_credential_count() == 0
        assert registry.list_credential_types() == []
        assert registry.sequence == 0


# ---------------------------------------------------------------------------
# create_credential_type
# ---------------------------------------------------------------------------


class TestCreateCredentialType:
    def test_authority_creates_type_with_id_zero(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        result = registry.create_credential_type(
            authority, "Clarity Developer", "Certified skills", "ipfs://QmExample", True
        )
        assert result.ok is True
        assert result.value == 0

    def test_revocable_by_default(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        type_id = registry.create_credential_type(authority, "Badge", "").unwrap()
        credential_type = registry.get_credential_by_id(type_id)
        assert credential_type is not None
        assert credential_type.revocable is True
        assert CredentialType(id=0, name="Badge", description="", issuer=AUTHORITY).revocable is True

    def test_ids_are_sequential(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        ids = [_create(registry, authority, name=f"Type {i}") for i in range(5)]
        assert ids == [0, 1, 2, 3, 4]

    def test_stored_fields(self, registry: CredentialRegistry, authority: CallContext) -> None:
        type_id = _create(registry, authority, revocable=False)
        credential_type = registry.get_credential_by_id(type_id)
        assert credential_type is not None
        assert credential_type.id == type_id
        assert credential_type.name == "Clarity Developer"
        assert credential_type.description == "Certified Clarity programming skills"
        assert credential_type.metadata_uri == "ipfs://QmExample"
        assert credential_type.issuer == AUTHORITY
        assert credential_type.revocable is False

    def test_metadata_uri_is_optional(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        type_id = registry.create_credential_type(authority, "Badge", "A badge").unwrap()
        credential_type = registry.get_credential_by_id(type_id)
        assert credential_type is not None
        assert credential_type.metadata_uri is None

    def test_no_length_validation_in_core(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        result = registry.create_credential_type(authority, "x" * 500, "y" * 5000)
        assert result.ok is True

    def test_non_authority_rejected(
        self, registry: CredentialRegistry, outsider: CallContext
    ) -> None:
        result = registry.create_credential_type(
            outsider, "Invalid Credential", "Should fail", "ipfs://QmInvalid", True
        )
        assert result.ok is False
        assert result.error is ErrorKind.UNAUTHORIZED
        assert result.code == 403

    def test_non_authority_leaves_state_unchanged(
        self, registry: CredentialRegistry, authority: CallContext, outsider: CallContext
    ) -> None:
        _create(registry, authority)
        before = _snapshot(registry)
        registry.create_credential_type(outsider, "Nope", "Nope")
        assert _snapshot(registry) == before
        assert registry.get_credential_count() == 1
        assert registry.get_credential_by_id(1) is None

    def test_rejected_call_does_not_consume_an_id(
        self, registry: CredentialRegistry, authority: CallContext, outsider: CallContext
    ) -> None:
        registry.create_credential_type(outsider, "Nope", "Nope")
        assert _create(registry, authority) == 0


# ---------------------------------------------------------------------------
# issue_credential
# ---------------------------------------------------------------------------


class TestIssueCredential:
    def test_authority_issues_credential(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        type_id = _create(registry, authority)
        result = registry.issue_credential(authority, type_id, HOLDER)
        assert result.ok is True
        assert result.value is True

    def test_issued_credential_is_held_and_not_revoked(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        type_id = _create(registry, authority)
        registry.issue_credential(authority, type_id, HOLDER)
        assert registry.has_credential(HOLDER, type_id) is True
        assert registry.is_credential_revoked(HOLDER, type_id) is False

    def test_only_the_holder_holds_it(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        type_id = _create(registry, authority)
        registry.issue_credential(authority, type_id, HOLDER)
        assert registry.has_credential(OTHER, type_id) is False

    def test_unknown_type_is_not_found(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        result = registry.issue_credential(authority, 999, HOLDER)
        assert result.error is ErrorKind.NOT_FOUND

    def test_unknown_type_is_not_found_for_any_caller(
        self, registry: CredentialRegistry, outsider: CallContext
    ) -> None:
        result = registry.issue_credential(outsider, 0, HOLDER)
        assert result.error is ErrorKind.NOT_FOUND
        assert result.code == 404

    def test_non_authority_rejected(
        self, registry: CredentialRegistry, authority: CallContext, outsider: CallContext
    ) -> None:
        type_id = _create(registry, authority)
        result = registry.issue_credential(outsider, type_id, OTHER)
        assert result.error is ErrorKind.UNAUTHORIZED
        assert registry.get_issuance(OTHER, type_id) is None

    def test_duplicate_issue_already_exists(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        type_id = _create(registry, authority)
        registry.issue_credential(authority, type_id, HOLDER)
        before = _snapshot(registry)
        result = registry.issue_credential(authority, type_id, HOLDER)
        assert result.error is ErrorKind.ALREADY_EXISTS
        assert result.code == 409
        assert _snapshot(registry) == before

    def test_same_holder_can_hold_different_types(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        first = _create(registry, authority, name="First")
        second = _create(registry, authority, name="Second")
        assert registry.issue_credential(authority, first, HOLDER).ok
        assert registry.issue_credential(authority, second, HOLDER).ok
        assert registry.has_credential(HOLDER, first)
        assert registry.has_credential(HOLDER, second)

    def test_provenance_taken_from_context(self, registry: CredentialRegistry) -> None:
        ctx = CallContext(caller=AUTHORITY, block_height=42, block_time=1_700_000_000)
        type_id = _create(registry, ctx)
        registry.issue_credential(ctx, type_id, HOLDER)
        record = registry.get_issuance(HOLDER, type_id)
        assert record is not None
        assert record.issue_height == 42
        assert record.issue_time == 1_700_000_000

    def test_provenance_defaults_to_sentinel(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        type_id = _create(registry, authority)
        registry.issue_credential(authority, type_id, HOLDER)
        record = registry.get_issuance(HOLDER, type_id)
        assert record is not None
        assert record.issue_height == PROVENANCE_UNAVAILABLE
        assert record.issue_time == PROVENANCE_UNAVAILABLE


# ---------------------------------------------------------------------------
# revoke_credential
# ---------------------------------------------------------------------------


class TestRevokeCredential:
    def test_revoke_revocable_credential(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        type_id = _create(registry, authority, revocable=True)
        registry.issue_credential(authority, type_id, HOLDER)
        assert registry.has_credential(HOLDER, type_id) is True

        result = registry.revoke_credential(authority, type_id, HOLDER)
        assert result.ok is True
        assert result.value is True
        assert registry.has_credential(HOLDER, type_id) is False
        assert registry.is_credential_revoked(HOLDER, type_id) is True

    def test_revocation_preserves_provenance(self, registry: CredentialRegistry) -> None:
        issue_ctx = CallContext(caller=AUTHORITY, block_height=7, block_time=1000)
        type_id = _create(registry, issue_ctx)
        registry.issue_credential(issue_ctx, type_id, HOLDER)
        registry.revoke_credential(
            CallContext(caller=AUTHORITY, block_height=9, block_time=2000), type_id, HOLDER
        )
        record = registry.get_issuance(HOLDER, type_id)
        assert record is not None
        assert record.revoked is True
        assert record.issue_height == 7
        assert record.issue_time == 1000

    def test_non_revocable_type_rejected_as_unauthorized(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        type_id = _create(registry, authority, revocable=False)
        registry.issue_credential(authority, type_id, HOLDER)
        result = registry.revoke_credential(authority, type_id, HOLDER)
        assert result.error is ErrorKind.UNAUTHORIZED
        assert "not revocable" in result.reason
        assert registry.has_credential(HOLDER, type_id) is True

    def test_non_authority_rejected(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        type_id = _create(registry, authority)
        registry.issue_credential(authority, type_id, OTHER)
        result = registry.revoke_credential(CallContext(caller=HOLDER), type_id, OTHER)
        assert result.error is ErrorKind.UNAUTHORIZED
        assert registry.has_credential(OTHER, type_id) is True

    def test_caller_checked_before_type_existence(
        self, registry: CredentialRegistry, outsider: CallContext
    ) -> None:
        result = registry.revoke_credential(outsider, 999, HOLDER)
        assert result.error is ErrorKind.UNAUTHORIZED

    def test_unknown_type_is_not_found(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        result = registry.revoke_credential(authority, 999, HOLDER)
        assert result.error is ErrorKind.NOT_FOUND

    def test_never_issued_is_not_found(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        type_id = _create(registry, authority)
        result = registry.revoke_credential(authority, type_id, HOLDER)
        assert result.error is ErrorKind.NOT_FOUND
        assert registry.get_issuance(HOLDER, type_id) is None

    def test_second_revoke_succeeds_without_change(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        type_id = _create(registry, authority)
        registry.issue_credential(authority, type_id, HOLDER)
        registry.revoke_credential(authority, type_id, HOLDER)
        sequence = registry.sequence
        record = registry.get_issuance(HOLDER, type_id)

        result = registry.revoke_credential(authority, type_id, HOLDER)
        assert result.ok is True
        assert registry.get_issuance(HOLDER, type_id) == record
        assert registry.sequence == sequence
        assert registry.has_credential(HOLDER, type_id) is False
        assert registry.is_credential_revoked(HOLDER, type_id) is True

    def test_revoked_record_still_blocks_reissue(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        type_id = _create(registry, authority)
        registry.issue_credential(authority, type_id, HOLDER)
        registry.revoke_credential(authority, type_id, HOLDER)
        result = registry.issue_credential(authority, type_id, HOLDER)
        assert result.error is ErrorKind.ALREADY_EXISTS
        assert registry.has_credential(HOLDER, type_id) is False


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    def test_never_issued_reads_as_revoked(self, registry: CredentialRegistry) -> None:
        assert registry.is_credential_revoked(HOLDER, 0) is True
        assert registry.has_credential(HOLDER, 0) is False

    def test_get_unknown_type_returns_none(self, registry: CredentialRegistry) -> None:
        assert registry.get_credential_by_id(3) is None

    def test_count_ignores_issuance_activity(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        first = _create(registry, authority, name="First")
        _create(registry, authority, name="Second")
        registry.issue_credential(authority, first, HOLDER)
        registry.issue_credential(authority, first, OTHER)
        registry.revoke_credential(authority, first, HOLDER)
        registry.issue_credential(authority, 99, HOLDER)
        assert registry.get_credential_count() == 2

    def test_list_credential_types_sorted(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        for name in ("A", "B", "C"):
            _create(registry, authority, name=name)
        assert [t.name for t in registry.list_credential_types()] == ["A", "B", "C"]

    def test_sequence_counts_committed_mutations(
        self, registry: CredentialRegistry, authority: CallContext, outsider: CallContext
    ) -> None:
        type_id = _create(registry, authority)
        registry.issue_credential(authority, type_id, HOLDER)
        registry.issue_credential(outsider, type_id, OTHER)
        registry.revoke_credential(authority, type_id, HOLDER)
        assert registry.sequence == 3


# ---------------------------------------------------------------------------
# Expected sequence
# ---------------------------------------------------------------------------


class TestExpectedSequence:
    def test_matching_sequence_commits(self, registry: CredentialRegistry) -> None:
        ctx = CallContext(caller=AUTHORITY, expected_sequence=0)
        assert registry.create_credential_type(ctx, "Badge", "").ok
        assert registry.sequence == 1

    def test_stale_sequence_rejected_without_change(
        self, registry: CredentialRegistry, authority: CallContext
    ) -> None:
        type_id = _create(registry, authority)
        before = _snapshot(registry)
        stale = CallContext(caller=AUTHORITY, expected_sequence=0)

        for result in (
            registry.create_credential_type(stale, "Badge", ""),
            registry.issue_credential(stale, type_id, HOLDER),
            registry.revoke_credential(stale, type_id, HOLDER),
        ):
            assert result.error is ErrorKind.ALREADY_EXISTS
        assert _snapshot(registry) == before
        assert registry.sequence == 1

    def test_sequence_checked_before_authority(self, registry: CredentialRegistry) -> None:
        ctx = CallContext(caller=HOLDER, expected_sequence=3)
        result = registry.create_credential_type(ctx, "Badge", "")
        assert result.error is ErrorKind.ALREADY_EXISTS

    def test_registry_ids_differ_between_registries(self) -> None:
        first = CredentialRegistry(authority=AUTHORITY)
        second = CredentialRegistry(authority=AUTHORITY)
        assert first.registry_id != second.registry_id


# ---------------------------------------------------------------------------
# Audit integration
# ---------------------------------------------------------------------------


class TestAuditIntegration:
    def test_events_logged_in_order(self, authority: CallContext) -> None:
        audit = RegistryAuditLogger()
        registry = CredentialRegistry(authority=AUTHORITY, audit_logger=audit)
        type_id = _create(registry, authority)
        registry.issue_credential(authority, type_id, HOLDER)
        registry.revoke_credential(authority, type_id, HOLDER)

        events = audit.read_log()
        assert [e["event_type"] for e in events] == [
            "credential_type_created",
            "credential_issued",
            "credential_revoked",
        ]
        assert events[1]["holder"] == HOLDER
        assert events[1]["credential_type_id"] == type_id
        assert [e["sequence"] for e in events] == [1, 2, 3]

    def test_slow_audit_sink_keeps_commit_order(self, authority: CallContext) -> None:
        issuing = threading.Event()
        release = threading.Event()

        class SlowIssueLogger(RegistryAuditLogger):
            def log_issued(self, *args: object, **kwargs: object) -> None:
                issuing.set()
                release.wait(timeout=5)
                super().log_issued(*args, **kwargs)  # type: ignore[arg-type]

        audit = SlowIssueLogger()
        registry = CredentialRegistry(authority=AUTHORITY, audit_logger=audit)
        type_id = _create(registry, authority)

        issuer = threading.Thread(
            target=registry.issue_credential, args=(authority, type_id, HOLDER)
        )
        issuer.start()
        assert issuing.wait(timeout=5)
        revoker = threading.Thread(
            target=registry.revoke_credential, args=(authority, type_id, HOLDER)
        )
        revoker.start()
        revoker.join(timeout=0.2)
        release.set()
        issuer.join(timeout=5)
        revoker.join(timeout=5)

        events = audit.read_log()
        assert [e["event_type"] for e in events] == [
            "credential_type_created",
            "credential_issued",
            "credential_revoked",
        ]
        assert [e["sequence"] for e in events] == [1, 2, 3]
        assert registry.is_credential_revoked(HOLDER, type_id) is True

    def test_rejected_call_logged_with_code(self, outsider: CallContext) -> None:
        audit = RegistryAuditLogger()
        registry = CredentialRegistry(authority=AUTHORITY, audit_logger=audit)
        registry.create_credential_type(outsider, "Nope", "Nope")

        events = audit.read_log()
        assert len(events) == 1
        assert events[0]["event_type"] == "call_rejected"
        assert events[0]["caller"] == HOLDER
        details = events[0]["details"]
        assert isinstance(details, dict)
        assert details["error_code"] == 403
        assert events[0]["sequence"] is None
        assert details["operation"] == "create_credential_type"

    def test_noop_revoke_not_logged(self, authority: CallContext) -> None:
        audit = RegistryAuditLogger()
        registry = CredentialRegistry(authority=AUTHORITY, audit_logger=audit)
        type_id = _create(registry, authority)
        registry.issue_credential(authority, type_id, HOLDER)
        registry.revoke_credential(authority, type_id, HOLDER)
        registry.revoke_credential(authority, type_id, HOLDER)
        revocations = [e for e in audit.read_log() if e["event_type"] == "credential_revoked"]
        assert len(revocations) == 1
