"""Tests for credential_registry.registry.results - CallResult and ErrorKind."""
from __future__ import annotations

import pytest

from credential_registry.registry.results import CallResult, ErrorKind, RegistryCallError


class TestErrorKind:
    def test_codes(self) -> None:
        assert int(ErrorKind.UNAUTHORIZED) == 403
        assert int(ErrorKind.NOT_FOUND) == 404
        assert int(ErrorKind.ALREADY_EXISTS) == 409

    def test_lookup_by_code(self) -> None:
        assert ErrorKind(409) is ErrorKind.ALREADY_EXISTS


class TestCallResult:
    def test_success(self) -> None:
        result = CallResult.success(3)
        assert result.ok is True
        assert result.value == 3
        assert result.error is None
        assert result.code is None

    def test_failure(self) -> None:
        result: CallResult[int] = CallResult.failure(ErrorKind.NOT_FOUND, "missing")
        assert result.ok is False
        assert result.value is None
        assert result.code == 404
        assert result.reason == "missing"

    def test_unwrap_success_returns_value(self) -> None:
        assert CallResult.success(True).unwrap() is True

    def test_unwrap_failure_raises(self) -> None:
        result: CallResult[int] = CallResult.failure(ErrorKind.UNAUTHORIZED, "not the authority")
        with pytest.raises(RegistryCallError) as exc_info:
            result.unwrap()
        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
        assert exc_info.value.reason == "not the authority"
        assert "403" in str(exc_info.value)

    def test_to_dict(self) -> None:
        assert CallResult.success(0).to_dict() == {"ok": True, "value": 0}
        assert CallResult.failure(ErrorKind.ALREADY_EXISTS, "dup").to_dict() == {
            "ok": False,
            "error": 409,
            "reason": "dup",
        }
