"""Call results and error kinds for registry operations.

Mutating registry operations never raise for business-rule failures. They
return a :class:`CallResult` which is either a success carrying a value or a
failure carrying an :class:`ErrorKind`. Callers branch on ``result.ok``.

Callers that prefer exceptions can call :meth:`CallResult.unwrap`, which
raises :class:`RegistryCallError` for failures.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(IntEnum):
    """Error codes surfaced to registry callers."""

    UNAUTHORIZED = 403
    NOT_FOUND = 404
    ALREADY_EXISTS = 409


class RegistryCallError(Exception):
    """Raised by :meth:`CallResult.unwrap` when the call failed.

    Parameters
    ----------
    kind:
        The error kind of the failed call.
    reason:
        Human-readable description of the failure.
    """

    def __init__(self, kind: ErrorKind, reason: str = "") -> None:
        self.kind = kind
        self.reason = reason
        message = f"{kind.name} ({int(kind)})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


@dataclass(frozen=True)
class CallResult(Generic[T]):
    """Discriminated outcome of a mutating registry call.

    Parameters
    ----------
    ok:
        ``True`` when the call committed.
    value:
        The call's return value on success, ``None`` on failure.
    error:
        The error kind on failure, ``None`` on success.
    reason:
        Human-readable explanation of a failure (empty on success).
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    reason: str = ""

    @classmethod
    def success(cls, value: T) -> "CallResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, reason: str = "") -> "CallResult[T]":
        return cls(ok=False, error=kind, reason=reason)

    @property
    def code(self) -> int | None:
        """Numeric error code, or ``None`` on success."""
        return int(self.error) if self.error is not None else None

    def unwrap(self) -> T:
        """Return the success value or raise :class:`RegistryCallError`."""
        if self.error is not None:
            raise RegistryCallError(self.error, self.reason)
        return self.value  # type: ignore[return-value]

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary."""
        if self.ok:
            return {"ok": True, "value": self.value}
        return {"ok": False, "error": self.code, "reason": self.reason}


__all__ = ["CallResult", "ErrorKind", "RegistryCallError"]
