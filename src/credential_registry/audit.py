"""RegistryAuditLogger - JSONL event log for credential registry calls.

Every committed registry mutation (credential type created, credential
issued, credential revoked) and every rejected mutating call is appended as
a single JSON line. The log is append-only and ordered, which makes it the
replay source for indexers that need views the registry does not keep,
such as the list of credentials held by one identity.

If no file path is configured the logger keeps events in an in-memory
buffer that can be drained via :meth:`RegistryAuditLogger.drain_buffer`.
"""
from __future__ import annotations

import datetime
import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

CREDENTIAL_TYPE_CREATED = "credential_type_created"
CREDENTIAL_ISSUED = "credential_issued"
CREDENTIAL_REVOKED = "credential_revoked"
CALL_REJECTED = "call_rejected"


@dataclass
class RegistryEvent:
    """A single auditable registry event.

    Parameters
    ----------
    event_type:
        One of the module-level event type constants.
    caller:
        Identity that made the call.
    credential_type_id:
        Credential type involved, if any.
    holder:
        Holder identity involved, if any.
    sequence:
        Registry sequence after the mutation committed. None for rejected
        calls, which change nothing.
    details:
        Additional key-value data about the event.
    timestamp:
        UTC datetime the event was logged. Defaults to now.
    """

    event_type: str
    caller: str
    credential_type_id: Optional[int] = None
    holder: Optional[str] = None
    sequence: Optional[int] = None
    details: dict[str, object] = field(default_factory=dict)
    timestamp: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary suitable for JSON encoding."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type,
            "caller": self.caller,
            "credential_type_id": self.credential_type_id,
            "holder": self.holder,
            "sequence": self.sequence,
            "details": self.details,
        }


class RegistryAuditLogger:
    """Append-only JSONL logger for registry events.

    Thread-safe. Each call to :meth:`log` appends one JSON line to the
    configured file (or to the in-memory buffer if no path is set).

    Parameters
    ----------
    log_path:
        Path to the JSONL log file. Parent directories are created
        automatically. If None, events are buffered in memory only.
    """

    def __init__(self, log_path: Path | None = None) -> None:
        self._log_path = log_path
        self._buffer: list[str] = []
        self._lock = threading.Lock()

        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Core logging
    # ------------------------------------------------------------------

    def log(self, event: RegistryEvent) -> None:
        """Append an event to the log."""
        line = json.dumps(event.to_dict(), separators=(",", ":"))
        with self._lock:
            if self._log_path is not None:
                with self._log_path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            else:
                self._buffer.append(line)

    def log_event(
        self,
        event_type: str,
        caller: str,
        credential_type_id: int | None = None,
        holder: str | None = None,
        sequence: int | None = None,
        **details: object,
    ) -> None:
        """Log an event without constructing a :class:`RegistryEvent` first."""
        self.log(
            RegistryEvent(
                event_type=event_type,
                caller=caller,
                credential_type_id=credential_type_id,
                holder=holder,
                sequence=sequence,
                details=dict(details),
            )
        )

    # ------------------------------------------------------------------
    # Registry event loggers
    # ------------------------------------------------------------------

    def log_type_created(
        self,
        caller: str,
        credential_type_id: int,
        name: str,
        revocable: bool,
        sequence: int | None = None,
    ) -> None:
        self.log_event(
            CREDENTIAL_TYPE_CREATED,
            caller=caller,
            credential_type_id=credential_type_id,
            sequence=sequence,
            name=name,
            revocable=revocable,
        )

    def log_issued(
        self,
        caller: str,
        credential_type_id: int,
        holder: str,
        issue_height: int,
        issue_time: int,
        sequence: int | None = None,
    ) -> None:
        self.log_event(
            CREDENTIAL_ISSUED,
            caller=caller,
            credential_type_id=credential_type_id,
            holder=holder,
            sequence=sequence,
            issue_height=issue_height,
            issue_time=issue_time,
        )

    def log_revoked(
        self,
        caller: str,
        credential_type_id: int,
        holder: str,
        sequence: int | None = None,
    ) -> None:
        self.log_event(
            CREDENTIAL_REVOKED,
            caller=caller,
            credential_type_id=credential_type_id,
            holder=holder,
            sequence=sequence,
        )

    def log_rejected(
        self,
        operation: str,
        caller: str,
        error_code: int,
        reason: str,
        credential_type_id: int | None = None,
        holder: str | None = None,
    ) -> None:
        """Log a mutating call that failed a precondition and changed nothing."""
        self.log_event(
            CALL_REJECTED,
            caller=caller,
            credential_type_id=credential_type_id,
            holder=holder,
            operation=operation,
            error_code=error_code,
            reason=reason,
        )

    # ------------------------------------------------------------------
    # Reading back
    # ------------------------------------------------------------------

    def drain_buffer(self) -> list[str]:
        """Return and clear the in-memory event buffer.

        Only meaningful when no ``log_path`` was configured.

        Returns
        -------
        list[str]
            JSON lines, oldest first.
        """
        with self._lock:
            events = list(self._buffer)
            self._buffer.clear()
        return events

    def read_log(self, tail: int | None = None) -> list[dict[str, object]]:
        """Read events back in chronological order.

        Parameters
        ----------
        tail:
            If provided, return only the last *tail* events.

        Returns
        -------
        list[dict[str, object]]
            Parsed event dictionaries. Blank or unparseable lines are skipped.
        """
        if self._log_path is None or not self._log_path.exists():
            with self._lock:
                lines = list(self._buffer)
        else:
            with self._lock:
                lines = self._log_path.read_text(encoding="utf-8").splitlines()

        parsed: list[dict[str, object]] = []
        for line in lines:
            stripped = line.strip()
            if not stripped:
                continue
            try:
                entry: dict[str, object] = json.loads(stripped)
            except json.JSONDecodeError:
                continue
            parsed.append(entry)

        if tail is not None:
            return parsed[-tail:] if tail > 0 else []
        return parsed


__all__ = [
    "CALL_REJECTED",
    "CREDENTIAL_ISSUED",
    "CREDENTIAL_REVOKED",
    "CREDENTIAL_TYPE_CREATED",
    "RegistryAuditLogger",
    "RegistryEvent",
]
