"""Environment-driven settings for the credential-registry command line."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Mapping, Optional

LogLevel = Literal["debug", "info", "warning", "error"]

STATE_ENV = "CREDENTIAL_REGISTRY_STATE"
AUDIT_LOG_ENV = "CREDENTIAL_REGISTRY_AUDIT_LOG"
LOG_LEVEL_ENV = "CREDENTIAL_REGISTRY_LOG_LEVEL"

DEFAULT_STATE_FILE = "credential-registry.json"


def _getenv(environ: Mapping[str, str], name: str, default: str) -> str:
    return environ.get(name, default).strip()


@dataclass(frozen=True)
class RegistrySettings:
    state_file: Path
    audit_log: Optional[Path]
    log_level: LogLevel

    @property
    def logging_level(self) -> str:
        """Level name in the form the logging module expects."""
        return self.log_level.upper()


def load_settings(environ: Mapping[str, str] | None = None) -> RegistrySettings:
    """Read settings from *environ* (defaults to ``os.environ``).

    Raises
    ------
    ValueError
        If a variable holds a value outside its allowed set.
    """
    env = os.environ if environ is None else environ

    state_raw = _getenv(env, STATE_ENV, DEFAULT_STATE_FILE) or DEFAULT_STATE_FILE
    audit_raw = _getenv(env, AUDIT_LOG_ENV, "")
    log_level_raw = _getenv(env, LOG_LEVEL_ENV, "warning").lower()

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"{LOG_LEVEL_ENV} must be debug|info|warning|error (got {log_level_raw!r})"
        )

    return RegistrySettings(  # type: ignore[arg-type]
        state_file=Path(state_raw),
        audit_log=Path(audit_raw) if audit_raw else None,
        log_level=log_level_raw,
    )


__all__ = ["RegistrySettings", "load_settings"]
