"""Append-only audit log of repository mutations — JSON lines format."""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger()

_MAX_DETAIL_LENGTH = 500


class AuditLogger:
    def __init__(self, log_path: Path | str, *, enabled: bool = True) -> None:
        self._path = Path(log_path)
        self._enabled = enabled
        if enabled:
            self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def _write(self, entry: dict[str, Any]) -> None:
        if not self._enabled:
            return
        entry["timestamp"] = datetime.now(UTC).isoformat()
        try:
            with open(self._path, "a") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            logger.error("audit_write_failed", error=str(e))

    def log_operation(
        self,
        operation: str,
        *,
        repository: str,
        success: bool,
        detail: str = "",
        error_kind: str | None = None,
    ) -> None:
        entry: dict[str, Any] = {
            "event": "git_operation",
            "operation": operation,
            "repository": repository,
            "success": success,
            "detail": _truncate(detail),
        }
        if error_kind is not None:
            entry["error_kind"] = error_kind
        self._write(entry)


def _truncate(text: str) -> str:
    if len(text) <= _MAX_DETAIL_LENGTH:
        return text
    return text[:_MAX_DETAIL_LENGTH] + "..."
