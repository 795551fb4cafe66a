"""Append-only audit log for provisioning runs.

Each entry is a single ``<timestamp> <message>`` line written to the audit log
file (``/var/log/user_management.log`` by default) and echoed to the console.
The log is world-readable and must never carry credential values.

If the log file cannot be prepared or written the logger disables file
output and keeps echoing to the console, so a broken log location never stops
a provisioning run.
"""
from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from rich.console import Console

LOGGER = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_MODE = 0o644


class AuditLogger:
    """Timestamped, append-only action log with console echo."""

    def __init__(
        self,
        path: Path,
        *,
        console: Console | None = None,
        error_console: Console | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Prepare the log file at *path* (mode 0644)."""
        self._path = path.expanduser()
        self._console = console or Console(highlight=False)
        self._error_console = error_console or Console(stderr=True, highlight=False)
        self._clock = clock or datetime.now
        self._enabled = self._prepare()

    @property
    def path(self) -> Path:
        """Return the audit log location."""
        return self._path

    def record(self, message: str) -> str:
        """Append *message* to the log and echo it; return the written line."""
        line = self._format(message)
        self._console.print(line, markup=False)
        self._write(line)
        return line

    def error(self, message: str) -> str:
        """Append an ``ERROR:`` entry and echo it to stderr."""
        line = self._format(f"ERROR: {message}")
        self._error_console.print(line, style="red", markup=False)
        self._write(line)
        return line

    # ------------------------------------------------------------------
    def _format(self, message: str) -> str:
        return f"{self._clock().strftime(TIMESTAMP_FORMAT)} {message}"

    def _prepare(self) -> bool:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.touch(exist_ok=True)
            os.chmod(self._path, LOG_FILE_MODE)
        except OSError as exc:
            LOGGER.warning("Audit log %s unavailable, file logging disabled: %s", self._path, exc)
            return False
        return True

    def _write(self, line: str) -> None:
        if not self._enabled:
            return
        try:
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(f"{line}\n")
        except OSError as exc:
            LOGGER.warning("Failed to write audit log %s, disabling: %s", self._path, exc)
            self._enabled = False


__all__ = ["AuditLogger", "TIMESTAMP_FORMAT"]
