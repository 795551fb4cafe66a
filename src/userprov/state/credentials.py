"""Owner-only CSV store for generated account passwords.

The store (``/var/secure/user_passwords.csv`` by default) starts with a
``username,password`` header and gains one row per newly provisioned account.
Rows are only ever appended. Every write re-applies the restrictive ownership
and mode so an external process loosening them between writes is corrected.
"""
from __future__ import annotations

import csv
import grp
import logging
import os
import pwd
from dataclasses import dataclass
from pathlib import Path

HEADER = ("username", "password")
DIRECTORY_MODE = 0o700
FILE_MODE = 0o600

LOGGER = logging.getLogger(__name__)


class CredentialStoreError(RuntimeError):
    """Raised when the credential store cannot be prepared or written."""


@dataclass(slots=True)
class CredentialStore:
    """Append-only ``username,password`` CSV with owner-only permissions.

    ``owner``/``group`` of ``None`` leave ownership untouched.
    """

    path: Path
    owner: str | None = "root"
    group: str | None = "root"

    def __post_init__(self) -> None:
        """Normalise the store path after initialisation."""
        self.path = self.path.expanduser()

    def ensure(self) -> None:
        """Create the secure directory and the header-only file when missing."""
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            self._chown(directory)
            os.chmod(directory, DIRECTORY_MODE)
            if not self.path.exists():
                with self.path.open("w", encoding="utf-8", newline="") as handle:
                    csv.writer(handle, lineterminator="\n").writerow(HEADER)
                self._secure()
        except OSError as exc:
            raise CredentialStoreError(
                f"Failed to prepare credential store {self.path}: {exc}"
            ) from exc

    def append(self, username: str, password: str) -> None:
        """Append one ``username,password`` row to a file secured before and after."""
        if not self.path.exists():
            self.ensure()
        try:
            self._secure()
            with self.path.open("a", encoding="utf-8", newline="") as handle:
                csv.writer(handle, lineterminator="\n").writerow((username, password))
        except OSError as exc:
            raise CredentialStoreError(
                f"Failed to write credential store {self.path}: {exc}"
            ) from exc
        try:
            self._secure()
        except (OSError, CredentialStoreError) as exc:
            # The row is saved; only the re-check failed.
            LOGGER.warning("Could not re-secure credential store %s: %s", self.path, exc)

    def usernames(self) -> list[str]:
        """Return the usernames recorded so far, in file order."""
        if not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8", newline="") as handle:
                rows = list(csv.reader(handle))
        except OSError as exc:
            raise CredentialStoreError(
                f"Failed to read credential store {self.path}: {exc}"
            ) from exc
        if rows and tuple(rows[0]) == HEADER:
            rows = rows[1:]
        return [row[0] for row in rows if row]

    # ------------------------------------------------------------------
    def _secure(self) -> None:
        self._chown(self.path)
        os.chmod(self.path, FILE_MODE)

    def _chown(self, path: Path) -> None:
        if self.owner is None and self.group is None:
            return
        uid = _lookup_uid(self.owner) if self.owner is not None else -1
        gid = _lookup_gid(self.group) if self.group is not None else -1
        os.chown(path, uid, gid)


def _lookup_uid(name: str) -> int:
    try:
        return pwd.getpwnam(name).pw_uid
    except KeyError as exc:
        raise CredentialStoreError(f"Unknown credential store owner '{name}'.") from exc


def _lookup_gid(name: str) -> int:
    try:
        return grp.getgrnam(name).gr_gid
    except KeyError as exc:
        raise CredentialStoreError(f"Unknown credential store group '{name}'.") from exc


__all__ = ["CredentialStore", "CredentialStoreError", "HEADER"]
