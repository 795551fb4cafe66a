"""Account directory adapters backed by the host passwd/group databases."""
from __future__ import annotations

import grp
import os
import pwd
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .config import ToolsConfig


class DirectoryError(RuntimeError):
    """Raised when an account directory operation fails."""


class AccountDirectory(Protocol):
    """Operations the provisioning engine needs from the account database."""

    def group_exists(self, name: str) -> bool:
        """Return ``True`` when group *name* exists."""
        ...

    def create_group(self, name: str) -> None:
        """Create group *name*."""
        ...

    def user_exists(self, name: str) -> bool:
        """Return ``True`` when user *name* exists."""
        ...

    def create_user(
        self,
        name: str,
        *,
        primary_group: str,
        home: Path,
        shell: str,
        groups: Sequence[str] = (),
    ) -> None:
        """Create user *name* with a home directory."""
        ...

    def add_to_groups(self, name: str, groups: Sequence[str]) -> None:
        """Append user *name* to *groups* without dropping other memberships."""
        ...

    def set_password(self, name: str, password: str) -> None:
        """Set the login password for *name*."""
        ...

    def configure_home(self, name: str, home: Path, mode: int) -> None:
        """Hand *home* to ``name:name`` and apply *mode*."""
        ...


Runner = Callable[[Sequence[str], str | None], subprocess.CompletedProcess[str]]


@dataclass(slots=True)
class SystemAccountDirectory:
    """Account directory that queries ``pwd``/``grp`` and shells out to shadow-utils."""

    tools: ToolsConfig = field(default_factory=ToolsConfig)
    runner: Runner | None = None

    def group_exists(self, name: str) -> bool:
        """Return ``True`` when *name* is present in the group database."""
        try:
            grp.getgrnam(name)
        except KeyError:
            return False
        return True

    def create_group(self, name: str) -> None:
        """Create group *name* via ``groupadd``."""
        self._run([self.tools.groupadd_bin, name], error_prefix=f"groupadd {name}")

    def user_exists(self, name: str) -> bool:
        """Return ``True`` when *name* is present in the passwd database."""
        try:
            pwd.getpwnam(name)
        except KeyError:
            return False
        return True

    def create_user(
        self,
        name: str,
        *,
        primary_group: str,
        home: Path,
        shell: str,
        groups: Sequence[str] = (),
    ) -> None:
        """Create *name* via ``useradd`` with a home directory and primary group."""
        command = [
            self.tools.useradd_bin,
            "-m",
            "-d",
            str(home),
            "-s",
            shell,
            "-g",
            primary_group,
        ]
        if groups:
            # useradd rejects an empty -G argument.
            command.extend(["-G", ",".join(groups)])
        command.append(name)
        self._run(command, error_prefix=f"useradd {name}")

    def add_to_groups(self, name: str, groups: Sequence[str]) -> None:
        """Append *name* to *groups* via ``usermod -aG``."""
        if not groups:
            return
        joined = ",".join(groups)
        self._run(
            [self.tools.usermod_bin, "-aG", joined, name],
            error_prefix=f"usermod -aG {joined} {name}",
        )

    def set_password(self, name: str, password: str) -> None:
        """Feed ``name:password`` to ``chpasswd`` on stdin."""
        self._run(
            [self.tools.chpasswd_bin],
            stdin=f"{name}:{password}\n",
            error_prefix=f"chpasswd {name}",
        )

    def configure_home(self, name: str, home: Path, mode: int) -> None:
        """Recursively chown *home* to ``name:name`` and chmod the directory."""
        self._run(
            [self.tools.chown_bin, "-R", f"{name}:{name}", str(home)],
            error_prefix=f"chown -R {name}:{name} {home}",
        )
        try:
            os.chmod(home, mode)
        except OSError as exc:
            raise DirectoryError(f"chmod {mode:04o} {home} failed: {exc}") from exc

    # ------------------------------------------------------------------
    def _run(
        self,
        args: Sequence[str],
        *,
        error_prefix: str,
        stdin: str | None = None,
    ) -> subprocess.CompletedProcess[str]:
        runner = self.runner or _default_runner
        try:
            result = runner(list(args), stdin)
        except FileNotFoundError as exc:
            raise DirectoryError(f"{args[0]} not found: {exc}") from exc
        if result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise DirectoryError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


def _default_runner(
    command: Sequence[str],
    stdin: str | None,
) -> subprocess.CompletedProcess[str]:
    return subprocess.run(  # noqa: S603,S607
        list(command),
        input=stdin,
        capture_output=True,
        text=True,
        check=False,
    )


__all__ = [
    "AccountDirectory",
    "DirectoryError",
    "Runner",
    "SystemAccountDirectory",
]
