"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import io
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import pytest
from rich.console import Console

from userprov.directory import DirectoryError
from userprov.logging import AuditLogger
from userprov.state import CredentialStore


@dataclass
class FakeAccount:
    """Account entry held by :class:`FakeDirectory`."""

    primary_group: str
    home: Path
    shell: str
    groups: set[str] = field(default_factory=set)
    home_mode: int | None = None
    home_owner: str | None = None


@dataclass
class FakeDirectory:
    """In-memory account directory used in place of the host databases."""

    groups: set[str] = field(default_factory=set)
    users: dict[str, FakeAccount] = field(default_factory=dict)
    passwords: dict[str, str] = field(default_factory=dict)
    calls: list[tuple[str, ...]] = field(default_factory=list)
    fail_group_create: set[str] = field(default_factory=set)
    fail_user_create: set[str] = field(default_factory=set)
    fail_membership: set[str] = field(default_factory=set)
    fail_home: set[str] = field(default_factory=set)
    fail_password: set[str] = field(default_factory=set)

    def group_exists(self, name: str) -> bool:
        return name in self.groups

    def create_group(self, name: str) -> None:
        self.calls.append(("create_group", name))
        if name in self.fail_group_create:
            raise DirectoryError(f"groupadd {name} failed (exit 9): boom")
        self.groups.add(name)

    def user_exists(self, name: str) -> bool:
        return name in self.users

    def create_user(
        self,
        name: str,
        *,
        primary_group: str,
        home: Path,
        shell: str,
        groups: Sequence[str] = (),
    ) -> None:
        self.calls.append(("create_user", name, ",".join(groups)))
        if name in self.fail_user_create:
            raise DirectoryError(f"useradd {name} failed (exit 1): boom")
        self.users[name] = FakeAccount(
            primary_group=primary_group,
            home=home,
            shell=shell,
            groups=set(groups),
        )

    def add_to_groups(self, name: str, groups: Sequence[str]) -> None:
        self.calls.append(("add_to_groups", name, ",".join(groups)))
        if name in self.fail_membership:
            raise DirectoryError(f"usermod {name} failed (exit 6): boom")
        self.users[name].groups.update(groups)

    def set_password(self, name: str, password: str) -> None:
        self.calls.append(("set_password", name))
        if name in self.fail_password:
            raise DirectoryError(f"chpasswd {name} failed (exit 1): boom")
        self.passwords[name] = password

    def configure_home(self, name: str, home: Path, mode: int) -> None:
        self.calls.append(("configure_home", name, str(home)))
        if name in self.fail_home:
            raise DirectoryError(f"chown -R {name}:{name} {home} failed (exit 1): boom")
        account = self.users[name]
        account.home_mode = mode
        account.home_owner = f"{name}:{name}"


@pytest.fixture
def directory() -> FakeDirectory:
    """Return an empty in-memory account directory."""
    return FakeDirectory()


@pytest.fixture
def audit_path(tmp_path: Path) -> Path:
    """Return the audit log location used by the ``audit`` fixture."""
    return tmp_path / "log" / "user_management.log"


@pytest.fixture
def audit(audit_path: Path) -> AuditLogger:
    """Return an audit logger with a fixed clock and captured console output."""
    return AuditLogger(
        audit_path,
        console=Console(file=io.StringIO()),
        error_console=Console(file=io.StringIO()),
        clock=lambda: datetime(2024, 7, 1, 12, 30, 45),
    )


@pytest.fixture
def store(tmp_path: Path) -> CredentialStore:
    """Return a credential store that leaves ownership untouched."""
    credential_store = CredentialStore(
        tmp_path / "secure" / "user_passwords.csv",
        owner=None,
        group=None,
    )
    credential_store.ensure()
    return credential_store
