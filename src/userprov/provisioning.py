"""Sequential, idempotent provisioning of accounts from parsed user records.

Each record walks the state machine::

    parsed -> group-ensured -> existing-account-updated
                            -> account-created -> home-configured
                               -> credential-applied -> credential-stored

Any step may stop the record early. The failure is logged, captured on the
:class:`RecordOutcome`, and the run moves on to the next record. Nothing is
rolled back: an account created without a password stays locked until an
operator intervenes.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .credentials import CredentialGenerator
from .directory import AccountDirectory, DirectoryError
from .logging import AuditLogger
from .parser import Record, iter_records
from .state import CredentialStore, CredentialStoreError


class RecordState(str, Enum):
    """Furthest step reached while processing a record."""

    PARSED = "parsed"
    GROUP_ENSURED = "group-ensured"
    EXISTING_ACCOUNT_UPDATED = "existing-account-updated"
    ACCOUNT_CREATED = "account-created"
    HOME_CONFIGURED = "home-configured"
    CREDENTIAL_APPLIED = "credential-applied"
    CREDENTIAL_STORED = "credential-stored"


@dataclass(slots=True)
class RecordOutcome:
    """Result of provisioning one record."""

    record: Record
    state: RecordState = RecordState.PARSED
    existing: bool = False
    groups: tuple[str, ...] = ()
    reason: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Return ``True`` when the record finished without a failure."""
        return self.reason is None

    @property
    def created(self) -> bool:
        """Return ``True`` when a new account was created for the record."""
        return not self.existing and self.state not in (
            RecordState.PARSED,
            RecordState.GROUP_ENSURED,
        )


@dataclass(slots=True)
class RunSummary:
    """Aggregated outcomes for one provisioning run."""

    outcomes: list[RecordOutcome] = field(default_factory=list)
    skipped_lines: int = 0

    @property
    def processed(self) -> int:
        """Return the number of records processed."""
        return len(self.outcomes)

    @property
    def created(self) -> int:
        """Return the number of accounts created."""
        return sum(1 for outcome in self.outcomes if outcome.created)

    @property
    def updated(self) -> int:
        """Return the number of existing accounts whose membership was updated."""
        return sum(
            1
            for outcome in self.outcomes
            if outcome.state is RecordState.EXISTING_ACCOUNT_UPDATED and outcome.ok
        )

    @property
    def failed(self) -> int:
        """Return the number of records that stopped on a failure."""
        return sum(1 for outcome in self.outcomes if not outcome.ok)


@dataclass(slots=True)
class ProvisioningEngine:
    """Turn user records into account directory calls, credentials and audit entries."""

    directory: AccountDirectory
    audit: AuditLogger
    store: CredentialStore
    generator: Callable[[], str] = field(default_factory=CredentialGenerator)
    home_root: Path = Path("/home")
    shell: str = "/bin/bash"
    home_mode: int = 0o750

    def run(self, lines: Iterable[str]) -> RunSummary:
        """Provision every record found in *lines*, in input order."""
        summary = RunSummary()

        def _skip(line_number: int, line: str, reason: str) -> None:
            summary.skipped_lines += 1
            self.audit.record(f"Skipping invalid line {line_number} ({reason}): {line}")

        for record in iter_records(lines, on_invalid=_skip):
            summary.outcomes.append(self.process(record))
        return summary

    def process(self, record: Record) -> RecordOutcome:
        """Provision a single *record* and return the terminal outcome."""
        outcome = RecordOutcome(record=record)
        username = record.username

        self._ensure_group(outcome, username, personal=True)
        resolved: list[str] = []
        for group in record.groups:
            self._ensure_group(outcome, group, personal=False)
            resolved.append(group)
        outcome.groups = tuple(resolved)
        outcome.state = RecordState.GROUP_ENSURED

        try:
            exists = self.directory.user_exists(username)
        except DirectoryError as exc:
            return self._fail(outcome, f"Failed to look up user '{username}': {exc}")

        if exists:
            outcome.existing = True
            return self._update_existing(outcome)
        return self._create_account(outcome)

    # ------------------------------------------------------------------
    def _ensure_group(self, outcome: RecordOutcome, name: str, *, personal: bool) -> None:
        label = f"Personal group '{name}'" if personal else f"Group '{name}'"
        try:
            if self.directory.group_exists(name):
                self.audit.record(f"{label} already exists")
                return
            self.directory.create_group(name)
        except DirectoryError as exc:
            message = f"Failed to create group '{name}' - continuing: {exc}"
            outcome.warnings.append(message)
            self.audit.record(message)
            return
        created = f"Created personal group '{name}'" if personal else f"Created group '{name}'"
        self.audit.record(created)

    def _update_existing(self, outcome: RecordOutcome) -> RecordOutcome:
        username = outcome.record.username
        self.audit.record(f"User '{username}' already exists - skipping user creation")
        outcome.state = RecordState.EXISTING_ACCOUNT_UPDATED
        if not outcome.groups:
            return outcome
        joined = ",".join(outcome.groups)
        try:
            self.directory.add_to_groups(username, outcome.groups)
        except DirectoryError as exc:
            return self._fail(
                outcome,
                f"Failed to update groups for existing user '{username}': {exc}",
            )
        self.audit.record(f"Updated groups for existing user '{username}': {joined}")
        return outcome

    def _create_account(self, outcome: RecordOutcome) -> RecordOutcome:
        username = outcome.record.username
        home = self.home_root / username
        try:
            self.directory.create_user(
                username,
                primary_group=username,
                home=home,
                shell=self.shell,
                groups=outcome.groups,
            )
        except DirectoryError as exc:
            return self._fail(outcome, f"Failed to create user '{username}': {exc}")
        outcome.state = RecordState.ACCOUNT_CREATED
        if outcome.groups:
            self.audit.record(
                f"Created user '{username}' with primary group '{username}' "
                f"and supplementary groups: {','.join(outcome.groups)}"
            )
        else:
            self.audit.record(f"Created user '{username}' with primary group '{username}'")

        try:
            self.directory.configure_home(username, home, self.home_mode)
        except DirectoryError as exc:
            message = f"Failed to set ownership/permissions for {home}: {exc}"
            outcome.warnings.append(message)
            self.audit.record(message)
        else:
            outcome.state = RecordState.HOME_CONFIGURED
            self.audit.record(f"Set ownership and permissions for {home}")

        try:
            password = self.generator()
        except (OSError, ValueError) as exc:
            return self._fail(outcome, f"Failed to generate password for user '{username}': {exc}")
        try:
            self.directory.set_password(username, password)
        except DirectoryError as exc:
            return self._fail(outcome, f"Failed to set password for user '{username}': {exc}")
        outcome.state = RecordState.CREDENTIAL_APPLIED
        self.audit.record(f"Password set for user '{username}'")

        try:
            self.store.append(username, password)
        except CredentialStoreError as exc:
            return self._fail(outcome, f"Failed to store credentials for '{username}': {exc}")
        outcome.state = RecordState.CREDENTIAL_STORED
        self.audit.record(f"Stored credentials for '{username}' in secure password file")
        return outcome

    def _fail(self, outcome: RecordOutcome, message: str) -> RecordOutcome:
        outcome.reason = message
        self.audit.record(message)
        return outcome


__all__ = [
    "ProvisioningEngine",
    "RecordOutcome",
    "RecordState",
    "RunSummary",
]
