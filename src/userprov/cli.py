"""Typer-powered command line entry point for ``userprov``.

``userprov USERS_FILE`` provisions every account listed in *USERS_FILE*
(``username; group1,group2`` per line). Fatal preconditions (not root, no
argument, missing file, unusable configuration or credential store) exit with
code 1 before any record is touched. Per-record failures are logged and the
run continues; a completed run exits with code 0.
"""
from __future__ import annotations

import os
import textwrap
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import AppConfig, ConfigError, load_config
from .credentials import CredentialGenerator
from .directory import AccountDirectory, SystemAccountDirectory
from .exit_codes import ExitCode
from .logging import AuditLogger
from .provisioning import ProvisioningEngine, RecordOutcome, RunSummary
from .state import CredentialStore, CredentialStoreError

console = Console()
error_console = Console(stderr=True)

USERS_FILE_ARGUMENT = typer.Argument(
    None,
    help="User list with one 'username; group1,group2' entry per line.",
    show_default=False,
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Bulk operating-system account provisioning.

        Creates personal and supplementary groups, user accounts with home
        directories and random passwords. Must be run as root.
        """
    ).strip(),
)


@app.command()
def provision(users_file: Path | None = USERS_FILE_ARGUMENT) -> None:
    """Provision the accounts listed in USERS_FILE."""
    try:
        config = load_config()
    except ConfigError as exc:
        error_console.print(f"[red]ERROR: {escape(str(exc))}[/red]")
        raise typer.Exit(code=ExitCode.PRECONDITION) from exc

    audit = AuditLogger(config.audit_log)

    if os.geteuid() != 0:
        _fatal(audit, "This script must be run as root. Use sudo.")
    if users_file is None:
        _fatal(audit, "Usage: userprov <users_file>")
    if not users_file.is_file():
        _fatal(audit, f"User file '{users_file}' not found")

    audit.record(f"===== Starting user creation run (input: {users_file}) =====")

    store = CredentialStore(
        config.credential_store,
        owner=config.credential_owner,
        group=config.credential_group,
    )
    try:
        store.ensure()
    except CredentialStoreError as exc:
        _fatal(audit, str(exc))

    engine = ProvisioningEngine(
        directory=_build_directory(config),
        audit=audit,
        store=store,
        generator=CredentialGenerator(config.password_length),
        home_root=config.home_root,
        shell=config.default_shell,
        home_mode=config.home_mode,
    )
    # Undecodable bytes become U+FFFD and fail only their own record.
    with users_file.open("r", encoding="utf-8", errors="replace") as handle:
        summary = engine.run(handle)

    audit.record("===== Completed user creation run =====")
    _render_summary(summary)


def _build_directory(config: AppConfig) -> AccountDirectory:
    return SystemAccountDirectory(tools=config.tools)


def _fatal(audit: AuditLogger, message: str) -> NoReturn:
    """Log a fatal precondition failure and terminate the command."""
    audit.error(message)
    raise typer.Exit(code=ExitCode.PRECONDITION)


def _format_result(outcome: RecordOutcome) -> str:
    if not outcome.ok:
        return f"[red]FAILED[/red] {escape(outcome.reason or '')}"
    if outcome.warnings:
        return f"[yellow]WARN[/yellow] {escape('; '.join(outcome.warnings))}"
    return "[green]OK[/green]"


def _render_summary(summary: RunSummary) -> None:
    if not summary.outcomes:
        console.print("No user records found.")
    else:
        table = Table(title="Provisioning summary")
        table.add_column("Line", justify="right")
        table.add_column("User")
        table.add_column("Groups")
        table.add_column("State")
        table.add_column("Result")
        for outcome in summary.outcomes:
            table.add_row(
                str(outcome.record.line_number),
                escape(outcome.record.username),
                escape(",".join(outcome.groups)) or "-",
                outcome.state.value,
                _format_result(outcome),
            )
        console.print(table)
    console.print(
        f"processed={summary.processed} created={summary.created} "
        f"updated={summary.updated} failed={summary.failed} "
        f"skipped_lines={summary.skipped_lines}"
    )


__all__ = ["app", "provision"]
