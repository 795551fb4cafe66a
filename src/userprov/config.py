"""Configuration loader for userprov.

Settings are resolved from, in increasing precedence:

1. Built-in defaults (``DEFAULTS``).
2. The YAML file ``/etc/userprov/config.yml``; a missing file is not an error.
3. Explicit overrides supplied programmatically.

The command line takes no flags and no environment variables are consulted,
so the config file is the only operator-facing way to change paths, the shell,
the home mode, the password length or the account tool binaries.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path

import yaml


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class ToolsConfig:
    """Account-management binaries invoked by the system directory adapter."""

    groupadd_bin: str = "groupadd"
    useradd_bin: str = "useradd"
    usermod_bin: str = "usermod"
    chpasswd_bin: str = "chpasswd"
    chown_bin: str = "chown"


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for userprov."""

    config_file: Path
    audit_log: Path
    credential_store: Path
    credential_owner: str
    credential_group: str
    home_root: Path
    default_shell: str
    home_mode: int
    password_length: int
    tools: ToolsConfig


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/userprov/config.yml",
    "audit_log": "/var/log/user_management.log",
    "credential_store": "/var/secure/user_passwords.csv",
    "credential_owner": "root",
    "credential_group": "root",
    "home_root": "/home",
    "default_shell": "/bin/bash",
    "home_mode": "0750",
    "password_length": 16,
    "tools": {
        "groupadd_bin": "groupadd",
        "useradd_bin": "useradd",
        "usermod_bin": "usermod",
        "chpasswd_bin": "chpasswd",
        "chown_bin": "chown",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_TOOL_KEYS = set(ToolsConfig.__dataclass_fields__)
PATH_KEYS = ("audit_log", "credential_store", "home_root")
NAME_KEYS = ("credential_owner", "credential_group", "default_shell")


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`.

    *config_file* replaces the default location for callers embedding the
    loader; the CLI always uses the default.
    """
    merged: dict[str, object] = dict(DEFAULTS)
    merged["tools"] = dict(_as_dict(DEFAULTS["tools"], "tools"))

    config_path = Path(config_file or str(DEFAULTS["config_file"]))
    _merge(merged, _load_yaml_file(config_path))
    if overrides:
        _merge(merged, dict(overrides))
    merged["config_file"] = str(config_path)

    _validate_structure(merged)
    return _build_app_config(merged)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _merge(target: MutableMapping[str, object], updates: Mapping[str, object]) -> None:
    # Only ``tools`` nests, so one level of merging is enough.
    for key, value in updates.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            existing.update(_as_dict(value, key))
        else:
            target[key] = value


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    unknown_tools = set(_as_dict(raw.get("tools"), "tools")) - ALLOWED_TOOL_KEYS
    if unknown_tools:
        joined = ", ".join(sorted(unknown_tools))
        raise ConfigError(f"Unknown tools configuration keys: {joined}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    password_length = raw.get("password_length")
    if isinstance(password_length, bool) or not isinstance(password_length, int):
        raise ConfigError(f"password_length must be an integer. Got {password_length!r}.")
    if password_length <= 0:
        raise ConfigError(f"password_length must be greater than zero. Got {password_length}.")

    tools_mapping = _as_dict(raw.get("tools"), "tools")
    tools = ToolsConfig(
        **{key: _expect_name(value, f"tools.{key}") for key, value in tools_mapping.items()}
    )

    paths = {key: _expect_path(raw.get(key), key) for key in PATH_KEYS}
    names = {key: _expect_name(raw.get(key), key) for key in NAME_KEYS}

    return AppConfig(
        config_file=Path(str(raw["config_file"])),
        home_mode=_parse_permission_mode(raw.get("home_mode"), "home_mode"),
        password_length=password_length,
        tools=tools,
        **paths,
        **names,
    )


def _parse_permission_mode(value: object, label: str) -> int:
    # YAML reads an unquoted 0750 as the octal integer already.
    if isinstance(value, bool):
        raise ConfigError(f"{label} must be an octal mode. Got boolean {value!r}.")
    if isinstance(value, int):
        mode = value
    elif isinstance(value, str):
        text = value.strip().lower().removeprefix("0o")
        try:
            mode = int(text, 8)
        except ValueError as exc:
            raise ConfigError(f"{label} must be an octal mode. Got {value!r}.") from exc
    else:
        raise ConfigError(f"{label} must be an octal mode. Got {value!r}.")
    if not 0 <= mode <= 0o777:
        raise ConfigError(f"{label} must be between 0000 and 0777 inclusive.")
    return mode


def _expect_path(value: object, label: str) -> Path:
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str) and value.strip():
        return Path(value.strip()).expanduser()
    raise ConfigError(f"{label} must be a filesystem path. Got {value!r}.")


def _expect_name(value: object, label: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise ConfigError(f"{label} must be a non-empty string.")


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "DEFAULTS",
    "ToolsConfig",
    "load_config",
]
