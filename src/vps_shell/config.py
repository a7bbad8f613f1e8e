# VPS Shell - Interactive Root Shell for VPS Egg Containers
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Configuration and branding for the VPS shell.

Handles:
- Packaged YAML defaults loading (vps_shell.defaults/system.yaml)
- Environment overrides (VPS_SHELL_*)
- Data root resolution for crash logs
- ANSI coloring constants, log level colors + UI_CLEAR semantic sentinel
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from importlib import resources as importlib_resources
from pathlib import Path
from typing import Any

import yaml


# -----------------------
# UI + branding constants
# -----------------------

ANSI_COLORS: dict[str, str] = {
    "purple": "\033[0;35m",
    "red": "\033[0;31m",
    "green": "\033[0;32m",
    "yellow": "\033[0;33m",
    "reset": "\033[0m",
}

# Default color per log level. Callers may still pass an explicit color
# (the INFO level is shown in green or yellow depending on context).
LEVEL_COLORS: dict[str, str] = {
    "INFO": "yellow",
    "ERROR": "red",
    "SUCCESS": "green",
}

# Semantic UI intent for clear screen operations
UI_CLEAR = "__UI_CLEAR__"


def format_log(level: str, message: str, color: str | None = None) -> str:
    """Render a leveled status line: ``[LEVEL] message``."""
    color_name = color or LEVEL_COLORS.get(level, "reset")
    code = ANSI_COLORS.get(color_name, ANSI_COLORS["reset"])
    return f"{code}[{level}]{ANSI_COLORS['reset']} {message}"


# -----------------------
# Config model
# -----------------------


def _get_path(data: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """
    Nested lookup using dot-separated path.
    Example: _get_path(cfg, "history.max_entries", 1000)
    """
    cur: Any = data
    for part in path.split("."):
        if not isinstance(cur, Mapping) or part not in cur:
            return default
        cur = cur[part]
    return cur


def _expand(path: str) -> Path:
    return Path(os.path.expanduser(path))


@dataclass(frozen=True)
class ShellConfig:
    """Session configuration, built once at startup and held by the kernel."""

    user: str = "root"
    hostname: str = "MyVPS"
    farewell: str = "Session ended. Goodbye!"
    hint: str = "Type 'help' to view a list of available custom commands."

    history_file: Path = field(
        default_factory=lambda: _expand("~/.custom_shell_history")
    )
    max_history: int = 1000

    installed_marker: Path = Path("/.installed")
    install_leftovers: tuple[Path, ...] = ()
    autorun_script: Path = Path("/autorun.sh")

    root: Path = Path("/")
    os_release: Path = Path("/etc/os-release")
    backup_excludes: tuple[str, ...] = ()

    ssh_binary: Path = Path("/usr/local/bin/ssh")
    ssh_url: str = (
        "https://github.com/ysdragon/ssh/releases/latest/download/ssh-{arch}"
    )
    architectures: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        env: Mapping[str, str] | None = None,
    ) -> ShellConfig:
        """Build a config from a YAML mapping, then apply env overrides.

        Recognized overrides:
            VPS_SHELL_HOSTNAME: prompt host segment
            VPS_SHELL_HISTORY_FILE: history file location
            VPS_SHELL_ROOT: filesystem root used by backup/restore
        """
        env = os.environ if env is None else env

        hostname = env.get("VPS_SHELL_HOSTNAME") or str(
            _get_path(data, "session.hostname", cls.hostname)
        )
        history_file = env.get("VPS_SHELL_HISTORY_FILE") or str(
            _get_path(data, "history.file", "~/.custom_shell_history")
        )
        root = env.get("VPS_SHELL_ROOT") or str(
            _get_path(data, "system.root", "/")
        )

        leftovers = _get_path(data, "install.leftovers", []) or []
        excludes = _get_path(data, "backup.excludes", []) or []
        archs = _get_path(data, "ssh.architectures", {}) or {}

        return cls(
            user=str(_get_path(data, "session.user", cls.user)),
            hostname=hostname,
            farewell=str(_get_path(data, "session.farewell", cls.farewell)),
            hint=str(_get_path(data, "session.hint", cls.hint)),
            history_file=_expand(history_file),
            max_history=int(
                _get_path(data, "history.max_entries", cls.max_history)
            ),
            installed_marker=_expand(
                str(_get_path(data, "install.marker", "/.installed"))
            ),
            install_leftovers=tuple(_expand(str(p)) for p in leftovers),
            autorun_script=_expand(
                str(_get_path(data, "install.autorun", "/autorun.sh"))
            ),
            root=_expand(root),
            os_release=_expand(
                str(_get_path(data, "system.os_release", "/etc/os-release"))
            ),
            backup_excludes=tuple(str(e) for e in excludes),
            ssh_binary=_expand(
                str(_get_path(data, "ssh.binary", "/usr/local/bin/ssh"))
            ),
            ssh_url=str(_get_path(data, "ssh.url", cls.ssh_url)),
            architectures={str(k): str(v) for k, v in archs.items()},
        )


# -----------------------
# Data root
# -----------------------


def get_data_root() -> Path:
    """Get the data root directory used for crash logs.

    Resolution order:
    1. VPS_SHELL_DATA_HOME environment variable (if set)
    2. ~/.local/share (default)
    """
    data_home = os.getenv("VPS_SHELL_DATA_HOME")
    if data_home:
        root = Path(data_home)
    else:
        root = Path.home() / ".local" / "share"

    root.mkdir(parents=True, exist_ok=True)
    return root


# -----------------------
# Packaged defaults loading
# -----------------------


def _defaults_dir() -> Path:
    """Return the installed path to packaged defaults directory."""
    return Path(
        importlib_resources.files("vps_shell.defaults")
    )  # type: ignore[arg-type]


def load_defaults_yaml(filename: str) -> dict[str, Any]:
    """
    Load a YAML file from vps_shell/defaults/.
    """
    defaults_dir = _defaults_dir()
    path = defaults_dir / filename
    if not path.exists():
        raise FileNotFoundError(
            f"Missing defaults YAML: {filename} "
            f"(looked in {defaults_dir})"
        )

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(
            f"Defaults YAML {filename} must load to a mapping/dict."
        )
    return data


def load_system_config() -> ShellConfig:
    """
    Load system.yaml from packaged defaults and return a ShellConfig.
    """
    return ShellConfig.from_dict(load_defaults_yaml("system.yaml"))
