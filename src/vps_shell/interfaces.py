# VPS Shell - Interactive Root Shell for VPS Egg Containers
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Protocol definitions for dependency injection.

These interfaces enable clean separation between the kernel's dispatch
logic, history persistence, and the external tools it drives.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .adapters import AdapterResult  # pragma: no cover
    from .executor import TTYResult  # pragma: no cover


class HistoryStore(Protocol):
    """Protocol for persistent command history."""

    def ensure(self) -> None:
        """Create the backing storage if it does not exist."""
        ...

    def record(self, line: str) -> None:
        """Append a command line (ignores empty lines and 'exit')."""
        ...

    def render(self) -> str:
        """Return the full history text, or "" if none exists."""
        ...

    def entries(self) -> list[str]:
        """Return recorded lines, oldest first."""
        ...


class Executor(Protocol):
    """Protocol for command execution."""

    def run_argv(
        self, argv: list[str], cwd: str | None = None
    ) -> tuple[int, str, str, str, int]:
        """Run an argv list and return buffered results.

        Returns:
            (exit_code, stdout, stderr, started_at, duration_ms)
        """
        ...

    def run_tty(self, command: str, cwd: str | None = None) -> TTYResult:
        """Run a shell command line attached to the terminal."""
        ...


class Archiver(Protocol):
    """Protocol for the archive tool used by backup and restore."""

    def available(self) -> bool:
        """True if the underlying tool can be used."""
        ...

    def create(
        self, archive: Path, root: Path, excludes: list[str]
    ) -> None:
        """Archive ``root`` into ``archive``. Raises AdapterError."""
        ...

    def extract(
        self, archive: Path, root: Path, excludes: list[str]
    ) -> None:
        """Extract ``archive`` over ``root``. Raises AdapterError."""
        ...


class SystemAdapters(Protocol):
    """Protocol for the builtin commands' external collaborators."""

    def backup(self) -> AdapterResult:
        ...

    def restore(self, backup_file: str) -> AdapterResult:
        ...

    def status(self) -> AdapterResult:
        ...

    def install_ssh(self) -> AdapterResult:
        ...

    def reinstall(self, confirmed: bool) -> AdapterResult:
        ...
