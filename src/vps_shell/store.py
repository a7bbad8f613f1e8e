# VPS Shell - Interactive Root Shell for VPS Egg Containers
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
File-backed command history for the VPS shell.

Plain text, one command per line, newest at the bottom. The file is capped
at ``max_entries`` lines; older lines are dropped first.
"""

from __future__ import annotations

import os
import stat
import tempfile
from pathlib import Path

MAX_HISTORY = 1000

# Lines equal to this token are never recorded
EXIT_TOKEN = "exit"


class FileHistoryStore:
    """File implementation of HistoryStore protocol."""

    def __init__(self, path: Path, max_entries: int = MAX_HISTORY):
        """Initialize store with history file path.

        Args:
            path: History file location (created lazily by ensure())
            max_entries: Maximum number of lines kept in the file
        """
        self.path = path
        self.max_entries = max_entries

    def ensure(self) -> None:
        """Create the history file (empty) if it does not exist."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)

    def record(self, line: str) -> None:
        """Append a command line, then enforce the size cap."""
        if not line or line == EXIT_TOKEN:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

        lines = self._read_lines()
        if len(lines) > self.max_entries:
            self._rewrite(lines[-self.max_entries:])

    def render(self) -> str:
        """Return the history file verbatim, or "" if it does not exist."""
        if not self.path.is_file():
            return ""
        return self.path.read_text(encoding="utf-8")

    def entries(self) -> list[str]:
        """Recorded command lines, oldest first."""
        return [line.rstrip("\n") for line in self._read_lines()]

    def _read_lines(self) -> list[str]:
        if not self.path.is_file():
            return []
        with self.path.open("r", encoding="utf-8") as f:
            return f.readlines()

    def _rewrite(self, lines: list[str]) -> None:
        # Write into a sibling temp file, then swap it in atomically
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.writelines(lines)
            # mkstemp creates 0600; keep the history file's own mode
            os.chmod(tmp_path, stat.S_IMODE(os.stat(self.path).st_mode))
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
