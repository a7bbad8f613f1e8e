# VPS Shell - Interactive Root Shell for VPS Egg Containers
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Builtin command table and input classification.

Every input line resolves to exactly one Command. Lines that match no
builtin become RAW and are evaluated by the underlying shell.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CommandKind(Enum):
    CLEAR = "clear"
    EXIT = "exit"
    HISTORY = "history"
    REINSTALL = "reinstall"
    SUDO = "sudo"
    INSTALL_SSH = "install-ssh"
    STATUS = "status"
    BACKUP = "backup"
    RESTORE = "restore"
    HELP = "help"
    RAW = "raw"


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    # RESTORE: backup file name (may be empty); RAW: the full line
    arg: str = ""


# Exact-match triggers
COMMAND_TRIGGERS: dict[str, CommandKind] = {
    "clear": CommandKind.CLEAR,
    "cls": CommandKind.CLEAR,
    "exit": CommandKind.EXIT,
    "stop": CommandKind.EXIT,
    "history": CommandKind.HISTORY,
    "reinstall": CommandKind.REINSTALL,
    "sudo": CommandKind.SUDO,
    "su": CommandKind.SUDO,
    "install-ssh": CommandKind.INSTALL_SSH,
    "status": CommandKind.STATUS,
    "backup": CommandKind.BACKUP,
    "restore": CommandKind.RESTORE,
    "help": CommandKind.HELP,
}

RESTORE_PREFIX = "restore "

# (name, description) pairs shown by `help`, in display order
HELP_ENTRIES: list[tuple[str, str]] = [
    ("clear, cls", "Clear the screen"),
    ("exit", "Shutdown the server"),
    ("history", "Show command history"),
    ("reinstall", "Reinstall the server"),
    ("install-ssh", "Install our custom SSH server"),
    ("status", "Show system status"),
    ("backup", "Create a system backup"),
    ("restore", "Restore a system backup"),
    ("help", "Display this help message"),
]


def parse_command(line: str) -> Command:
    """Classify one input line.

    ``restore <file>`` is the only prefix match; the argument is everything
    after the first space. A bare ``restore`` resolves to RESTORE with an
    empty argument so the caller can report usage.
    """
    if line.startswith(RESTORE_PREFIX):
        return Command(CommandKind.RESTORE, line.split(" ", 1)[1])

    kind = COMMAND_TRIGGERS.get(line)
    if kind is None:
        return Command(CommandKind.RAW, line)
    return Command(kind)


def builtin_names() -> list[str]:
    """Trigger words offered for completion."""
    return sorted(COMMAND_TRIGGERS)
