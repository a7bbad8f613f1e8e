# VPS Shell - Interactive Root Shell for VPS Egg Containers
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
VPS shell kernel.

Core session engine:
- history recording (before any handler runs)
- builtin dispatch (clear, exit, history, reinstall, install-ssh, status,
  backup, restore, help)
- raw fallback: anything else is handed to /bin/sh with the shell's own
  privileges; this is the product's root access, not a sandbox

Important boundary:
- Kernel does not read input or own the terminal. It returns text for the
  UI and pushes progress lines through the injected output_fn.
- Kernel never raises out of handle_command for tool failures; adapters
  report them as AdapterResult.
"""

from __future__ import annotations

import os
import shlex
import traceback
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from . import config as cfg_module
from .adapters import AdapterResult
from .commands import HELP_ENTRIES, CommandKind, parse_command
from .config import ANSI_COLORS, UI_CLEAR, ShellConfig, format_log
from .interfaces import Executor, HistoryStore, SystemAdapters

EXIT_REINSTALL = 2

CONFIRM_PROMPT = (
    "Are you sure you want to reinstall the OS? "
    "This will wipe all data. (yes/no): "
)

# Characters that make a `cd` line something only a real shell can run
_SHELL_META = set(";&|<>`$()")

_BOX_WIDTH = 77


def write_crash_log(error: BaseException, raw_command: str = "") -> None:
    """Write an entry to the crash log.

    Logs unhandled exceptions raised while handling a command.
    Only creates the log directory when actually needed.
    Appends to crash.log (never overwrites).
    """
    try:
        logs_dir = cfg_module.get_data_root() / "vps_shell" / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)

        lines = [datetime.now().isoformat()]
        if raw_command:
            lines.append(f"raw={raw_command}")
        lines.append(f"error={type(error).__name__}: {error}")
        lines.append("traceback:")
        lines.append(
            "".join(
                traceback.format_exception(
                    type(error), error, error.__traceback__
                )
            )
        )
        lines.append("----")

        with (logs_dir / "crash.log").open("a", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")

    except Exception:
        # If we can't write the crash log, fail silently
        # (we're already in an error state)
        pass


def _box(lines: list[tuple[str, str]], border: str) -> str:
    """Draw a box around (color, text) lines, centering each one."""
    b = ANSI_COLORS[border]
    reset = ANSI_COLORS["reset"]
    out = [f"{b}┏{'━' * _BOX_WIDTH}┓{reset}"]
    for color, text in lines:
        pad = max(_BOX_WIDTH - len(text), 0)
        left = pad // 2
        out.append(
            f"{b}┃{' ' * left}{ANSI_COLORS[color]}{text}"
            f"{b}{' ' * (pad - left)}┃{reset}"
        )
    out.append(f"{b}┗{'━' * _BOX_WIDTH}┛{reset}")
    return "\n".join(out) + "\n"


@dataclass
class Kernel:
    """VPS shell session engine."""

    config: ShellConfig
    store: HistoryStore
    executor: Executor
    adapters: SystemAdapters

    running: bool = False
    exit_code: int = 0

    # Previous directory for `cd -`
    prev_cwd: str | None = None
    # Last directory getcwd() returned; shown once the directory is removed
    last_cwd: str | None = None
    # Set after the first failed history write, which is reported once
    history_failed: bool = False

    # ---- I/O hooks (wired by UI/CLI) ----
    # Progress lines are pushed here while a handler is still running.
    output_fn: Callable[[str], None] | None = None
    # Used for the reinstall confirmation.
    ask_fn: Callable[[str], str] | None = None

    # -----------------------
    # Session
    # -----------------------

    def start(self) -> str:
        """Start a session: banner, usage hint and the first prompt line."""
        self.running = True
        self.exit_code = 0
        try:
            self.store.ensure()
        except OSError as e:
            self._history_unavailable(e)

        return "\n".join([
            self.banner().rstrip("\n"),
            format_log("INFO", self.config.hint, "yellow"),
            self.prompt(),
        ]) + "\n"

    def shutdown(self) -> str:
        """Graceful end of session (exit/stop, signals, end of input)."""
        self.running = False
        self.exit_code = 0
        return format_log("INFO", self.config.farewell, "green")

    def banner(self) -> str:
        year = datetime.now().year
        return _box(
            [
                ("green", ""),
                ("purple", 'Done (s)! For help, type "help"'),
                ("purple", "Pterodactyl VPS EGG"),
                ("green", ""),
                ("red", f"© 2021 - {year} @ysdragon"),
                ("green", ""),
            ],
            border="green",
        )

    def help_text(self) -> str:
        rows: list[tuple[str, str]] = [
            ("purple", ""),
            ("green", "✦ Available Commands ✦"),
            ("purple", ""),
        ]
        for name, description in HELP_ENTRIES:
            rows.append(("yellow", f"{name:<18} ❯  {description:<36}"))
        rows.append(("purple", ""))
        return _box(rows, border="purple")

    def formatted_dir(self) -> str:
        """Current directory, shown relative to $HOME with a ~ prefix."""
        cwd = self._cwd()
        home = os.path.expanduser("~")
        if cwd == home:
            return "~"
        if home != "/" and cwd.startswith(home + os.sep):
            return "~" + cwd[len(home):]
        return cwd

    def prompt(self) -> str:
        """Return the prompt string with ANSI colors."""
        green = ANSI_COLORS["green"]
        red = ANSI_COLORS["red"]
        reset = ANSI_COLORS["reset"]
        return (
            f"{green}{self.config.user}@{self.config.hostname}{reset}:"
            f"{red}{self.formatted_dir()}{reset}#"
        )

    def log(self, level: str, message: str, color: str | None = None) -> None:
        """Emit a leveled status line immediately."""
        self._emit(format_log(level, message, color) + "\n")

    def _cwd(self) -> str:
        """Current directory, or the last known one if it was removed."""
        try:
            cwd = os.getcwd()
        except OSError:
            return self.last_cwd or os.environ.get("PWD") or "/"
        self.last_cwd = cwd
        return cwd

    def _history_unavailable(self, error: OSError) -> None:
        if self.history_failed:
            return
        self.history_failed = True
        self.log("ERROR", f"Could not write history file: {error}")

    def _emit(self, text: str) -> None:
        if self.output_fn is not None:
            self.output_fn(text)
        else:
            print(text, end="", flush=True)

    def _ask(self, prompt: str) -> str:
        colored = f"{ANSI_COLORS['yellow']}{prompt}{ANSI_COLORS['reset']}"
        if self.ask_fn is not None:
            return self.ask_fn(colored)
        return input(colored)

    # -----------------------
    # Command handling
    # -----------------------

    def handle_command(self, command: str) -> str:
        """Handle a single command line.

        The line is recorded before its handler runs, so history reflects
        what was attempted even if the handler never returns.
        A failed history write is reported once and never blocks the command.
        """
        try:
            self.store.record(command)
        except OSError as e:
            self._history_unavailable(e)

        cmd = parse_command(command)
        kind = cmd.kind

        if kind is CommandKind.CLEAR:
            return UI_CLEAR
        if kind is CommandKind.EXIT:
            return self.shutdown()
        if kind is CommandKind.HISTORY:
            return self.store.render()
        if kind is CommandKind.REINSTALL:
            return self._handle_reinstall()
        if kind is CommandKind.SUDO:
            return format_log("ERROR", "You are already running as root.")
        if kind is CommandKind.INSTALL_SSH:
            return self._report(self.adapters.install_ssh())
        if kind is CommandKind.STATUS:
            return self._report(self.adapters.status())
        if kind is CommandKind.BACKUP:
            return self._report(self.adapters.backup())
        if kind is CommandKind.RESTORE:
            return self._handle_restore(cmd.arg)
        if kind is CommandKind.HELP:
            return self.help_text()
        if kind is CommandKind.RAW:
            return self._execute_raw_shell(cmd.arg)

        raise AssertionError(f"unhandled command kind: {kind}")

    def _report(self, result: AdapterResult) -> str:
        if not result.message:
            return ""
        return format_log(result.level, result.message, result.color)

    def _handle_restore(self, backup_file: str) -> str:
        if not backup_file.strip():
            return "\n".join([
                format_log("INFO", "Usage: restore <backup_file>"),
                format_log(
                    "INFO", "Example: restore backup_20250620024221.tar.gz"
                ),
            ])
        return self._report(self.adapters.restore(backup_file))

    def _handle_reinstall(self) -> str:
        self.log("INFO", "Reinstalling....", "green")

        try:
            answer = self._ask(CONFIRM_PROMPT)
        except EOFError:
            # Closed input declines
            answer = ""
        confirmed = answer.strip() == "yes"
        result = self.adapters.reinstall(confirmed)
        if not confirmed:
            return self._report(result)

        # Past the confirmation the session ends whatever the wipe did
        self.running = False
        self.exit_code = EXIT_REINSTALL
        return self._report(result)

    # -----------------------
    # Raw fallback
    # -----------------------

    def _execute_raw_shell(self, line: str) -> str:
        """Evaluate a line with /bin/sh, attached to the terminal.

        A plain ``cd`` is applied to this process so the prompt follows it.
        """
        if not line.strip():
            return ""

        parts = self._cd_parts(line)
        if parts is not None:
            return self._handle_cd(parts)

        cwd = self._cwd()
        # A removed directory is still the child's inherited cwd
        self.executor.run_tty(line, cwd=cwd if os.path.isdir(cwd) else None)
        return ""

    def _cd_parts(self, line: str) -> list[str] | None:
        line = os.path.expandvars(line)
        if any(ch in _SHELL_META for ch in line):
            return None
        try:
            parts = shlex.split(line)
        except ValueError:
            return None
        if not parts or parts[0] != "cd" or len(parts) > 2:
            return None
        return parts

    def _handle_cd(self, parts: list[str]) -> str:
        if len(parts) == 1:
            target = os.path.expanduser("~")
        elif parts[1] == "-":
            if self.prev_cwd is None:
                return format_log("ERROR", "cd: no previous directory")
            target = self.prev_cwd
        else:
            target = os.path.expanduser(parts[1])

        previous = self._cwd()
        target = os.path.normpath(os.path.join(previous, target))
        if not os.path.isdir(target):
            return format_log("ERROR", f"cd: no such directory: {target}")

        try:
            os.chdir(target)
        except OSError as e:
            return format_log("ERROR", f"cd: {e.strerror}: {target}")
        self.prev_cwd = previous
        return ""
