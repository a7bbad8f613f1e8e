# VPS Shell - Interactive Root Shell for VPS Egg Containers
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
VPS shell entry point and REPL loop.

Design:
- CLI owns process startup: provisioning, signals, autorun, exit status.
- Kernel is the session engine (config+store+executor+adapters injected).
- UI is a prompt_toolkit PromptSession on a real terminal, plain
  input()/print() when stdin is piped (panel consoles).
"""

from __future__ import annotations

import os
import shlex
import signal
import sys
import time
from typing import Protocol

from . import config
from .adapters import Adapters
from .config import UI_CLEAR, format_log
from .executor import SubprocessExecutor
from .init import ensure_autorun, ensure_installed
from .kernel import Kernel, write_crash_log
from .store import FileHistoryStore
from .ui import PromptToolkitUI, StdIOUI


class ShellUI(Protocol):
    def read(self, prompt: str) -> str: ...

    def ask(self, prompt: str) -> str: ...

    def write(self, text: str) -> None: ...

    def clear(self) -> None: ...


def install_signal_handlers() -> None:
    """Route SIGINT and SIGTERM into KeyboardInterrupt.

    Both then unwind through the loop's graceful shutdown path, which
    prints the farewell before the process exits.
    """
    signal.signal(signal.SIGINT, signal.default_int_handler)
    signal.signal(signal.SIGTERM, signal.default_int_handler)


def _line(text: str) -> str:
    return text if text.endswith("\n") else text + "\n"


def run_repl(kernel: Kernel, ui: ShellUI) -> int:
    """Run the read-dispatch loop until the session ends.

    Returns:
        Process exit status (0 graceful, 2 after reinstall)
    """
    while kernel.running:
        try:
            line = (ui.read(kernel.prompt()) or "").strip()
            if not line:
                continue

            try:
                response = kernel.handle_command(line)

                if response == UI_CLEAR:
                    ui.clear()
                    ui.write(kernel.banner())
                    continue

                if response:
                    ui.write(_line(response))

            except Exception as e:
                # Unhandled exception - write crash log, keep the session
                write_crash_log(e, raw_command=line)
                ui.write(_line(format_log(
                    "ERROR",
                    f"Unhandled exception: {type(e).__name__}: {e}",
                )))

        except (KeyboardInterrupt, EOFError):
            ui.write("\n" + _line(kernel.shutdown()))
            break

    return kernel.exit_code


def _use_legacy_ui() -> bool:
    if os.environ.get("VPS_SHELL_LEGACY_UI") == "1":
        return True
    return not sys.stdin.isatty()


def main() -> None:
    """Main entry point for the VPS shell."""
    install_signal_handlers()

    cfg = config.load_system_config()
    ensure_installed(cfg)
    autorun = ensure_autorun(cfg)

    store = FileHistoryStore(cfg.history_file, cfg.max_history)
    executor = SubprocessExecutor(force_color=False)
    adapters = Adapters(cfg, executor)
    kernel = Kernel(
        config=cfg, store=store, executor=executor, adapters=adapters
    )

    ui: ShellUI = StdIOUI() if _use_legacy_ui() else PromptToolkitUI(kernel)

    # Route progress output and questions through the UI
    kernel.output_fn = ui.write
    kernel.ask_fn = ui.ask
    adapters.log_fn = kernel.log

    try:
        ui.clear()
        green = config.ANSI_COLORS["green"]
        reset = config.ANSI_COLORS["reset"]
        ui.write(f"{green}Starting..{reset}\n")
        time.sleep(1)
        ui.clear()

        ui.write(kernel.start())

        # The autorun script's exit status never aborts the session
        executor.run_tty(f"sh {shlex.quote(str(autorun))}")

        exit_code = run_repl(kernel, ui)
    except KeyboardInterrupt:
        # Signal before the loop took over (splash or autorun)
        ui.write("\n" + _line(kernel.shutdown()))
        exit_code = kernel.exit_code

    sys.exit(exit_code)
