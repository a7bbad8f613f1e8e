# VPS Shell - Interactive Root Shell for VPS Egg Containers
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Subprocess-backed executor implementation for the VPS shell.

This module provides:
- run_argv(): buffered execution of an argv list (no shell parsing)
- run_tty(): execution attached to the real terminal, used for the raw
  command fallback and for tools whose output goes straight to the user

Commands run with the same privileges as the shell itself. By default
there is no timeout: a hung child blocks the session until it exits.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class TTYResult:
    """Result from TTY/passthrough execution (no output capture)."""

    exit_code: int
    started_at: str
    duration_ms: int


def _elapsed_ms(start: datetime) -> int:
    return int((datetime.now() - start).total_seconds() * 1000)


class SubprocessExecutor:
    """Subprocess implementation of Executor protocol."""

    def __init__(
        self, force_color: bool = True, shell: str = "/bin/sh",
        timeout: int | None = None
    ):
        """Initialize executor with configuration.

        Args:
            force_color: If True, set color-forcing env variables
            shell: Interpreter used for command lines
            timeout: Optional timeout in seconds for buffered runs
                (default: None, wait forever)
        """
        self.force_color = force_color
        self.shell = shell
        self.timeout = timeout

    def _build_env(self) -> dict:
        env = os.environ.copy()
        if self.force_color:
            env["FORCE_COLOR"] = "1"
            env["CLICOLOR_FORCE"] = "1"
        return env

    def run_argv(
        self, argv: list[str], cwd: str | None = None
    ) -> tuple[int, str, str, str, int]:
        """Run an argv list (no shell parsing) and return buffered results.

        Returns:
            (exit_code, stdout, stderr, started_at, duration_ms)
        """
        env = self._build_env()
        started_at = datetime.now().isoformat()
        start_time = datetime.now()

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
                cwd=cwd,
            )
            return (
                result.returncode, result.stdout, result.stderr,
                started_at, _elapsed_ms(start_time)
            )
        except subprocess.TimeoutExpired:
            return (
                1, "",
                f"Command timed out after {self.timeout} seconds",
                started_at, _elapsed_ms(start_time)
            )
        except OSError as e:
            return (
                127, "", f"Error executing command: {e}",
                started_at, _elapsed_ms(start_time)
            )

    def run_tty(self, command: str, cwd: str | None = None) -> TTYResult:
        """Run a command line with full terminal control (no output capture).

        The command inherits stdin/stdout/stderr from the parent process,
        so pagers, editors and prompts behave as in a normal shell.

        If the session is interrupted while waiting, the child is
        terminated before the interrupt propagates.

        Returns:
            TTYResult (exit_code, started_at, duration_ms)
        """
        env = self._build_env()
        started_at = datetime.now().isoformat()
        start_time = datetime.now()

        try:
            proc = subprocess.Popen(
                [self.shell, "-c", command],
                stdin=None,  # inherit from parent
                stdout=None,  # inherit from parent
                stderr=None,  # inherit from parent
                env=env,
                cwd=cwd,
            )
        except OSError:
            return TTYResult(
                exit_code=127,
                started_at=started_at,
                duration_ms=_elapsed_ms(start_time),
            )

        try:
            exit_code = proc.wait()
        except BaseException:
            # Interrupted (SIGINT/SIGTERM): do not leave the child behind
            try:
                proc.terminate()
                proc.wait(timeout=1.0)
            except Exception:
                proc.kill()
            raise

        return TTYResult(
            exit_code=exit_code,
            started_at=started_at,
            duration_ms=_elapsed_ms(start_time),
        )
