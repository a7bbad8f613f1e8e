# VPS Shell - Interactive Root Shell for VPS Egg Containers
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
External tool adapters behind the builtin commands.

Each public operation blocks until the underlying tool finishes and
returns an AdapterResult; failures never propagate past the adapter.
Progress lines (e.g. "Starting backup process...") go through ``log_fn``.
"""

from __future__ import annotations

import os
import platform
import shlex
import shutil
import stat
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .config import ShellConfig
from .interfaces import Archiver, Executor

# Distributions whose rm lacks --no-preserve-root
BUSYBOX_RM_DISTROS = {"alpine", "chimera"}

STATUS_COMMANDS = [
    "uptime",
    "free -h",
    "df -h",
    "ps aux --sort=-%mem | head -n 10",
]


class AdapterError(Exception):
    """A tool failed; the message is shown to the user as an ERROR line."""


@dataclass(frozen=True)
class AdapterResult:
    ok: bool
    message: str = ""
    level: str = "SUCCESS"
    color: str | None = None

    @classmethod
    def success(cls, message: str) -> AdapterResult:
        return cls(True, message, "SUCCESS")

    @classmethod
    def failure(cls, message: str) -> AdapterResult:
        return cls(False, message, "ERROR")

    @classmethod
    def info(cls, message: str, ok: bool = True,
             color: str | None = None) -> AdapterResult:
        return cls(ok, message, "INFO", color)


def read_os_release(path: Path) -> dict[str, str]:
    """Parse an os-release file into a dict (empty if unreadable)."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return {}

    info: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        try:
            parts = shlex.split(value)
        except ValueError:
            parts = [value.strip("\"'")]
        info[key.strip()] = parts[0] if parts else ""
    return info


def _relative_excludes(excludes: list[str]) -> list[str]:
    # Members are archived relative to the root ("./proc"), so match that
    return [f"--exclude=./{e.lstrip('/')}" for e in excludes]


class TarArchiver:
    """Archiver backed by the system ``tar`` binary."""

    def __init__(self, executor: Executor, tar: str = "tar"):
        self.executor = executor
        self.tar = tar

    def available(self) -> bool:
        return shutil.which(self.tar) is not None

    def create(self, archive: Path, root: Path, excludes: list[str]) -> None:
        argv = [
            self.tar, "-czf", str(archive),
            *_relative_excludes(excludes),
            "-C", str(root), ".",
        ]
        self._run(argv, "create backup")

    def extract(self, archive: Path, root: Path, excludes: list[str]) -> None:
        argv = [
            self.tar, "-xzf", str(archive),
            "-C", str(root),
            *_relative_excludes(excludes),
        ]
        self._run(argv, "restore backup")

    def _run(self, argv: list[str], action: str) -> None:
        exit_code, _stdout, stderr, _, _ = self.executor.run_argv(argv)
        # GNU tar exits 1 when files changed while being read; only >= 2
        # is fatal
        if exit_code >= 2:
            detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
            msg = f"Failed to {action}"
            raise AdapterError(f"{msg}: {detail}" if detail else f"{msg}.")


class Adapters:
    """Default SystemAdapters implementation."""

    def __init__(
        self,
        config: ShellConfig,
        executor: Executor,
        archiver: Archiver | None = None,
        log_fn: Callable[[str, str, str | None], None] | None = None,
        now_fn: Callable[[], datetime] = datetime.now,
        machine_fn: Callable[[], str] = platform.machine,
        urlopen: Callable = urllib.request.urlopen,
    ):
        self.config = config
        self.executor = executor
        self.archiver = archiver or TarArchiver(executor)
        self.log_fn = log_fn
        self.now_fn = now_fn
        self.machine_fn = machine_fn
        self.urlopen = urlopen

    def _log(self, level: str, message: str, color: str | None = None) -> None:
        if self.log_fn is not None:
            self.log_fn(level, message, color)

    # -----------------------
    # Backup / restore
    # -----------------------

    def _tar_missing(self) -> AdapterResult | None:
        if not self.archiver.available():
            return AdapterResult.failure(
                "tar is not installed. Please install tar first."
            )
        return None

    def backup(self) -> AdapterResult:
        missing = self._tar_missing()
        if missing is not None:
            return missing

        stamp = self.now_fn().strftime("%Y%m%d%H%M%S")
        backup_file = self.config.root / f"backup_{stamp}.tar.gz"
        excludes = [
            "/" + backup_file.name,
            *self.config.backup_excludes,
        ]

        self._log("INFO", "Starting backup process...")
        try:
            self.archiver.create(backup_file, self.config.root, excludes)
        except AdapterError as e:
            return AdapterResult.failure(str(e))
        return AdapterResult.success(f"Backup created at {backup_file}")

    def restore(self, backup_file: str) -> AdapterResult:
        missing = self._tar_missing()
        if missing is not None:
            return missing

        archive = self.config.root / backup_file.lstrip("/")
        if not archive.is_file():
            return AdapterResult.failure(
                f"Backup file not found: {backup_file}"
            )

        excludes = ["/" + archive.name, *self.config.backup_excludes]
        self._log("INFO", "Starting restore process...")
        try:
            self.archiver.extract(archive, self.config.root, excludes)
        except AdapterError as e:
            return AdapterResult.failure(str(e))
        return AdapterResult.success(f"Backup restored from {backup_file}")

    # -----------------------
    # Status
    # -----------------------

    def status(self) -> AdapterResult:
        self._log("INFO", "System Status:", "green")
        failed = [
            cmd for cmd in STATUS_COMMANDS
            if self.executor.run_tty(cmd).exit_code == 127
        ]
        if failed:
            return AdapterResult.failure(
                "Some status tools are unavailable: " + ", ".join(failed)
            )
        # The header line above is this command's status line
        return AdapterResult(True)

    # -----------------------
    # SSH
    # -----------------------

    def detect_architecture(self) -> str:
        """Map the machine name to a release asset suffix."""
        machine = self.machine_fn()
        arch = self.config.architectures.get(machine)
        if arch is None:
            raise AdapterError(f"Unsupported CPU architecture: {machine}")
        return arch

    def install_ssh(self) -> AdapterResult:
        target = self.config.ssh_binary
        if target.is_file():
            return AdapterResult.failure("SSH is already installed.")

        try:
            arch = self.detect_architecture()
        except AdapterError as e:
            return AdapterResult.failure(str(e))

        self._log("INFO", "Installing SSH.")
        url = self.config.ssh_url.format(arch=arch)

        try:
            self._download(url, target)
        except AdapterError as e:
            return AdapterResult.failure(str(e))

        try:
            mode = target.stat().st_mode
            target.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except OSError:
            return AdapterResult.failure("Failed to make ssh executable.")

        return AdapterResult.success("SSH installed successfully.")

    def _download(self, url: str, target: Path) -> None:
        temp_path = target.with_name(target.name + ".part")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with self.urlopen(url) as response:  # nosec: B310 - fixed https URL
                with temp_path.open("wb") as handle:
                    shutil.copyfileobj(response, handle)
            os.replace(temp_path, target)
        except Exception as exc:
            temp_path.unlink(missing_ok=True)
            raise AdapterError("Failed to download SSH.") from exc

    # -----------------------
    # Reinstall
    # -----------------------

    def reinstall(self, confirmed: bool) -> AdapterResult:
        """Wipe the root filesystem so the supervisor reprovisions it.

        Irreversible. The caller ends the session afterwards whatever the
        outcome.
        """
        if not confirmed:
            return AdapterResult.info("Reinstallation cancelled.", ok=False)

        self._log("INFO", "Proceeding with reinstallation...", "green")

        distro = read_os_release(self.config.os_release).get("ID", "")
        argv = ["rm", "-rf"]
        if distro not in BUSYBOX_RM_DISTROS:
            argv.append("--no-preserve-root")
        argv.append(str(self.config.root))

        exit_code, _, _, _, _ = self.executor.run_argv(argv)
        if exit_code != 0:
            return AdapterResult.failure(
                f"Reinstall wipe exited with status {exit_code}."
            )
        return AdapterResult.success("Reinstallation wipe completed.")
