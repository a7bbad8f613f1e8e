# VPS Shell - Interactive Root Shell for VPS Egg Containers
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
First-run provisioning for the VPS shell.

Responsibilities:
- Remove rootfs download leftovers once, then drop the install marker
- Make sure the autorun script exists and is executable

Important boundary:
- Once the install marker exists nothing here touches the filesystem
  again except the autorun check.
"""

from __future__ import annotations

import shutil
import stat
from pathlib import Path

from .config import ShellConfig


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path, ignore_errors=True)
    else:
        path.unlink(missing_ok=True)


def ensure_installed(config: ShellConfig) -> bool:
    """Run first-run cleanup unless the install marker exists.

    Returns:
        True if provisioning ran, False if the marker was already there.
    """
    marker = config.installed_marker
    if marker.exists():
        return False

    for leftover in config.install_leftovers:
        _remove(leftover)

    marker.parent.mkdir(parents=True, exist_ok=True)
    marker.touch()
    return True


def ensure_autorun(config: ShellConfig) -> Path:
    """Create an empty, executable autorun script if it is missing."""
    script = config.autorun_script
    if not script.exists():
        script.parent.mkdir(parents=True, exist_ok=True)
        script.touch()
        mode = script.stat().st_mode
        script.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script
