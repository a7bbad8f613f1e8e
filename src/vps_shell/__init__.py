# VPS Shell - Interactive Root Shell for VPS Egg Containers
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
VPS shell core package.

A themed root shell for VPS egg containers: a handful of builtins
(backup, restore, status, install-ssh, reinstall, ...) in front of an
unrestricted /bin/sh fallback.
"""
from .kernel import Kernel as Kernel  # noqa: F401 (re-export)
