# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of DenoBridge, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Centralized path resolution for DenoBridge.

Socket directory can be overridden via the DENOBRIDGE_SOCKET_DIR
environment variable.
"""

from __future__ import annotations

import os
import tempfile
import uuid
from pathlib import Path

# Package root: where the code lives
PACKAGE_DIR = Path(__file__).resolve().parent

# Bootstrap script shipped with the package
BOOTSTRAP_DIR = PACKAGE_DIR / "bootstrap"
DEFAULT_BOOTSTRAP_SCRIPT_PATH = BOOTSTRAP_DIR / "index.ts"

SOCKET_SUFFIX = "-worker.sock"


def get_socket_dir() -> Path:
    """Return the directory worker sockets live in, respecting DENOBRIDGE_SOCKET_DIR."""
    env_val = os.environ.get("DENOBRIDGE_SOCKET_DIR")
    if env_val:
        return Path(env_val).expanduser().resolve()
    return Path(tempfile.gettempdir())


def allocate_socket_path() -> Path:
    """Return a fresh ``<socket-dir>/<random-id>-worker.sock`` path.

    Only the path is built; the bootstrap script creates and binds the file.
    """
    return get_socket_dir() / f"{uuid.uuid4().hex}{SOCKET_SUFFIX}"
