# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0
"""Global test fixtures for DenoBridge tests.

Provides socket-directory isolation, fake-runtime worker options and
orphan process cleanup.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import sys
import tempfile
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from denobridge.config import WorkerOptions

logger = logging.getLogger(__name__)

FAKE_RUNTIME = Path(__file__).resolve().parent / "helpers" / "fake_runtime.py"


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture
def socket_dir(monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Redirect worker sockets into a private, short temp directory.

    pytest's ``tmp_path`` is often too long for an AF_UNIX address, so a
    ``mkdtemp`` directory is used instead.
    """
    d = Path(tempfile.mkdtemp(prefix="dbs-"))
    monkeypatch.setenv("DENOBRIDGE_SOCKET_DIR", str(d))

    yield d

    _kill_orphan_workers(str(d))
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def fake_options(socket_dir: Path) -> Callable[..., WorkerOptions]:
    """Factory for options that launch ``tests/helpers/fake_runtime.py``."""

    def _make(**overrides: Any) -> WorkerOptions:
        values: dict[str, Any] = {
            "executable": [sys.executable, str(FAKE_RUNTIME)],
            "bootstrap_script_path": FAKE_RUNTIME,
            "socket_wait_timeout": 10.0,
        }
        values.update(overrides)
        return WorkerOptions(**values)

    return _make


def _kill_orphan_workers(socket_dir_str: str) -> None:
    """SIGKILL fake runtimes whose command line references *socket_dir_str*."""
    proc_dir = Path("/proc")
    if not proc_dir.exists():
        return

    for pid_dir in proc_dir.iterdir():
        if not pid_dir.name.isdigit():
            continue
        try:
            cmdline = (pid_dir / "cmdline").read_text().replace("\x00", " ")
            if "fake_runtime.py" in cmdline and socket_dir_str in cmdline:
                pid = int(pid_dir.name)
                logger.info("Killing orphan worker process PID=%s", pid)
                os.kill(pid, signal.SIGKILL)
        except (OSError, ValueError):
            pass
