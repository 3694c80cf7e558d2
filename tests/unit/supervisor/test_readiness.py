"""Unit tests for the socket readiness gate."""
# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from denobridge.exceptions import EarlyExitError, SocketTimeoutError
from denobridge.supervisor.exit_monitor import ExitMonitor, ProcessSlot
from denobridge.supervisor.readiness import wait_for_socket


@pytest.mark.asyncio
async def test_returns_immediately_when_socket_exists(tmp_path: Path):
    socket_path = tmp_path / "w.sock"
    socket_path.touch()
    await asyncio.wait_for(wait_for_socket(socket_path, timeout=1.0), timeout=2.0)


@pytest.mark.asyncio
async def test_waits_for_socket_to_appear(tmp_path: Path):
    socket_path = tmp_path / "w.sock"

    async def _create_later():
        await asyncio.sleep(0.1)
        socket_path.touch()

    creator = asyncio.create_task(_create_later())
    await wait_for_socket(socket_path, timeout=5.0, interval=0.01)
    await creator
    assert socket_path.exists()


@pytest.mark.asyncio
async def test_timeout(tmp_path: Path):
    loop = asyncio.get_running_loop()
    started = loop.time()
    with pytest.raises(SocketTimeoutError):
        await wait_for_socket(tmp_path / "never.sock", timeout=0.2, interval=0.02)
    assert loop.time() - started >= 0.2


@pytest.mark.asyncio
async def test_polling_yields_to_other_tasks(tmp_path: Path):
    ticks = 0

    async def _ticker():
        nonlocal ticks
        while True:
            ticks += 1
            await asyncio.sleep(0.01)

    ticker = asyncio.create_task(_ticker())
    try:
        with pytest.raises(SocketTimeoutError):
            await wait_for_socket(tmp_path / "never.sock", timeout=0.2, interval=0.02)
    finally:
        ticker.cancel()
    assert ticks > 5


@pytest.mark.asyncio
async def test_exited_monitor_raises_early_exit(tmp_path: Path):
    process = await asyncio.create_subprocess_exec(
        sys.executable, "-c", "import sys; print('no bind', file=sys.stderr); sys.exit(2)",
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    monitor = ExitMonitor(process, ProcessSlot(process), tmp_path / "w.sock")
    monitor.start()

    with pytest.raises(EarlyExitError) as exc_info:
        await wait_for_socket(tmp_path / "w.sock", timeout=10.0, monitor=monitor)

    assert exc_info.value.code == 2
    assert "no bind" in exc_info.value.stderr


@pytest.mark.asyncio
async def test_live_monitor_does_not_short_circuit(tmp_path: Path):
    monitor = MagicMock(spec=ExitMonitor)
    monitor.exited = False
    with pytest.raises(SocketTimeoutError):
        await wait_for_socket(tmp_path / "w.sock", timeout=0.1, monitor=monitor)
