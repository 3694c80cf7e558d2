"""Unit tests for exit classification, the process slot, the exit broadcast and the monitor."""
# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from denobridge.supervisor.exit_monitor import (
    ExitBroadcast,
    ExitMonitor,
    ExitOutcome,
    ProcessSlot,
    classify_exit,
)


async def _spawn_python(code: str) -> asyncio.subprocess.Process:
    return await asyncio.create_subprocess_exec(
        sys.executable, "-c", code,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )


# ── classify_exit ─────────────────────────────────────────


class TestClassifyExit:
    def test_normal_exit(self):
        assert classify_exit(0) == ExitOutcome(code=0, signal="")
        assert classify_exit(3) == ExitOutcome(code=3, signal="")

    def test_killed_by_signal(self):
        assert classify_exit(-signal.SIGKILL) == ExitOutcome(code=None, signal="SIGKILL")
        assert classify_exit(-signal.SIGINT) == ExitOutcome(code=None, signal="SIGINT")

    def test_unknown_signal_number(self):
        assert classify_exit(-250) == ExitOutcome(code=None, signal="SIG250")


# ── ProcessSlot ───────────────────────────────────────────


class TestProcessSlot:
    def test_take_empties_slot(self):
        process = MagicMock()
        slot = ProcessSlot(process)

        assert slot.take() is process
        assert slot.take() is None
        assert slot.occupied is False

    def test_kill_once(self):
        process = MagicMock()
        slot = ProcessSlot(process)

        assert slot.kill() is True
        assert slot.kill() is False
        process.kill.assert_called_once_with()

    def test_kill_already_dead_process(self):
        process = MagicMock()
        process.kill.side_effect = ProcessLookupError
        slot = ProcessSlot(process)

        assert slot.kill() is False
        assert slot.occupied is False

    def test_send_signal_keeps_process(self):
        process = MagicMock()
        slot = ProcessSlot(process)

        assert slot.send_signal(signal.SIGINT) is True
        process.send_signal.assert_called_once_with(signal.SIGINT)
        assert slot.occupied is True

    def test_send_signal_after_take_is_noop(self):
        process = MagicMock()
        slot = ProcessSlot(process)
        slot.take()

        assert slot.send_signal(signal.SIGINT) is False
        process.send_signal.assert_not_called()


# ── ExitBroadcast ─────────────────────────────────────────


class TestExitBroadcast:
    @pytest.mark.asyncio
    async def test_all_early_subscribers_receive_once(self):
        broadcast = ExitBroadcast()
        first = broadcast.subscribe()
        second = broadcast.subscribe()

        outcome = ExitOutcome(code=0)
        assert broadcast.send(outcome) == 2

        assert await first == outcome
        assert await second == outcome

    @pytest.mark.asyncio
    async def test_late_subscriber_never_resolves(self):
        broadcast = ExitBroadcast()
        broadcast.send(ExitOutcome(code=1))

        late = broadcast.subscribe()
        await asyncio.sleep(0)
        assert not late.done()
        late.cancel()

    @pytest.mark.asyncio
    async def test_second_send_ignored(self):
        broadcast = ExitBroadcast()
        sub = broadcast.subscribe()

        assert broadcast.send(ExitOutcome(code=0)) == 1
        assert broadcast.send(ExitOutcome(code=None, signal="SIGKILL")) == 0
        assert (await sub).code == 0

    @pytest.mark.asyncio
    async def test_cancelled_subscriber_skipped(self):
        broadcast = ExitBroadcast()
        cancelled = broadcast.subscribe()
        kept = broadcast.subscribe()
        cancelled.cancel()

        assert broadcast.send(ExitOutcome(code=0)) == 1
        assert kept.result() == ExitOutcome(code=0)


# ── ExitMonitor ───────────────────────────────────────────


class TestExitMonitor:
    @pytest.mark.asyncio
    async def test_natural_exit_publishes_and_removes_socket(self, tmp_path: Path):
        socket_path = tmp_path / "w.sock"
        socket_path.touch()
        process = await _spawn_python("import sys; sys.exit(7)")
        slot = ProcessSlot(process)
        monitor = ExitMonitor(process, slot, socket_path)

        sub = monitor.subscribe()
        monitor.start()

        outcome = await asyncio.wait_for(sub, timeout=10)
        assert outcome == ExitOutcome(code=7, signal="")
        assert monitor.outcome == outcome
        assert monitor.exited
        assert not socket_path.exists()
        assert slot.occupied is False

    @pytest.mark.asyncio
    async def test_kill_classified_as_signal(self, tmp_path: Path):
        process = await _spawn_python("import time; time.sleep(60)")
        slot = ProcessSlot(process)
        monitor = ExitMonitor(process, slot, tmp_path / "w.sock")
        sub = monitor.subscribe()
        monitor.start()

        assert slot.kill() is True
        outcome = await asyncio.wait_for(sub, timeout=10)
        assert outcome == ExitOutcome(code=None, signal="SIGKILL")

    @pytest.mark.asyncio
    async def test_output_tails_collected(self, tmp_path: Path):
        process = await _spawn_python(
            "import sys; print('out-1'); print('out-2'); print('err-1', file=sys.stderr)"
        )
        monitor = ExitMonitor(process, ProcessSlot(process), tmp_path / "w.sock")
        monitor.start()

        await monitor.wait(timeout=10)
        await monitor.drain_output()
        assert list(monitor.stdout_tail) == ["out-1", "out-2"]
        assert list(monitor.stderr_tail) == ["err-1"]

    @pytest.mark.asyncio
    async def test_tail_is_bounded(self, tmp_path: Path):
        process = await _spawn_python("for i in range(200): print(i)")
        monitor = ExitMonitor(process, ProcessSlot(process), tmp_path / "w.sock")
        monitor.start()

        await monitor.wait(timeout=10)
        await monitor.drain_output()
        assert len(monitor.stdout_tail) == 50
        assert monitor.stdout_tail[-1] == "199"

    @pytest.mark.asyncio
    async def test_print_output_logs_tagged_lines(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ):
        process = await _spawn_python(
            "import sys; print('hello'); print('oops', file=sys.stderr)"
        )
        monitor = ExitMonitor(
            process, ProcessSlot(process), tmp_path / "w.sock", print_output=True
        )
        with caplog.at_level(logging.INFO, logger="denobridge.supervisor.exit_monitor"):
            monitor.start()
            await monitor.wait(timeout=10)
            await monitor.drain_output()

        records = {r.getMessage(): r.levelno for r in caplog.records}
        assert records["[deno] hello"] == logging.INFO
        assert records["[deno] oops"] == logging.WARNING
        relayed = [r for r in caplog.records if r.getMessage().startswith("[deno]")]
        assert {r.worker_pid for r in relayed} == {process.pid}

    @pytest.mark.asyncio
    async def test_output_not_logged_without_print_output(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ):
        process = await _spawn_python("print('quiet')")
        monitor = ExitMonitor(process, ProcessSlot(process), tmp_path / "w.sock")
        with caplog.at_level(logging.INFO, logger="denobridge.supervisor.exit_monitor"):
            monitor.start()
            await monitor.wait(timeout=10)
            await monitor.drain_output()

        assert not any("[deno]" in r.getMessage() for r in caplog.records)
        assert list(monitor.stdout_tail) == ["quiet"]

    @pytest.mark.asyncio
    async def test_early_exit_error_carries_output(self, tmp_path: Path):
        process = await _spawn_python(
            "import sys; print('partial'); print('SyntaxError: bad', file=sys.stderr); sys.exit(1)"
        )
        monitor = ExitMonitor(process, ProcessSlot(process), tmp_path / "w.sock")
        monitor.start()
        await monitor.wait(timeout=10)
        await monitor.drain_output()

        err = monitor.early_exit_error("Deno process exited before it was ready")
        assert err.code == 1
        assert err.signal == ""
        assert err.stdout == "partial"
        assert err.stderr == "SyntaxError: bad"
        assert "code: 1" in str(err)
        assert "SyntaxError: bad" in str(err)

    @pytest.mark.asyncio
    async def test_start_twice_rejected(self, tmp_path: Path):
        process = await _spawn_python("pass")
        monitor = ExitMonitor(process, ProcessSlot(process), tmp_path / "w.sock")
        monitor.start()
        with pytest.raises(RuntimeError):
            monitor.start()
        await monitor.wait(timeout=10)
