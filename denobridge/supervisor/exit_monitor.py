# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of DenoBridge, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""
Exit monitoring for the Deno subprocess.

The monitor owns two background duties started right after spawn:

- a wait loop that observes termination, reaps the process slot, removes
  the socket file and publishes a single :class:`ExitOutcome`;
- an output relay per pipe that drains the child's stdout/stderr, keeps a
  short tail for diagnostics and optionally logs each line.
"""

from __future__ import annotations

import asyncio
import logging
import signal as _signal
import threading
from collections import deque
from dataclasses import dataclass
from pathlib import Path

from denobridge.exceptions import EarlyExitError
from denobridge.logging_config import WORKER_PID_KEY

logger = logging.getLogger(__name__)

OUTPUT_MARKER = "[deno]"
OUTPUT_TAIL_LINES = 50


# ── Exit Outcome ───────────────────────────────────────────────────


@dataclass(frozen=True)
class ExitOutcome:
    """How the worker process ended.  ``signal`` is ``""`` for a normal exit."""

    code: int | None
    signal: str = ""


def classify_exit(returncode: int) -> ExitOutcome:
    """Map a ``returncode`` to an outcome (negative means killed by signal)."""
    if returncode >= 0:
        return ExitOutcome(code=returncode, signal="")
    try:
        name = _signal.Signals(-returncode).name
    except ValueError:
        name = f"SIG{-returncode}"
    return ExitOutcome(code=None, signal=name)


# ── Process Slot ───────────────────────────────────────────────────


class ProcessSlot:
    """Exclusive-access holder for the worker process.

    Whoever :meth:`take`\\ s the process owns it; everyone after observes an
    empty slot.  The lock is a plain ``threading.Lock`` because the slot is
    touched from synchronous paths (``terminate()``, GC finalizers) and the
    critical sections never await.
    """

    def __init__(self, process: asyncio.subprocess.Process | None) -> None:
        self._process = process
        self._lock = threading.Lock()

    @property
    def occupied(self) -> bool:
        with self._lock:
            return self._process is not None

    def take(self) -> asyncio.subprocess.Process | None:
        with self._lock:
            process, self._process = self._process, None
            return process

    def kill(self) -> bool:
        """Take the process and SIGKILL it.  Returns False if already gone."""
        process = self.take()
        if process is None:
            return False
        try:
            process.kill()
        except ProcessLookupError:
            return False
        return True

    def send_signal(self, sig: int) -> bool:
        """Signal the process without taking it.  Returns False if already gone."""
        with self._lock:
            if self._process is None:
                return False
            try:
                self._process.send_signal(sig)
            except ProcessLookupError:
                return False
            return True


# ── Exit Broadcast ─────────────────────────────────────────────────


class ExitBroadcast:
    """Single-publisher, multi-subscriber channel carrying one value.

    Only subscribers registered before :meth:`send` receive the outcome.
    A future obtained after the send never resolves; there is no replay.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Future[ExitOutcome]] = []
        self._sent = False

    @property
    def sent(self) -> bool:
        return self._sent

    def subscribe(self) -> asyncio.Future[ExitOutcome]:
        future: asyncio.Future[ExitOutcome] = asyncio.get_running_loop().create_future()
        if not self._sent:
            self._subscribers.append(future)
        return future

    def send(self, outcome: ExitOutcome) -> int:
        """Deliver *outcome* to current subscribers.  Returns how many got it."""
        if self._sent:
            return 0
        self._sent = True
        subscribers, self._subscribers = self._subscribers, []
        delivered = 0
        for future in subscribers:
            if not future.done():
                future.set_result(outcome)
                delivered += 1
        return delivered


# ── Exit Monitor ───────────────────────────────────────────────────


class ExitMonitor:
    """Background wait loop and output relay for one worker process."""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        slot: ProcessSlot,
        socket_path: Path,
        *,
        print_output: bool = False,
    ) -> None:
        self.process = process
        self.slot = slot
        self.socket_path = socket_path
        self.print_output = print_output

        self.broadcast = ExitBroadcast()
        self.stdout_tail: deque[str] = deque(maxlen=OUTPUT_TAIL_LINES)
        self.stderr_tail: deque[str] = deque(maxlen=OUTPUT_TAIL_LINES)
        self._outcome: ExitOutcome | None = None
        self._wait_task: asyncio.Task | None = None
        self._relay_tasks: list[asyncio.Task] = []

    @property
    def outcome(self) -> ExitOutcome | None:
        """The exit outcome, or None while the process is alive."""
        return self._outcome

    @property
    def exited(self) -> bool:
        return self._outcome is not None

    def start(self) -> None:
        if self._wait_task is not None:
            raise RuntimeError("Exit monitor already started")

        pid = self.process.pid
        self._wait_task = asyncio.create_task(
            self._wait_loop(), name=f"deno-{pid}-wait"
        )
        for stream, tail, level in (
            (self.process.stdout, self.stdout_tail, logging.INFO),
            (self.process.stderr, self.stderr_tail, logging.WARNING),
        ):
            if stream is None:
                continue
            self._relay_tasks.append(
                asyncio.create_task(
                    self._relay_loop(stream, tail, level),
                    name=f"deno-{pid}-relay",
                )
            )

    def subscribe(self) -> asyncio.Future[ExitOutcome]:
        return self.broadcast.subscribe()

    async def _wait_loop(self) -> None:
        try:
            returncode = await self.process.wait()
            outcome = classify_exit(returncode)
        except OSError:
            logger.debug("Wait on PID %s failed", self.process.pid, exc_info=True)
            outcome = ExitOutcome(code=None, signal="SIGKILL")

        # Reap: nothing may signal this pid any more
        self.slot.take()

        try:
            self.socket_path.unlink(missing_ok=True)
        except OSError:
            logger.debug("Socket removal failed: %s", self.socket_path, exc_info=True)

        self._outcome = outcome
        logger.info(
            "Process exited: PID %s (code=%s, signal=%s)",
            self.process.pid, outcome.code, outcome.signal or "N/A",
        )
        self.broadcast.send(outcome)

    async def _relay_loop(
        self,
        stream: asyncio.StreamReader,
        tail: deque[str],
        level: int,
    ) -> None:
        while True:
            try:
                line_bytes = await stream.readline()
            except ValueError:
                # Line exceeded the reader limit; asyncio already discarded it
                logger.debug("Oversized output line from PID %s discarded", self.process.pid)
                continue
            except (ConnectionResetError, BrokenPipeError):
                break

            if not line_bytes:
                break

            line = line_bytes.decode("utf-8", errors="replace").rstrip("\r\n")
            tail.append(line)
            if self.print_output:
                logger.log(
                    level, "%s %s", OUTPUT_MARKER, line,
                    extra={WORKER_PID_KEY: self.process.pid},
                )

    async def wait(self, timeout: float | None = None) -> ExitOutcome | None:
        """Wait for the wait loop to finish (bounded by *timeout*)."""
        if self._wait_task is None:
            return self._outcome
        await asyncio.wait([self._wait_task], timeout=timeout)
        return self._outcome

    async def drain_output(self, timeout: float = 1.0) -> None:
        """Give the relays a moment to read whatever the process left in its pipes."""
        pending = [t for t in self._relay_tasks if not t.done()]
        if pending:
            await asyncio.wait(pending, timeout=timeout)

    def early_exit_error(self, message: str) -> EarlyExitError:
        outcome = self._outcome or ExitOutcome(code=None)
        stderr = "\n".join(self.stderr_tail)
        full_message = (
            f"{message}: code: {outcome.code}, signal: {outcome.signal or 'N/A'}"
            + (f"\n{stderr}" if stderr else "")
        )
        return EarlyExitError(
            full_message,
            stdout="\n".join(self.stdout_tail),
            stderr=stderr,
            code=outcome.code,
            signal=outcome.signal,
        )
