# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of DenoBridge, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""
Worker handle: a supervised Deno process reachable as an HTTP endpoint.

Construction runs spawn -> socket readiness -> warm-up before a handle is
returned; any failure on the way kills the process and removes the socket.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import weakref
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit
from urllib.request import url2pathname

import httpx

from denobridge.config import WorkerOptions
from denobridge.exceptions import TransportError
from denobridge.paths import allocate_socket_path
from denobridge.supervisor.exit_monitor import ExitMonitor, ExitOutcome, ProcessSlot
from denobridge.supervisor.flags import compose_run_flags
from denobridge.supervisor.launcher import MODE_IMPORT, MODE_SCRIPT, launch_process
from denobridge.supervisor.readiness import wait_for_socket
from denobridge.supervisor.rpc import BodyArg, HeadersArg, RPCClient

logger = logging.getLogger(__name__)

# How long cleanup paths wait for the monitor to observe a kill
REAP_TIMEOUT = 5.0
# Grace period for a crash to be observed after a failed warm-up
WARM_EXIT_GRACE = 0.5

ExitCallback = Callable[[int | None, str], Any]


# ── Worker State ───────────────────────────────────────────────────

class WorkerState(Enum):
    """State of a worker handle."""
    STARTING = "starting"   # Process spawned, socket not yet confirmed
    READY = "ready"         # Socket bound and warm-up answered
    EXITED = "exited"       # Process gone (natural exit, terminate or shutdown)


def _supports_graceful_signal() -> bool:
    return sys.platform != "win32" and hasattr(signal, "SIGINT")


def _unlink_socket(socket_path: Path) -> None:
    try:
        socket_path.unlink(missing_ok=True)
    except OSError:
        logger.debug("Socket removal failed: %s", socket_path, exc_info=True)


def resolve_reference(url_or_path: str | Path) -> tuple[str, list[str]]:
    """Return the import specifier for *url_or_path* and paths needing read access.

    Local files (plain paths or ``file://`` URLs) become absolute ``file://``
    specifiers and are granted read access; remote URLs pass through as is.
    """
    if isinstance(url_or_path, Path):
        path = url_or_path.expanduser().resolve()
        return path.as_uri(), [str(path)]

    parsed = urlsplit(url_or_path)
    if parsed.scheme == "file":
        path = Path(url2pathname(parsed.path)).resolve()
        return path.as_uri(), [str(path)]
    # One-letter schemes are Windows drive letters, not URLs
    if len(parsed.scheme) > 1:
        return url_or_path, []

    path = Path(url_or_path).expanduser().resolve()
    return path.as_uri(), [str(path)]


# ── Worker Handle ──────────────────────────────────────────────────

class DenoHTTPWorker:
    """
    Handle for one supervised Deno worker process.

    Obtain instances through :func:`create` or :func:`create_from_reference`;
    use as an async context manager (or call :meth:`aclose`) so the process
    is released.  A handle garbage-collected while its process still runs
    kills the process as a last resort.
    """

    def __init__(
        self,
        socket_path: Path,
        slot: ProcessSlot,
        monitor: ExitMonitor,
        client: RPCClient,
    ) -> None:
        self._socket_path = socket_path
        self._slot = slot
        self._monitor = monitor
        self._client = client
        self._ready = False
        self._finalizer = weakref.finalize(self, slot.kill)

    @classmethod
    async def _launch(
        cls,
        mode: str,
        payload: str,
        extra_read_paths: Iterable[str],
        options: WorkerOptions | None,
    ) -> DenoHTTPWorker:
        options = options or WorkerOptions()
        socket_path = allocate_socket_path()
        run_flags = compose_run_flags(options.run_flags, socket_path, extra_read_paths)

        process = await launch_process(options, run_flags, [str(socket_path), mode, payload])
        slot = ProcessSlot(process)
        monitor = ExitMonitor(
            process, slot, socket_path, print_output=options.print_output
        )
        monitor.start()
        worker = cls(socket_path, slot, monitor, RPCClient(socket_path))

        try:
            if options.on_spawn is not None:
                options.on_spawn(process)

            await wait_for_socket(
                socket_path,
                timeout=options.socket_wait_timeout,
                interval=options.socket_poll_interval,
                monitor=monitor,
            )
            await worker._warm_up()

        except BaseException as e:
            logger.error("Failed to start worker (PID %s): %s", process.pid, e)
            await worker._abort()
            raise

        worker._ready = True
        logger.info("Worker ready: PID %s socket=%s", process.pid, socket_path)
        return worker

    async def _warm_up(self) -> None:
        try:
            await self._client.warm_request()
        except TransportError as e:
            # A script that crashes right after binding shows up here first
            if await self._monitor.wait(timeout=WARM_EXIT_GRACE) is not None:
                await self._monitor.drain_output()
                raise self._monitor.early_exit_error(
                    "Deno process exited during warm-up"
                ) from e
            raise

    async def _abort(self) -> None:
        """Release everything after a failed construction."""
        self._slot.kill()
        _unlink_socket(self._socket_path)
        await self._monitor.wait(timeout=REAP_TIMEOUT)
        await self._client.aclose()

    # ── Introspection ──────────────────────────────────────────────

    @property
    def state(self) -> WorkerState:
        if self._monitor.exited:
            return WorkerState.EXITED
        return WorkerState.READY if self._ready else WorkerState.STARTING

    @property
    def pid(self) -> int:
        return self._monitor.process.pid

    @property
    def socket_path(self) -> Path:
        return self._socket_path

    @property
    def exit_outcome(self) -> ExitOutcome | None:
        return self._monitor.outcome

    @property
    def stdout_tail(self) -> list[str]:
        """Most recent stdout lines (kept whether or not output is printed)."""
        return list(self._monitor.stdout_tail)

    @property
    def stderr_tail(self) -> list[str]:
        return list(self._monitor.stderr_tail)

    # ── Requests ───────────────────────────────────────────────────

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: HeadersArg = None,
        body: BodyArg = None,
    ) -> httpx.Response:
        """Send a request to the script's handler.

        A request racing the process's death fails with ``TransportError``.
        """
        return await self._client.request(url, method, headers, body)

    async def json_request(
        self,
        url: str,
        method: str = "GET",
        headers: HeadersArg = None,
        body: BodyArg = None,
    ) -> Any:
        return await self._client.json_request(url, method, headers, body)

    @asynccontextmanager
    async def stream(
        self,
        url: str,
        method: str = "GET",
        headers: HeadersArg = None,
        body: BodyArg = None,
    ) -> AsyncIterator[httpx.Response]:
        async with self._client.stream(url, method, headers, body) as response:
            yield response

    # ── Termination ────────────────────────────────────────────────

    def terminate(self) -> None:
        """Force-kill the process and remove the socket.  Safe to call repeatedly.

        Returns immediately; the exit is published by the monitor once the
        kill is observed, so subscribe before calling if you need it.
        """
        if self._slot.kill():
            logger.info("Killing process: PID %s", self.pid)
        _unlink_socket(self._socket_path)

    def shutdown(self) -> None:
        """Ask the process to stop gracefully (SIGINT), else force-kill it.

        The process stays in its slot, so a later :meth:`terminate` can still
        kill a process that ignores the request.
        """
        if not _supports_graceful_signal():
            self.terminate()
            return
        if self._slot.send_signal(signal.SIGINT):
            logger.info("Sent SIGINT to process: PID %s", self.pid)

    def on_exit(self, callback: ExitCallback) -> None:
        """Call ``callback(code, signal)`` once when the process exits.

        Only fires if registered before the exit is published; registering
        afterwards is a silent no-op.
        """
        future = self._monitor.subscribe()
        # The callback outlives the handle; it must not keep it alive
        pid = self.pid

        def _deliver(done: asyncio.Future[ExitOutcome]) -> None:
            if done.cancelled():
                return
            outcome = done.result()
            try:
                callback(outcome.code, outcome.signal)
            except Exception:
                logger.exception("on_exit callback failed for PID %s", pid)

        future.add_done_callback(_deliver)

    def subscribe_exit(self) -> asyncio.Future[ExitOutcome]:
        """Future resolving to the exit outcome, with the same timing rule as :meth:`on_exit`."""
        return self._monitor.subscribe()

    async def aclose(self) -> None:
        """Terminate the process, wait for it to be reaped and close the client.

        The output tails are complete once this returns.
        """
        self.terminate()
        await self._monitor.wait(timeout=REAP_TIMEOUT)
        await self._monitor.drain_output()
        await self._client.aclose()

    async def __aenter__(self) -> DenoHTTPWorker:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


# ── Factories ──────────────────────────────────────────────────────

async def create(script: str, options: WorkerOptions | None = None) -> DenoHTTPWorker:
    """Start a worker running *script* (module source exporting a ``fetch`` handler)."""
    return await DenoHTTPWorker._launch(MODE_SCRIPT, script, (), options)


async def create_from_reference(
    url_or_path: str | Path,
    options: WorkerOptions | None = None,
) -> DenoHTTPWorker:
    """Start a worker importing the module at *url_or_path*."""
    specifier, read_paths = resolve_reference(url_or_path)
    return await DenoHTTPWorker._launch(MODE_IMPORT, specifier, read_paths, options)
