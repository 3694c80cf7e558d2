# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of DenoBridge, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Socket readiness gate: no request is sent before the worker socket exists."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from denobridge.exceptions import SocketTimeoutError
from denobridge.supervisor.exit_monitor import ExitMonitor

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_TIMEOUT = 10.0
DEFAULT_POLL_INTERVAL = 0.02


async def wait_for_socket(
    socket_path: Path,
    timeout: float = DEFAULT_SOCKET_TIMEOUT,
    interval: float = DEFAULT_POLL_INTERVAL,
    monitor: ExitMonitor | None = None,
) -> None:
    """Wait for the socket file to be created.

    Raises:
        SocketTimeoutError: The file did not appear within *timeout* seconds.
        EarlyExitError: *monitor* saw the process exit before the file appeared.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if socket_path.exists():
            logger.debug("Socket file created: %s", socket_path)
            return
        # Crash before bind: report it instead of waiting out the timeout
        if monitor is not None and monitor.exited:
            await monitor.drain_output()
            raise monitor.early_exit_error("Deno process exited before it was ready")
        await asyncio.sleep(interval)

    raise SocketTimeoutError(
        f"Timeout waiting for socket file ({timeout}s): {socket_path}"
    )
