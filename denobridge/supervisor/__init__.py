# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0
"""
Worker supervision package.

Runs each Deno worker in its own subprocess and talks to it over HTTP on a
Unix domain socket.
"""

from __future__ import annotations

from denobridge.supervisor.exit_monitor import ExitBroadcast, ExitMonitor, ExitOutcome, ProcessSlot
from denobridge.supervisor.flags import compose_run_flags
from denobridge.supervisor.rpc import RPCClient
from denobridge.supervisor.worker import (
    DenoHTTPWorker,
    WorkerState,
    create,
    create_from_reference,
)

__all__ = [
    "DenoHTTPWorker",
    "ExitBroadcast",
    "ExitMonitor",
    "ExitOutcome",
    "ProcessSlot",
    "RPCClient",
    "WorkerState",
    "compose_run_flags",
    "create",
    "create_from_reference",
]
