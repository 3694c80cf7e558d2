# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0
"""Run Deno scripts as supervised HTTP workers over Unix domain sockets."""

from __future__ import annotations

from denobridge.config import WorkerOptions, load_options
from denobridge.exceptions import (
    ConfigError,
    DenoBridgeError,
    EarlyExitError,
    LaunchError,
    ResponseParseError,
    SocketTimeoutError,
    TransportError,
    WorkerError,
)
from denobridge.supervisor import (
    DenoHTTPWorker,
    ExitOutcome,
    WorkerState,
    create,
    create_from_reference,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "DenoBridgeError",
    "DenoHTTPWorker",
    "EarlyExitError",
    "ExitOutcome",
    "LaunchError",
    "ResponseParseError",
    "SocketTimeoutError",
    "TransportError",
    "WorkerError",
    "WorkerOptions",
    "WorkerState",
    "create",
    "create_from_reference",
    "load_options",
]
