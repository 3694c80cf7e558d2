from __future__ import annotations
# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of DenoBridge, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Unified exception hierarchy for DenoBridge.

All domain-specific exceptions derive from :class:`DenoBridgeError`,
enabling callers to catch the entire family with a single clause::

    try:
        worker = await create(script)
    except DenoBridgeError as e:
        logger.error("Worker error: %s", e)
"""


class DenoBridgeError(Exception):
    """Base exception for all DenoBridge errors."""


# ── Worker ───────────────────────────────────────────────────


class WorkerError(DenoBridgeError):
    """Worker process and local RPC errors."""


class LaunchError(WorkerError):
    """The Deno subprocess could not be spawned."""


class SocketTimeoutError(WorkerError):
    """The worker did not bind its Unix socket within the readiness bound."""


class EarlyExitError(WorkerError):
    """The Deno process exited before the worker became ready.

    Carries the exit code / signal and whatever output the process wrote
    before dying so callers can report why the script failed to start.
    """

    def __init__(
        self,
        message: str = "Deno process exited early",
        *,
        stdout: str = "",
        stderr: str = "",
        code: int | None = None,
        signal: str = "",
    ) -> None:
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr
        self.code = code
        self.signal = signal


class TransportError(WorkerError):
    """Request/response round trip over the worker socket failed."""


class ResponseParseError(WorkerError):
    """Worker response body could not be decoded as JSON."""


# ── Configuration ────────────────────────────────────────────


class ConfigError(DenoBridgeError):
    """Configuration errors."""


class ConfigNotFoundError(ConfigError):
    """Configuration file not found."""


class ConfigValidationError(ConfigError):
    """Configuration validation failure."""
