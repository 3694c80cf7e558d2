# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of DenoBridge, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Logging configuration for processes hosting DenoBridge workers.

Library modules only ever call ``logging.getLogger(__name__)``; nothing is
configured on import.  Hosts that want DenoBridge's output format call
:func:`setup_logging` once at startup.

Worker output relayed by the exit monitor arrives as ordinary stdlib
records carrying the worker's pid in ``record.worker_pid``.  structlog runs
in stdlib-compatible mode so those records are rendered with a
``worker_pid`` field, which keeps interleaved output from several workers
apart.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

# ``extra=`` key the exit monitor sets on relayed worker output
WORKER_PID_KEY = "worker_pid"

LOG_FILE_NAME = "denobridge.log"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# Per-request chatter from the RPC client's HTTP stack
_NOISY_LOGGERS = ("httpx", "httpcore")


# ── Processors ─────────────────────────────────────────────────


def add_worker_pid(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Copy ``worker_pid`` from a relayed stdlib record into the event."""
    record = event_dict.get("_record")
    pid = getattr(record, WORKER_PID_KEY, None)
    if pid is not None:
        event_dict.setdefault(WORKER_PID_KEY, pid)
    return event_dict


def _pre_chain() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_worker_pid,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]


def _formatter(renderer: Any, pre_chain: list) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=pre_chain,
    )


def _file_handler(log_dir: Path, json_file: bool, pre_chain: list) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    renderer = (
        structlog.processors.JSONRenderer()
        if json_file
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(_formatter(renderer, pre_chain))
    return handler


# ── Setup ──────────────────────────────────────────────────────


def setup_logging(
    level: str = "INFO",
    log_dir: Path | None = None,
    json_file: bool = True,
) -> None:
    """Configure root logging for a DenoBridge host.

    Args:
        level: Root log level name; unknown names fall back to INFO.
        log_dir: Directory for ``denobridge.log``.  None disables file logging.
        json_file: Render the file log as JSON lines instead of plain text.
    """
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(_formatter(structlog.dev.ConsoleRenderer(), pre_chain))
    root.addHandler(console)

    if log_dir is not None:
        root.addHandler(_file_handler(log_dir, json_file, pre_chain))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
