# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of DenoBridge, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Spawning of the Deno subprocess."""

from __future__ import annotations

import asyncio
import logging
import shlex
from collections.abc import Sequence

from denobridge.config import WorkerOptions
from denobridge.exceptions import LaunchError

logger = logging.getLogger(__name__)

MODE_SCRIPT = "script"
MODE_IMPORT = "import"

# asyncio's default 64KB line limit is too small for a worker dumping JSON
OUTPUT_LINE_LIMIT = 1024 * 1024


def build_command(
    options: WorkerOptions,
    run_flags: Sequence[str],
    script_args: Sequence[str],
) -> list[str]:
    """Build ``<executable...> run <flags...> <bootstrap> <socket> <mode> <payload>``."""
    return [
        *options.executable,
        "run",
        *run_flags,
        str(options.bootstrap_script_path),
        *script_args,
    ]


async def launch_process(
    options: WorkerOptions,
    run_flags: Sequence[str],
    script_args: Sequence[str],
) -> asyncio.subprocess.Process:
    """Spawn the runtime with piped stdout/stderr.

    Raises:
        LaunchError: If the executable could not be started.  Never retried.
    """
    cmd = build_command(options, run_flags, script_args)

    if options.print_launch_command:
        logger.info("Spawning deno process: %s", shlex.join(cmd))
    else:
        logger.debug("Command: %s", shlex.join(cmd))

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=options.env,
            cwd=options.cwd,
            limit=OUTPUT_LINE_LIMIT,
        )
    except OSError as e:
        logger.error("Failed to spawn %s: %s", cmd[0], e)
        raise LaunchError(f"Failed to spawn {cmd[0]!r}: {e}") from e

    logger.info("Process started: %s (PID %s)", cmd[0], process.pid)
    return process
