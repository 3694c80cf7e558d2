# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of DenoBridge, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Worker configuration for DenoBridge.

Defines the Pydantic model passed to worker construction and a loader for
JSON configuration files.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from denobridge.exceptions import ConfigNotFoundError, ConfigValidationError
from denobridge.paths import DEFAULT_BOOTSTRAP_SCRIPT_PATH

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DENOBRIDGE_CONFIG"
EXECUTABLE_ENV_VAR = "DENOBRIDGE_DENO"


def _default_executable() -> list[str]:
    env_val = os.environ.get(EXECUTABLE_ENV_VAR)
    if env_val:
        return [env_val]
    return ["deno"]


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class WorkerOptions(BaseModel):
    """Options for spawning a Deno HTTP worker.  Immutable once built."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    # Command (plus leading args) invoking the runtime, e.g. ["sandbox", "run", "deno"]
    executable: list[str] = Field(default_factory=_default_executable)
    bootstrap_script_path: Path = DEFAULT_BOOTSTRAP_SCRIPT_PATH
    run_flags: list[str] = []
    print_output: bool = False
    print_launch_command: bool = False

    env: dict[str, str] | None = None  # None = inherit the host environment
    cwd: Path | None = None
    on_spawn: Callable[[Any], None] | None = None

    socket_wait_timeout: float = Field(default=10.0, gt=0)
    socket_poll_interval: float = Field(default=0.02, gt=0)

    @field_validator("executable", mode="before")
    @classmethod
    def _normalize_executable(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("executable")
    @classmethod
    def _require_command(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("executable must not be empty")
        return value


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def load_options(path: Path | None = None, **overrides: Any) -> WorkerOptions:
    """Load worker options from a JSON file.

    If *path* is ``None`` the ``DENOBRIDGE_CONFIG`` environment variable is
    consulted; when neither is set the defaults are returned.  Keyword
    *overrides* (e.g. ``on_spawn``, which cannot live in JSON) win over
    file values.
    """
    if path is None:
        env_val = os.environ.get(CONFIG_ENV_VAR)
        path = Path(env_val).expanduser() if env_val else None

    data: dict[str, Any] = {}
    if path is not None:
        if not path.is_file():
            raise ConfigNotFoundError(f"Worker config not found: {path}")
        logger.debug("Loading worker config from %s", path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            logger.error("Failed to parse %s: %s", path, exc)
            raise ConfigValidationError(f"Invalid JSON in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigValidationError(f"Worker config must be a JSON object: {path}")

    data.update(overrides)
    try:
        return WorkerOptions.model_validate(data)
    except ValidationError as exc:
        raise ConfigValidationError(str(exc)) from exc
