# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from denobridge.config.models import (
    CONFIG_ENV_VAR,
    EXECUTABLE_ENV_VAR,
    WorkerOptions,
    load_options,
)

__all__ = [
    "CONFIG_ENV_VAR",
    "EXECUTABLE_ENV_VAR",
    "WorkerOptions",
    "load_options",
]
