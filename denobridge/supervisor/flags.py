# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of DenoBridge, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Sandbox permission flags for the Deno subprocess.

The bootstrap script must be able to create, read and write the worker
socket.  :func:`compose_run_flags` grants exactly that on top of whatever
the caller asked for, reusing a caller's flag of the same category rather
than adding a second grant.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path

ALLOW_ALL_FLAGS = frozenset({"--allow-all", "-A"})

# Short aliases of the unrestricted per-category flags
SHORT_FLAGS = {
    "read": "-R",
    "write": "-W",
}


def _extend_flag_values(flag: str, paths: Sequence[str]) -> str:
    """Append *paths* missing from an enumerated ``--allow-x=a,b`` flag."""
    name, _, raw_values = flag.partition("=")
    values = [v for v in raw_values.split(",") if v]
    for path in paths:
        if path not in values:
            values.append(path)
    return f"{name}={','.join(values)}"


def _grant(flags: list[str], category: str, paths: Sequence[str]) -> None:
    """Ensure *flags* grants ``--allow-<category>`` for *paths*, in place."""
    bare = f"--allow-{category}"
    prefix = bare + "="
    unrestricted = ALLOW_ALL_FLAGS | {bare, SHORT_FLAGS.get(category, bare)}

    if any(flag in unrestricted for flag in flags):
        return

    for i, flag in enumerate(flags):
        if flag.startswith(prefix):
            flags[i] = _extend_flag_values(flag, paths)
            return

    flags.append(prefix + ",".join(paths))


def compose_run_flags(
    run_flags: Iterable[str],
    socket_path: Path,
    extra_read_paths: Iterable[str | Path] = (),
) -> list[str]:
    """Return *run_flags* augmented with read/write access to *socket_path*.

    Args:
        run_flags: Caller-supplied ``deno run`` flags (never reordered or dropped).
        socket_path: Worker socket the bootstrap script binds.
        extra_read_paths: Additional paths that must be readable, e.g. an
            imported local module.

    Returns:
        A new list; calling again on the result returns an equal list.
    """
    flags = list(run_flags)
    socket = str(socket_path)
    read_paths = [socket, *(str(p) for p in extra_read_paths)]

    _grant(flags, "read", read_paths)
    _grant(flags, "write", [socket])
    return flags
