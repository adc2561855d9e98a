# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/remote/operations.py

from __future__ import annotations

import posixpath
import shlex
import textwrap
from dataclasses import dataclass


@dataclass(frozen=True)
class RemoteOperation:
    """
    An opaque, idempotent unit of remote work.

    name      short label used in logs and errors
    script    bash snippet run on the node
    sudo      run through non-interactive sudo
    sensitive the script must never be echoed to logs
    """
    name: str
    script: str
    sudo: bool = False
    sensitive: bool = False

    def command(self) -> str:
        body = "set -eo pipefail\n" + textwrap.dedent(self.script).strip() + "\n"
        wrapped = f"bash -c {shlex.quote(body)}"
        return f"sudo -n {wrapped}" if self.sudo else wrapped

    def describe(self) -> str:
        if self.sensitive:
            return f"{self.name} <redacted>"
        return f"{self.name}: {' '.join(self.script.split())}"


def read_file(path: str, *, sudo: bool = True) -> RemoteOperation:
    return RemoteOperation(
        name=f"read {path}",
        script=f"cat -- {shlex.quote(path)}",
        sudo=sudo,
        sensitive=True,
    )


def write_stdin_to(
    path: str,
    *,
    mode: int = 0o600,
    owner: str | None = None,
    dir_mode: int = 0o755,
    sudo: bool = True,
) -> RemoteOperation:
    """
    Stream stdin straight into *path*; nothing is staged in a temp file.
    """
    q = shlex.quote(path)
    parent = shlex.quote(posixpath.dirname(path) or "/")
    lines = [
        f"mkdir -p -m {dir_mode:o} {parent}",
        "umask 077",
        f"cat > {q}",
        f"chmod {mode:o} {q}",
    ]
    if owner:
        # the directory may have just been created by root under sudo
        lines.insert(1, f"chown {shlex.quote(owner)} {parent}")
        lines.append(f"chown {shlex.quote(owner)} {q}")
    return RemoteOperation(
        name=f"write {path}",
        script="\n".join(lines),
        sudo=sudo,
        sensitive=True,
    )
