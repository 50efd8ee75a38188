"""Blocking external-process calls used by the compile, generate and sign stages."""
from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Sequence

_LOGGER = logging.getLogger(__name__)

MASK = "******"


def render_command(command: Sequence[str], *, secrets: Sequence[str] = ()) -> str:
    """Return a printable command line with every secret argument masked."""

    hidden = {secret for secret in secrets if secret}
    return " ".join(MASK if part in hidden else part for part in command)


def run_command(
    command: Sequence[str],
    *,
    cwd: Path,
    timeout: float | None = None,
    capture: bool = False,
    secrets: Sequence[str] = (),
    logger: logging.Logger | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run ``command`` to completion and return the completed process.

    The exit code is the only signal consulted by callers. ``FileNotFoundError``
    (tool not installed) and ``subprocess.TimeoutExpired`` propagate.
    """

    log = logger or _LOGGER
    log.info("Running: %s", render_command(command, secrets=secrets))
    return subprocess.run(
        list(command),
        cwd=cwd,
        check=False,
        capture_output=capture,
        text=True,
        timeout=timeout,
    )


__all__ = ["MASK", "render_command", "run_command"]
