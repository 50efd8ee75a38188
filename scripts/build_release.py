"""Builds a release from the project this script lives in.

The project root is pinned to the parent of this script's directory, so the
result does not depend on the directory the script is started from.
"""

from __future__ import annotations

import sys
from pathlib import Path

from typesafe_release.cli import main

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def run(argv: list[str] | None = None) -> int:
    arguments = list(sys.argv[1:] if argv is None else argv)
    if "--project-root" not in arguments:
        arguments = ["--project-root", str(PROJECT_ROOT), *arguments]
    return main(arguments)


if __name__ == "__main__":
    raise SystemExit(run())
