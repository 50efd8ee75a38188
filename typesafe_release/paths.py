"""Project-root discovery and working-directory pinning."""
from __future__ import annotations

import contextlib
import logging
import os
from os import PathLike
from pathlib import Path
from typing import Iterable, Iterator, Optional

_LOGGER = logging.getLogger(__name__)

DEFAULT_SENTINELS: tuple[str, ...] = ("Cargo.toml", "release.toml")


def find_project_root(
    root_hint: Optional[PathLike[str] | str] = None,
    *,
    sentinels: Iterable[str] = DEFAULT_SENTINELS,
    max_depth: Optional[int] = None,
) -> Path:
    """Return the closest directory at or above ``root_hint`` holding a sentinel.

    ``root_hint`` defaults to the current working directory and may point at a
    file, in which case the search starts from its parent.
    """

    start = Path(root_hint).expanduser() if root_hint is not None else Path.cwd()
    start = start.resolve()
    if start.is_file():
        start = start.parent
    sentinel_names = tuple(sentinels)
    if not sentinel_names:
        raise ValueError("At least one sentinel is required to locate the project root")

    for depth, candidate in enumerate((start, *start.parents)):
        if max_depth is not None and depth > max_depth:
            break
        if any((candidate / name).exists() for name in sentinel_names):
            return candidate
    raise FileNotFoundError(
        f"No project root found above {start} (looked for: {', '.join(sentinel_names)})"
    )


@contextlib.contextmanager
def pinned_root(project_root: Path) -> Iterator[Path]:
    """Make ``project_root`` the working directory for the duration of the block."""

    root = Path(project_root).resolve()
    if not root.is_dir():
        raise NotADirectoryError(f"Project root is not a directory: {root}")
    original_cwd = Path.cwd()
    if original_cwd == root:
        yield root
        return

    _LOGGER.debug("Pinning working directory to %s (was %s)", root, original_cwd)
    os.chdir(root)
    try:
        yield root
    finally:
        os.chdir(original_cwd)


def is_within(path: Path, parent: Path) -> bool:
    try:
        path.resolve().relative_to(parent.resolve())
    except ValueError:
        return False
    return True


__all__ = ["DEFAULT_SENTINELS", "find_project_root", "is_within", "pinned_root"]
