"""Copies optional runtime dependencies next to the built executable."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterable

from .manifest import OptionalResource, ResourceStatus
from .results import Stage, StageResult

_LOGGER = logging.getLogger(__name__)


def copy_resource(source: Path, destination: Path) -> None:
    """Copy a file or a directory tree to ``destination``, replacing older copies."""

    destination.parent.mkdir(parents=True, exist_ok=True)
    if source.is_dir():
        shutil.copytree(source, destination, dirs_exist_ok=True)
    else:
        shutil.copy2(source, destination)


class DependencyStager:
    """Processes the resource manifest; every resource is handled independently."""

    def __init__(self, project_root: Path, *, logger: logging.Logger | None = None) -> None:
        self._project_root = project_root
        self._logger = logger or _LOGGER

    def inspect(self, resources: Iterable[OptionalResource]) -> list[ResourceStatus]:
        return [
            ResourceStatus(resource=resource, present=resource.is_present(self._project_root))
            for resource in resources
        ]

    def stage(self, resources: Iterable[OptionalResource]) -> StageResult:
        statuses = self.inspect(resources)
        missing: list[str] = []
        failed: list[str] = []

        for status in statuses:
            resource = status.resource
            if not status.present:
                self._logger.info("Optional resource '%s' not found at %s; skipping", resource.name, resource.source)
                missing.append(resource.name)
                continue
            source = resource.source_path(self._project_root)
            for destination in resource.runtime_paths(self._project_root):
                try:
                    copy_resource(source, destination)
                except OSError as exc:
                    message = f"could not copy {resource.name} to {destination}: {exc}"
                    self._logger.warning("[advisory] %s", message)
                    status.errors.append(message)
                    continue
                status.copied.append(destination)
                self._logger.debug("Copied %s -> %s", source, destination)
            if status.errors:
                failed.append(resource.name)

        present = [status.name for status in statuses if status.present]
        self._logger.info(
            "Optional resources: %d present (%s), %d missing (%s)",
            len(present),
            ", ".join(present) or "none",
            len(missing),
            ", ".join(missing) or "none",
        )
        if failed:
            return StageResult.soft_failure(
                Stage.STAGE_DEPENDENCIES,
                f"copy failed for: {', '.join(failed)}",
                statuses=statuses,
                missing=missing,
            )
        return StageResult.success(
            Stage.STAGE_DEPENDENCIES,
            f"{len(present)} of {len(statuses)} optional resources present",
            statuses=statuses,
            missing=missing,
        )


__all__ = ["DependencyStager", "copy_resource"]
