"""Invokes the native release build and locates the produced executable."""
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .config import ReleaseConfig
from .process import run_command
from .results import (
    EXIT_ARTIFACT_MISSING,
    EXIT_COMMAND_NOT_FOUND,
    EXIT_FAILURE,
    EXIT_TIMEOUT,
    Stage,
    StageResult,
)

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class BuildArtifact:
    """The compiled editor executable."""

    path: Path
    platform: str

    @property
    def exists(self) -> bool:
        return self.path.is_file()

    def to_mapping(self) -> Mapping[str, object]:
        return {"path": str(self.path), "platform": self.platform, "exists": self.exists}


class CompilerInvoker:
    """Runs the configured build command in release mode."""

    def __init__(self, config: ReleaseConfig, *, logger: logging.Logger | None = None) -> None:
        self._config = config
        self._logger = logger or _LOGGER

    @property
    def artifact(self) -> BuildArtifact:
        return BuildArtifact(path=self._config.artifact_path, platform=self._config.platform)

    def compile(self) -> StageResult:
        command = self._config.build_command
        try:
            completed = run_command(
                command,
                cwd=self._config.project_root,
                timeout=self._config.timeout_seconds,
                logger=self._logger,
            )
        except FileNotFoundError:
            return StageResult.fatal(
                Stage.COMPILE,
                f"build tool not found: {command[0]}",
                exit_code=EXIT_COMMAND_NOT_FOUND,
            )
        except subprocess.TimeoutExpired:
            return StageResult.fatal(
                Stage.COMPILE,
                f"build did not finish within {self._config.timeout_seconds:g}s",
                exit_code=EXIT_TIMEOUT,
            )

        if completed.returncode != 0:
            return StageResult.fatal(
                Stage.COMPILE,
                f"build failed with exit code {completed.returncode}",
                # negative codes mean the process was killed by a signal
                exit_code=completed.returncode if completed.returncode > 0 else EXIT_FAILURE,
            )

        artifact = self.artifact
        if not artifact.exists:
            return StageResult.fatal(
                Stage.COMPILE,
                f"build reported success but artifact is missing: {artifact.path}",
                exit_code=EXIT_ARTIFACT_MISSING,
            )

        self._logger.info("Build produced %s", artifact.path)
        return StageResult.success(Stage.COMPILE, f"built {artifact.path.name}", artifact=artifact)


__all__ = ["BuildArtifact", "CompilerInvoker"]
