"""Regenerates the LaTeX completion data file before resources are staged."""
from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from .config import GeneratorConfig
from .process import run_command
from .results import Stage, StageResult

_LOGGER = logging.getLogger(__name__)


class DataGenerator:
    def __init__(
        self,
        config: GeneratorConfig,
        *,
        project_root: Path,
        timeout_seconds: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._project_root = project_root
        self._timeout = timeout_seconds
        self._logger = logger or _LOGGER

    @property
    def output_path(self) -> Path:
        return self._project_root / self._config.output

    def generate(self) -> StageResult:
        command = self._config.command
        if not command:
            return StageResult.skipped(Stage.GENERATE, "no generator configured")

        try:
            completed = run_command(command, cwd=self._project_root, timeout=self._timeout, logger=self._logger)
        except FileNotFoundError:
            return self._failed(f"generator not found: {command[0]}")
        except subprocess.TimeoutExpired:
            return self._failed(f"generator did not finish within {self._timeout:g}s")

        if completed.returncode != 0:
            return self._failed(f"generator exited with code {completed.returncode}")
        if not self.output_path.is_file():
            return self._failed(f"generator finished but {self._config.output} was not written")

        self._logger.info("Generated %s", self.output_path)
        return StageResult.success(Stage.GENERATE, f"generated {self._config.output}")

    def _failed(self, reason: str) -> StageResult:
        existing = " (keeping existing file)" if self.output_path.is_file() else ""
        message = f"data generation failed: {reason}{existing}"
        self._logger.warning("[advisory] %s", message)
        return StageResult.soft_failure(Stage.GENERATE, message)


__all__ = ["DataGenerator"]
