"""Authenticode signing of the built executable.

Signing is optional: a missing certificate or passphrase skips it, and a
failing signing tool leaves the artifact unsigned while the release continues.
"""
from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from .compiler import BuildArtifact
from .config import SigningConfig, SigningCredential
from .process import MASK, run_command
from .results import Stage, StageResult

_LOGGER = logging.getLogger(__name__)


class Signer:
    """Applies a code signature in place using ``signtool``-compatible arguments."""

    def __init__(
        self,
        config: SigningConfig,
        credential: SigningCredential,
        *,
        project_root: Path,
        timeout_seconds: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._credential = credential
        self._project_root = project_root
        self._timeout = timeout_seconds
        self._logger = logger or _LOGGER

    def build_command(self, artifact: BuildArtifact) -> list[str]:
        return [
            *self._config.tool,
            "sign",
            "/f",
            str(self._credential.certificate),
            "/p",
            self._credential.passphrase or "",
            "/fd",
            self._config.digest_algorithm,
            "/tr",
            self._config.timestamp_url,
            "/td",
            self._config.digest_algorithm,
            str(artifact.path),
        ]

    def sign(self, artifact: BuildArtifact) -> StageResult:
        if not self._config.enabled:
            self._logger.info("[advisory] signing skipped: disabled by configuration")
            return StageResult.skipped(Stage.SIGN, "signing skipped: disabled by configuration", signed=False)

        if not self._credential.present:
            missing = []
            if not self._credential.certificate_present:
                missing.append(f"certificate {self._credential.certificate.name} not found")
            if not self._credential.passphrase_present:
                missing.append("no passphrase provided")
            reason = f"signing skipped: {' and '.join(missing)}"
            self._logger.info("[advisory] %s; artifact stays unsigned", reason)
            return StageResult.skipped(Stage.SIGN, reason, signed=False)

        command = self.build_command(artifact)
        secrets = [self._credential.passphrase or ""]
        try:
            completed = run_command(
                command,
                cwd=self._project_root,
                timeout=self._timeout,
                capture=True,
                secrets=secrets,
                logger=self._logger,
            )
        except FileNotFoundError:
            return self._failed(f"signing tool not available: {self._config.tool[0]}")
        except subprocess.TimeoutExpired:
            return self._failed(f"signing tool did not finish within {self._timeout:g}s")

        if completed.returncode != 0:
            detail = (completed.stderr or completed.stdout or "").strip()
            if self._credential.passphrase:
                detail = detail.replace(self._credential.passphrase, MASK)
            reason = f"signing tool exited with code {completed.returncode}"
            if detail:
                reason = f"{reason}: {detail.splitlines()[-1]}"
            return self._failed(reason)

        self._logger.info("Signed %s (%s, timestamp %s)", artifact.path.name, self._config.digest_algorithm, self._config.timestamp_url)
        return StageResult.success(Stage.SIGN, f"signed {artifact.path.name}", signed=True)

    def _failed(self, reason: str) -> StageResult:
        message = f"signing failed, continuing with unsigned artifact ({reason})"
        self._logger.warning("[advisory] %s", message)
        return StageResult.soft_failure(Stage.SIGN, message, signed=False)


__all__ = ["Signer"]
