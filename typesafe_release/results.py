"""Tagged stage results and pipeline states shared by every release stage."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping


class Stage(str, enum.Enum):
    """Stages of a release run, in execution order."""

    COMPILE = "compile"
    FETCH = "fetch"
    GENERATE = "generate"
    STAGE_DEPENDENCIES = "stage-dependencies"
    SIGN = "sign"
    ASSEMBLE = "assemble"
    ARCHIVE = "archive"


class StageStatus(str, enum.Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    SOFT_FAILURE = "soft-failure"
    FATAL_FAILURE = "fatal-failure"


class PipelineState(str, enum.Enum):
    IDLE = "idle"
    COMPILING = "compiling"
    STAGING = "staging"
    SIGNING = "signing"
    ASSEMBLING = "assembling"
    ARCHIVING = "archiving"
    DONE = "done"
    FAILED = "failed"


# Exit codes surfaced when a fatal result does not carry one of its own.
EXIT_FAILURE = 1
EXIT_ARTIFACT_MISSING = 3
EXIT_TIMEOUT = 124
EXIT_COMMAND_NOT_FOUND = 127


@dataclass(slots=True, frozen=True)
class StageResult:
    """Outcome of a single stage.

    ``details`` carries stage-specific payloads (the built artifact, resource
    statuses, the staging bundle, the archive) for the next stage to consume.
    """

    stage: Stage
    status: StageStatus
    message: str = ""
    exit_code: int = 0
    details: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, stage: Stage, message: str = "", **details: Any) -> "StageResult":
        return cls(stage=stage, status=StageStatus.SUCCESS, message=message, details=details)

    @classmethod
    def skipped(cls, stage: Stage, reason: str, **details: Any) -> "StageResult":
        return cls(stage=stage, status=StageStatus.SKIPPED, message=reason, details=details)

    @classmethod
    def soft_failure(cls, stage: Stage, reason: str, **details: Any) -> "StageResult":
        return cls(stage=stage, status=StageStatus.SOFT_FAILURE, message=reason, details=details)

    @classmethod
    def fatal(cls, stage: Stage, reason: str, *, exit_code: int = EXIT_FAILURE, **details: Any) -> "StageResult":
        if exit_code == 0:
            raise ValueError("Fatal stage results require a non-zero exit code")
        return cls(
            stage=stage,
            status=StageStatus.FATAL_FAILURE,
            message=reason,
            exit_code=exit_code,
            details=details,
        )

    @property
    def is_fatal(self) -> bool:
        return self.status is StageStatus.FATAL_FAILURE

    @property
    def is_advisory(self) -> bool:
        return self.status in (StageStatus.SKIPPED, StageStatus.SOFT_FAILURE)

    def to_mapping(self) -> Mapping[str, object]:
        payload: dict[str, object] = {
            "stage": self.stage.value,
            "status": self.status.value,
            "message": self.message,
        }
        if self.is_fatal:
            payload["exit_code"] = self.exit_code
        return payload


class ReleaseError(RuntimeError):
    """Raised when a stage fails in a way it could not turn into a result."""

    def __init__(self, stage: Stage, message: str, *, exit_code: int = EXIT_FAILURE) -> None:
        super().__init__(f"{stage.value}: {message}")
        self.stage = stage
        self.exit_code = exit_code


__all__ = [
    "EXIT_ARTIFACT_MISSING",
    "EXIT_COMMAND_NOT_FOUND",
    "EXIT_FAILURE",
    "EXIT_TIMEOUT",
    "PipelineState",
    "ReleaseError",
    "Stage",
    "StageResult",
    "StageStatus",
]
