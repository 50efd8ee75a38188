"""Release pipeline driver: compile, stage dependencies, sign, assemble and archive."""
from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from typing import Callable, Mapping

from .archive import Archiver, ReleaseArchive
from .bundle import BundleAssembler, StagingBundle
from .compiler import BuildArtifact, CompilerInvoker
from .config import ReleaseConfig
from .dependencies import DependencyStager
from .fetch import DependencyFetcher
from .generator import DataGenerator
from .manifest import ResourceStatus
from .paths import pinned_root
from .results import PipelineState, ReleaseError, Stage, StageResult, StageStatus
from .signing import Signer

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PipelineReport:
    """Combined outcome of one release run."""

    config: ReleaseConfig
    state: PipelineState = PipelineState.IDLE
    results: list[StageResult] = field(default_factory=list)
    artifact: BuildArtifact | None = None
    archive: ReleaseArchive | None = None
    missing_resources: list[str] = field(default_factory=list)
    signed: bool = False

    @property
    def fatal(self) -> StageResult | None:
        return next((result for result in self.results if result.is_fatal), None)

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.DONE and self.fatal is None

    @property
    def exit_code(self) -> int:
        fatal = self.fatal
        return fatal.exit_code if fatal is not None else 0

    @property
    def warnings(self) -> list[str]:
        return [f"{result.stage.value}: {result.message}" for result in self.results if result.is_advisory]

    @property
    def complete(self) -> bool:
        """True when the archive carries every optional resource and a signature."""
        return self.succeeded and not self.warnings and not self.missing_resources

    def result_for(self, stage: Stage) -> StageResult | None:
        return next((result for result in self.results if result.stage is stage), None)

    def to_mapping(self) -> Mapping[str, object]:
        fatal = self.fatal
        return {
            "state": self.state.value,
            "exit_code": self.exit_code,
            "complete": self.complete,
            "signed": self.signed,
            "config": self.config.to_mapping(),
            "artifact": self.artifact.to_mapping() if self.artifact is not None else None,
            "archive": self.archive.to_mapping() if self.archive is not None else None,
            "missing_resources": list(self.missing_resources),
            "warnings": self.warnings,
            "fatal": fatal.to_mapping() if fatal is not None else None,
            "stages": [result.to_mapping() for result in self.results],
        }


class ReleasePipeline:
    """Runs the release stages in order and stops at the first fatal result."""

    def __init__(
        self,
        config: ReleaseConfig,
        *,
        environ: Mapping[str, str] | None = None,
        compiler: CompilerInvoker | None = None,
        fetcher: DependencyFetcher | None = None,
        generator: DataGenerator | None = None,
        stager: DependencyStager | None = None,
        signer: Signer | None = None,
        assembler: BundleAssembler | None = None,
        archiver: Archiver | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._logger = logger or _LOGGER
        root = config.project_root
        timeout = config.timeout_seconds
        self._compiler = compiler or CompilerInvoker(config, logger=self._logger)
        if fetcher is None and config.fetch.enabled:
            fetcher = DependencyFetcher(config.fetch, project_root=root, logger=self._logger)
        self._fetcher = fetcher
        if generator is None and config.generator.command:
            generator = DataGenerator(config.generator, project_root=root, timeout_seconds=timeout, logger=self._logger)
        self._generator = generator
        self._stager = stager or DependencyStager(root, logger=self._logger)
        self._signer = signer or Signer(
            config.signing,
            config.signing.credential(environ),
            project_root=root,
            timeout_seconds=timeout,
            logger=self._logger,
        )
        self._assembler = assembler or BundleAssembler(
            config.staging_dir,
            project_root=root,
            bundle_name=config.bundle_name,
            version=config.version,
            platform=config.platform,
            logger=self._logger,
        )
        self._archiver = archiver or Archiver(config.archive_path, logger=self._logger)
        self._state = PipelineState.IDLE

    @property
    def state(self) -> PipelineState:
        return self._state

    def run(self) -> PipelineReport:
        report = PipelineReport(config=self._config)
        self._state = PipelineState.IDLE
        self._logger.info(
            "Releasing %s %s for %s from %s",
            self._config.bundle_name,
            self._config.version or "(unversioned)",
            self._config.platform,
            self._config.project_root,
        )
        with pinned_root(self._config.project_root):
            self._execute(report)
        report.state = self._state
        self._log_summary(report)
        return report

    # ------------------------------------------------------------------
    def _execute(self, report: PipelineReport) -> None:
        self._transition(PipelineState.COMPILING)
        compiled = self._run_stage(report, Stage.COMPILE, self._compiler.compile)
        if compiled.is_fatal:
            return
        artifact: BuildArtifact = compiled.details["artifact"]
        report.artifact = artifact

        self._transition(PipelineState.STAGING)
        if self._fetcher is not None:
            fetcher = self._fetcher
            self._run_stage(report, Stage.FETCH, lambda: fetcher.fetch(self._config.resources))
        if self._generator is not None:
            self._run_stage(report, Stage.GENERATE, self._generator.generate)
        staged = self._run_stage(
            report,
            Stage.STAGE_DEPENDENCIES,
            lambda: self._stager.stage(self._config.resources),
        )
        statuses: list[ResourceStatus] = list(staged.details.get("statuses", ()))
        report.missing_resources = [status.name for status in statuses if not status.present]

        self._transition(PipelineState.SIGNING)
        signing = self._run_stage(report, Stage.SIGN, lambda: self._signer.sign(artifact))
        report.signed = signing.status is StageStatus.SUCCESS

        self._transition(PipelineState.ASSEMBLING)
        try:
            assembled = self._run_stage(
                report,
                Stage.ASSEMBLE,
                lambda: self._assembler.assemble(artifact, statuses, signed=report.signed),
            )
        except ReleaseError:
            self._discard_staging()
            raise
        if assembled.is_fatal:
            self._discard_staging()
            return
        bundle: StagingBundle = assembled.details["bundle"]
        for name in bundle.missing_resources:
            if name not in report.missing_resources:
                report.missing_resources.append(name)

        self._transition(PipelineState.ARCHIVING)
        archived = self._run_stage(report, Stage.ARCHIVE, lambda: self._archiver.archive(bundle))
        if archived.is_fatal:
            return
        report.archive = archived.details.get("archive")
        self._transition(PipelineState.DONE)

    def _run_stage(self, report: PipelineReport, stage: Stage, call: Callable[[], StageResult]) -> StageResult:
        self._logger.debug("Stage %s starting", stage.value)
        try:
            result = call()
        except ReleaseError:
            self._transition(PipelineState.FAILED)
            raise
        except Exception as exc:
            self._transition(PipelineState.FAILED)
            raise ReleaseError(stage, f"unexpected error: {exc}") from exc
        report.results.append(result)
        if result.is_fatal:
            self._logger.error("[fatal] %s: %s", stage.value, result.message)
            self._transition(PipelineState.FAILED)
        return result

    def _discard_staging(self) -> None:
        # Only a failed archive step leaves staging behind for inspection.
        staging_dir = self._config.staging_dir
        if not staging_dir.exists():
            return
        try:
            shutil.rmtree(staging_dir)
        except OSError as exc:
            self._logger.warning("[advisory] could not remove staging directory %s: %s", staging_dir, exc)
        else:
            self._logger.info("Removed incomplete staging directory %s", staging_dir)

    def _transition(self, state: PipelineState) -> None:
        self._logger.debug("Pipeline state %s -> %s", self._state.value, state.value)
        self._state = state

    def _log_summary(self, report: PipelineReport) -> None:
        if not report.succeeded:
            fatal = report.fatal
            if fatal is not None:
                self._logger.error(
                    "[fatal] release failed at %s (exit code %d): %s",
                    fatal.stage.value,
                    fatal.exit_code,
                    fatal.message,
                )
            return
        if report.archive is None:
            return
        if report.complete:
            self._logger.info("Release complete: %s (signed, all optional resources bundled)", report.archive.path)
            return
        details = list(report.warnings)
        if report.missing_resources:
            details.append(f"missing optional resources: {', '.join(report.missing_resources)}")
        self._logger.warning(
            "[advisory] release archive %s is usable but incomplete: %s",
            report.archive.path,
            "; ".join(details),
        )


def run_release(config: ReleaseConfig, *, environ: Mapping[str, str] | None = None) -> PipelineReport:
    """Build a :class:`ReleasePipeline` for ``config`` and run it once."""

    return ReleasePipeline(config, environ=environ).run()


__all__ = ["PipelineReport", "ReleasePipeline", "run_release"]
