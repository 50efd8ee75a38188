"""Assembles the staging tree that becomes the release archive."""
from __future__ import annotations

import hashlib
import json
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

from .compiler import BuildArtifact
from .dependencies import copy_resource
from .manifest import ResourceStatus
from .results import Stage, StageResult

_LOGGER = logging.getLogger(__name__)

MANIFEST_NAME = "release-manifest.json"


def _hash_file(path: Path) -> str:
    digest = hashlib.sha384()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


@dataclass(slots=True)
class StagingBundle:
    """Ephemeral directory tree holding one release."""

    root: Path
    files: list[str] = field(default_factory=list)
    missing_resources: list[str] = field(default_factory=list)
    signed: bool = False

    def refresh(self) -> list[str]:
        """Re-read the staged file list from disk, sorted and POSIX-style."""
        self.files = sorted(
            path.relative_to(self.root).as_posix() for path in self.root.rglob("*") if path.is_file()
        )
        return self.files

    def to_mapping(self) -> Mapping[str, object]:
        return {
            "root": str(self.root),
            "files": list(self.files),
            "missing_resources": list(self.missing_resources),
            "signed": self.signed,
        }


class BundleAssembler:
    """Builds a clean staging tree from the artifact and the present resources."""

    def __init__(
        self,
        staging_root: Path,
        *,
        project_root: Path,
        bundle_name: str,
        version: str | None,
        platform: str,
        logger: logging.Logger | None = None,
    ) -> None:
        self._staging_root = staging_root
        self._project_root = project_root
        self._bundle_name = bundle_name
        self._version = version
        self._platform = platform
        self._logger = logger or _LOGGER

    def assemble(
        self,
        artifact: BuildArtifact,
        statuses: Iterable[ResourceStatus],
        *,
        signed: bool = False,
    ) -> StageResult:
        try:
            self._reset_staging()
        except OSError as exc:
            return StageResult.fatal(Stage.ASSEMBLE, f"cannot prepare staging directory {self._staging_root}: {exc}")

        bundle = StagingBundle(root=self._staging_root, signed=signed)
        try:
            shutil.copy2(artifact.path, self._staging_root / artifact.path.name)
        except OSError as exc:
            return StageResult.fatal(Stage.ASSEMBLE, f"cannot copy artifact {artifact.path}: {exc}", bundle=bundle)

        failed: list[str] = []
        for status in statuses:
            resource = status.resource
            if resource.bundle_path is None:
                continue
            if not status.present:
                bundle.missing_resources.append(resource.name)
                continue
            destination = self._staging_root / resource.bundle_path
            try:
                copy_resource(resource.source_path(self._project_root), destination)
            except OSError as exc:
                self._logger.warning("[advisory] could not bundle %s: %s", resource.name, exc)
                bundle.missing_resources.append(resource.name)
                failed.append(resource.name)

        try:
            self._write_manifest(bundle)
        except OSError as exc:
            return StageResult.fatal(Stage.ASSEMBLE, f"cannot write {MANIFEST_NAME}: {exc}", bundle=bundle)
        bundle.refresh()

        if bundle.missing_resources:
            self._logger.info("Bundle is missing optional resources: %s", ", ".join(bundle.missing_resources))
        self._logger.info("Staged %d files in %s", len(bundle.files), self._staging_root)
        if failed:
            return StageResult.soft_failure(
                Stage.ASSEMBLE,
                f"bundled without: {', '.join(failed)}",
                bundle=bundle,
            )
        return StageResult.success(Stage.ASSEMBLE, f"staged {len(bundle.files)} files", bundle=bundle)

    # ------------------------------------------------------------------
    def _reset_staging(self) -> None:
        if self._staging_root.exists():
            self._logger.info("Removing previous staging directory %s", self._staging_root)
            if self._staging_root.is_dir() and not self._staging_root.is_symlink():
                shutil.rmtree(self._staging_root)
            else:
                self._staging_root.unlink()
        self._staging_root.mkdir(parents=True)

    def _write_manifest(self, bundle: StagingBundle) -> None:
        entries = []
        for relative in bundle.refresh():
            path = bundle.root / relative
            entries.append({"path": relative, "sha384": _hash_file(path), "size": path.stat().st_size})
        manifest = {
            "bundle": self._bundle_name,
            "version": self._version,
            "platform": self._platform,
            "signed": bundle.signed,
            "missing_resources": sorted(bundle.missing_resources),
            "files": entries,
        }
        (bundle.root / MANIFEST_NAME).write_text(
            json.dumps(manifest, ensure_ascii=False, indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )


__all__ = ["BundleAssembler", "MANIFEST_NAME", "StagingBundle"]
