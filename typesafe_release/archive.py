"""Compresses the staging tree into the distributable ZIP archive."""
from __future__ import annotations

import hashlib
import logging
import os
import shutil
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from .bundle import StagingBundle
from .results import Stage, StageResult

_LOGGER = logging.getLogger(__name__)

# Fixed member metadata keeps archives byte-identical across runs.
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
_FILE_MODE = 0o644
_EXECUTABLE_MODE = 0o755


@dataclass(slots=True)
class ReleaseArchive:
    """The distributable produced by a successful run."""

    path: Path
    sha256: str
    size: int
    members: list[str] = field(default_factory=list)

    @property
    def checksum_path(self) -> Path:
        return self.path.with_name(self.path.name + ".sha256")

    def to_mapping(self) -> Mapping[str, object]:
        return {
            "path": str(self.path),
            "sha256": self.sha256,
            "size": self.size,
            "members": list(self.members),
        }


class ArchiveVerificationError(RuntimeError):
    """Raised when a freshly written archive does not match the staged tree."""


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _member_mode(path: Path) -> int:
    if path.suffix.lower() == ".exe" or os.access(path, os.X_OK):
        return _EXECUTABLE_MODE
    return _FILE_MODE


def write_zip(source_root: Path, destination: Path, members: list[str]) -> None:
    with zipfile.ZipFile(destination, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
        for relative in sorted(members):
            path = source_root / relative
            info = zipfile.ZipInfo(relative, date_time=_ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = (0o100000 | _member_mode(path)) << 16
            # the size decides up front whether a zip64 header is needed
            info.file_size = path.stat().st_size
            with path.open("rb") as source, archive.open(info, mode="w") as target:
                shutil.copyfileobj(source, target, 1024 * 1024)


def verify_archive(path: Path, expected_members: list[str]) -> list[str]:
    """Check CRCs and the member list; return the archive's members."""

    with zipfile.ZipFile(path) as archive:
        corrupt = archive.testzip()
        if corrupt is not None:
            raise ArchiveVerificationError(f"corrupt member in archive: {corrupt}")
        members = sorted(archive.namelist())
    expected = sorted(expected_members)
    if members != expected:
        missing = sorted(set(expected) - set(members))
        extra = sorted(set(members) - set(expected))
        raise ArchiveVerificationError(f"archive members differ from staging (missing={missing}, extra={extra})")
    return members


class Archiver:
    """Writes, verifies and checksums the archive, then discards the staging tree."""

    def __init__(self, archive_path: Path, *, logger: logging.Logger | None = None) -> None:
        self._archive_path = archive_path
        self._logger = logger or _LOGGER

    @property
    def archive_path(self) -> Path:
        return self._archive_path

    def archive(self, bundle: StagingBundle) -> StageResult:
        partial = self._archive_path.with_name(self._archive_path.name + ".partial")
        checksum_path = self._archive_path.with_name(self._archive_path.name + ".sha256")
        members = bundle.refresh()
        try:
            self._archive_path.parent.mkdir(parents=True, exist_ok=True)
            write_zip(bundle.root, partial, members)
            verify_archive(partial, members)
            os.replace(partial, self._archive_path)
            digest = _sha256(self._archive_path)
            checksum_path.write_text(f"{digest}  {self._archive_path.name}\n", encoding="utf-8")
        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile, ArchiveVerificationError) as exc:
            self._discard_outputs(partial, checksum_path)
            self._logger.error("[fatal] staging directory kept for inspection: %s", bundle.root)
            return StageResult.fatal(Stage.ARCHIVE, f"archive creation failed: {exc}", bundle=bundle)

        release = ReleaseArchive(
            path=self._archive_path,
            sha256=digest,
            size=self._archive_path.stat().st_size,
            members=members,
        )
        self._logger.info("Archive written to %s (%d files, sha256 %s)", release.path, len(members), digest)

        try:
            shutil.rmtree(bundle.root)
        except OSError as exc:
            self._logger.warning("[advisory] could not remove staging directory %s: %s", bundle.root, exc)
            return StageResult.soft_failure(
                Stage.ARCHIVE,
                f"archive written but staging directory was not removed: {exc}",
                archive=release,
            )
        return StageResult.success(Stage.ARCHIVE, f"wrote {release.path.name}", archive=release)

    def _discard_outputs(self, *paths: Path) -> None:
        for path in (*paths, self._archive_path):
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                self._logger.warning("Could not remove %s: %s", path, exc)


__all__ = ["ArchiveVerificationError", "Archiver", "ReleaseArchive", "verify_archive", "write_zip"]
