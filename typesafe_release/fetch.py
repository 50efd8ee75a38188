"""Downloads missing optional dependencies into the dependencies directory.

Only resources that are absent are fetched. Every failure is advisory: the
release carries on without the resource and the log names the URL to fetch
it from by hand.
"""
from __future__ import annotations

import logging
import shutil
import tarfile
import tempfile
import urllib.parse
import urllib.request
import zipfile
from pathlib import Path, PurePosixPath
from typing import Iterable, Mapping

from .config import FetchConfig, FetchSource
from .manifest import OptionalResource
from .results import Stage, StageResult

_LOGGER = logging.getLogger(__name__)

_USER_AGENT = "typesafe-release/1.0"
_LIBRARY_SUFFIXES = {".dll", ".so", ".dylib"}


def _clean_member(name: str) -> str:
    name = name.replace("\\", "/")
    while name.startswith("./"):
        name = name[2:]
    return name.strip("/")


class FetchError(RuntimeError):
    pass


def _archive_format(url: str) -> str:
    name = PurePosixPath(urllib.parse.urlparse(url).path).name.lower()
    if name.endswith((".tgz", ".tar.gz")):
        return "tar.gz"
    if name.endswith(".zip"):
        return "zip"
    raise FetchError(f"Unsupported download format: {url}")


def _extract_member(archive_path: Path, archive_format: str, member: str, destination: Path) -> None:
    wanted = _clean_member(member)
    destination.parent.mkdir(parents=True, exist_ok=True)
    if archive_format == "zip":
        with zipfile.ZipFile(archive_path) as archive:
            names = {_clean_member(name): name for name in archive.namelist()}
            name = names.get(wanted)
            if name is None:
                raise FetchError(f"{member} not found in downloaded archive")
            with archive.open(name) as source, destination.open("wb") as target:
                shutil.copyfileobj(source, target)
        return

    with tarfile.open(archive_path, mode="r:gz") as archive:
        entry = next(
            (item for item in archive.getmembers() if item.isfile() and _clean_member(item.name) == wanted),
            None,
        )
        if entry is None:
            raise FetchError(f"{member} not found in downloaded archive")
        handle = archive.extractfile(entry)
        if handle is None:
            raise FetchError(f"{member} cannot be read from downloaded archive")
        with handle, destination.open("wb") as target:
            shutil.copyfileobj(handle, target)


class DependencyFetcher:
    """Fetches archives listed in :class:`FetchConfig` for resources that are missing."""

    def __init__(
        self,
        config: FetchConfig,
        *,
        project_root: Path,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._project_root = project_root
        self._logger = logger or _LOGGER

    def download(self, url: str, destination: Path) -> None:
        request = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
        with urllib.request.urlopen(request, timeout=self._config.timeout_seconds) as response:
            with destination.open("wb") as target:
                shutil.copyfileobj(response, target)

    def fetch_one(self, source: FetchSource, resource: OptionalResource) -> Path:
        target = resource.source_path(self._project_root)
        archive_format = _archive_format(source.url)
        with tempfile.TemporaryDirectory(prefix="typesafe_fetch_") as temp_dir:
            download_path = Path(temp_dir) / f"{resource.name}.{archive_format}"
            self._logger.info("Downloading %s from %s", resource.name, source.url)
            self.download(source.url, download_path)
            partial = target.with_name(target.name + ".partial")
            try:
                _extract_member(download_path, archive_format, source.member, partial)
                partial.replace(target)
            finally:
                partial.unlink(missing_ok=True)
        if target.suffix.lower() not in _LIBRARY_SUFFIXES:
            target.chmod(target.stat().st_mode | 0o111)
        return target

    def fetch(self, resources: Iterable[OptionalResource]) -> StageResult:
        by_name: Mapping[str, OptionalResource] = {resource.name: resource for resource in resources}
        fetched: list[str] = []
        failed: list[str] = []
        for source in self._config.sources:
            resource = by_name.get(source.resource)
            if resource is None:
                self._logger.warning("[advisory] fetch source for unknown resource '%s' ignored", source.resource)
                failed.append(source.resource)
                continue
            if resource.is_present(self._project_root):
                self._logger.debug("%s already present; not downloading", resource.name)
                continue
            try:
                self.fetch_one(source, resource)
            except (OSError, tarfile.TarError, zipfile.BadZipFile, FetchError) as exc:
                self._logger.warning(
                    "[advisory] failed to fetch %s: %s. Download it manually from %s into %s",
                    resource.name,
                    exc,
                    source.url,
                    resource.source,
                )
                failed.append(resource.name)
                continue
            fetched.append(resource.name)

        if failed:
            return StageResult.soft_failure(
                Stage.FETCH,
                f"could not fetch: {', '.join(failed)}",
                fetched=fetched,
            )
        if not fetched:
            return StageResult.success(Stage.FETCH, "all fetchable dependencies already present", fetched=fetched)
        return StageResult.success(Stage.FETCH, f"fetched {', '.join(fetched)}", fetched=fetched)


__all__ = ["DependencyFetcher", "FetchError"]
