"""Declarative manifest of optional runtime resources shipped with the editor."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable, Mapping, Sequence

RESOURCE_KINDS = {"file", "directory"}
_RESERVED_BUNDLE_PATHS = {"release-manifest.json"}


@dataclass(slots=True, frozen=True)
class OptionalResource:
    """A file or directory bundled with the release when it is available.

    ``source`` and ``runtime_destinations`` are relative to the project root.
    ``bundle_path`` is relative to the staging root; ``None`` means the
    resource is only copied next to the built executable.
    """

    name: str
    source: str
    runtime_destinations: tuple[str, ...] = ()
    bundle_path: str | None = None
    kind: str = "file"

    def source_path(self, project_root: Path) -> Path:
        return project_root / self.source

    def runtime_paths(self, project_root: Path) -> list[Path]:
        return [project_root / destination for destination in self.runtime_destinations]

    def is_present(self, project_root: Path) -> bool:
        source = self.source_path(project_root)
        if self.kind == "directory":
            return source.is_dir()
        return source.is_file()


@dataclass(slots=True)
class ResourceStatus:
    """Per-run availability of an :class:`OptionalResource`."""

    resource: OptionalResource
    present: bool
    copied: list[Path] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.resource.name

    def to_mapping(self) -> Mapping[str, object]:
        return {
            "name": self.resource.name,
            "present": self.present,
            "copied": [str(path) for path in self.copied],
            "errors": list(self.errors),
        }


def platform_executable(name: str, platform: str) -> str:
    return f"{name}.exe" if platform == "windows" else name


def platform_library(name: str, platform: str) -> str:
    if platform == "windows":
        return f"{name}.dll"
    if platform == "macos":
        return f"lib{name}.dylib"
    return f"lib{name}.so"


def default_resources(platform: str, *, build_dir: str = "target/release", deps_dir: str = "deps") -> list[OptionalResource]:
    """Return the canonical resource manifest for ``platform``."""

    tectonic = platform_executable("tectonic", platform)
    pdfium = platform_library("pdfium", platform)
    return [
        OptionalResource(
            name="tectonic",
            source=f"{deps_dir}/{tectonic}",
            runtime_destinations=(f"{build_dir}/{tectonic}",),
            bundle_path=tectonic,
        ),
        OptionalResource(
            name="pdfium",
            source=f"{deps_dir}/{pdfium}",
            runtime_destinations=(f"{build_dir}/{pdfium}",),
            bundle_path=pdfium,
        ),
        OptionalResource(name="icon", source="icon.ico", bundle_path="icon.ico"),
        OptionalResource(
            name="dictionary",
            source="dictionary.txt",
            runtime_destinations=(f"{build_dir}/dictionary.txt",),
            bundle_path="dictionary.txt",
        ),
        OptionalResource(
            name="latex_data",
            source="latex_data.json",
            runtime_destinations=(f"{build_dir}/latex_data.json",),
            bundle_path="latex_data.json",
        ),
        OptionalResource(name="web_assets", source="web/dist", bundle_path="web", kind="directory"),
    ]


def _normalize_relative(value: str, *, label: str) -> str:
    """Return ``value`` as a POSIX relative path, rejecting escapes from the root."""

    normalized = value.replace("\\", "/")
    candidate = PurePosixPath(normalized)
    if candidate.is_absolute():
        raise ValueError(f"{label} must be relative: {value}")
    parts = [part for part in candidate.parts if part not in ("", ".")]
    if not parts:
        raise ValueError(f"{label} cannot be empty: {value}")
    if any(part == ".." for part in parts):
        raise ValueError(f"Parent traversal is not allowed in {label}: {value}")
    return PurePosixPath(*parts).as_posix()


def parse_resource(entry: Mapping[str, object]) -> OptionalResource:
    """Build an :class:`OptionalResource` from a configuration mapping."""

    if not isinstance(entry, Mapping):
        raise TypeError(f"Resource entries must be mappings, got {type(entry).__name__}")
    unknown = set(entry) - {"name", "source", "destinations", "bundle_path", "kind"}
    if unknown:
        raise ValueError(f"Unknown resource keys: {', '.join(sorted(unknown))}")

    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Resource entry requires a non-empty 'name'")
    source = entry.get("source")
    if not isinstance(source, str):
        raise ValueError(f"Resource '{name}' requires a 'source' path")

    raw_destinations = entry.get("destinations", ())
    if isinstance(raw_destinations, str) or not isinstance(raw_destinations, Sequence):
        raise ValueError(f"Resource '{name}' destinations must be a list of paths")
    destinations = tuple(
        _normalize_relative(str(item), label=f"resource '{name}' destination") for item in raw_destinations
    )

    bundle_path = entry.get("bundle_path")
    if bundle_path is not None:
        bundle_path = _normalize_relative(str(bundle_path), label=f"resource '{name}' bundle path")
        if bundle_path.casefold() in _RESERVED_BUNDLE_PATHS:
            raise ValueError(f"Resource '{name}' uses a reserved bundle path: {bundle_path}")

    kind = str(entry.get("kind", "file"))
    if kind not in RESOURCE_KINDS:
        raise ValueError(f"Resource '{name}' has unsupported kind: {kind}")

    return OptionalResource(
        name=name.strip(),
        source=_normalize_relative(source, label=f"resource '{name}' source"),
        runtime_destinations=destinations,
        bundle_path=bundle_path,
        kind=kind,
    )


def parse_resources(entries: Iterable[Mapping[str, object]]) -> list[OptionalResource]:
    resources: list[OptionalResource] = []
    seen_names: set[str] = set()
    seen_bundle_paths: dict[str, str] = {}
    for entry in entries:
        resource = parse_resource(entry)
        if resource.name in seen_names:
            raise ValueError(f"Duplicate resource name: {resource.name}")
        seen_names.add(resource.name)
        if resource.bundle_path is not None:
            key = resource.bundle_path.casefold()
            existing = seen_bundle_paths.get(key)
            if existing is not None:
                raise ValueError(
                    f"Resources '{existing}' and '{resource.name}' share bundle path {resource.bundle_path}"
                )
            seen_bundle_paths[key] = resource.name
        resources.append(resource)
    return resources


__all__ = [
    "OptionalResource",
    "ResourceStatus",
    "default_resources",
    "parse_resource",
    "parse_resources",
    "platform_executable",
    "platform_library",
]
