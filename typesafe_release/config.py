"""Release configuration: defaults, file loading and credential lookup."""
from __future__ import annotations

import json
import logging
import os
import shlex
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

from .manifest import OptionalResource, default_resources, parse_resources, platform_executable
from .paths import is_within

_LOGGER = logging.getLogger(__name__)

SUPPORTED_PLATFORMS = {"linux", "macos", "windows"}
DEFAULT_BUNDLE_NAME = "typesafe-editor"
DEFAULT_BUILD_COMMAND: tuple[str, ...] = ("cargo", "build", "--release")
DEFAULT_BUILD_DIR = "target/release"
DEFAULT_STAGING_DIR = "release-staging"
DEFAULT_CERTIFICATE = "certificate.pfx"
DEFAULT_PASSWORD_ENV = "TYPESAFE_SIGN_PASSWORD"
DEFAULT_TIMESTAMP_URL = "http://timestamp.digicert.com"
DEFAULT_CONFIG_NAME = "release.toml"

PDFIUM_WINDOWS_URL = (
    "https://github.com/bblanchon/pdfium-binaries/releases/download/chromium/7643/pdfium-win-x64.tgz"
)
TECTONIC_WINDOWS_URL = (
    "https://github.com/tectonic-typesetting/tectonic/releases/download/"
    "tectonic@0.15.0/tectonic-0.15.0-x86_64-pc-windows-msvc.zip"
)

_TOP_LEVEL_KEYS = {
    "bundle_name",
    "binary_name",
    "version",
    "platform",
    "build_command",
    "artifact",
    "deps_dir",
    "staging_dir",
    "archive_dir",
    "timeout_seconds",
    "signing",
    "fetch",
    "generator",
    "resources",
}


_ALLOWED_VERSION_CHARS = set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789._-+")


def _validate_file_name_part(value: str, *, label: str) -> str:
    if not value:
        raise ValueError(f"{label} cannot be empty")
    if len(value) > 64:
        raise ValueError(f"{label} must be at most 64 characters")
    for ch in value:
        if ch not in _ALLOWED_VERSION_CHARS:
            raise ValueError(f"{label} contains unsupported character: {ch!r}")
    if not (value[0].isalnum() and value[-1].isalnum()):
        raise ValueError(f"{label} must start and end with an alphanumeric character")
    return value


def validate_version(value: str) -> str:
    """Ensure version strings are safe to embed in archive file names."""
    return _validate_file_name_part(value, label="Version string")


def validate_bundle_name(value: str) -> str:
    """Ensure bundle names are safe to embed in archive file names."""
    return _validate_file_name_part(value, label="Bundle name")


def detect_platform() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    return "linux"


@dataclass(slots=True, frozen=True)
class SigningCredential:
    """Certificate plus passphrase; both are required before signing is attempted."""

    certificate: Path
    passphrase: str | None = field(default=None, repr=False)

    @classmethod
    def from_environment(
        cls,
        certificate: Path,
        env_var: str,
        environ: Mapping[str, str] | None = None,
    ) -> "SigningCredential":
        source = os.environ if environ is None else environ
        value = source.get(env_var)
        return cls(certificate=certificate, passphrase=value or None)

    @property
    def certificate_present(self) -> bool:
        return self.certificate.is_file()

    @property
    def passphrase_present(self) -> bool:
        return bool(self.passphrase)

    @property
    def present(self) -> bool:
        return self.certificate_present and self.passphrase_present


@dataclass(slots=True, frozen=True)
class SigningConfig:
    enabled: bool
    certificate: Path
    password_env: str = DEFAULT_PASSWORD_ENV
    tool: tuple[str, ...] = ("signtool",)
    digest_algorithm: str = "SHA256"
    timestamp_url: str = DEFAULT_TIMESTAMP_URL

    def credential(self, environ: Mapping[str, str] | None = None) -> SigningCredential:
        return SigningCredential.from_environment(self.certificate, self.password_env, environ)


@dataclass(slots=True, frozen=True)
class FetchSource:
    """Download location of an optional resource published as an archive."""

    resource: str
    url: str
    member: str


@dataclass(slots=True, frozen=True)
class FetchConfig:
    enabled: bool = False
    sources: tuple[FetchSource, ...] = ()
    timeout_seconds: float = 60.0


@dataclass(slots=True, frozen=True)
class GeneratorConfig:
    command: tuple[str, ...] | None = None
    output: str = "latex_data.json"


@dataclass(slots=True, frozen=True)
class ReleaseConfig:
    """Everything a release run needs; all paths are absolute."""

    project_root: Path
    platform: str
    signing: SigningConfig
    resources: tuple[OptionalResource, ...]
    artifact_path: Path
    deps_dir: Path
    staging_dir: Path
    archive_dir: Path
    bundle_name: str = DEFAULT_BUNDLE_NAME
    binary_name: str = DEFAULT_BUNDLE_NAME
    version: str | None = None
    build_command: tuple[str, ...] = DEFAULT_BUILD_COMMAND
    timeout_seconds: float | None = None
    fetch: FetchConfig = FetchConfig()
    generator: GeneratorConfig = GeneratorConfig()

    @classmethod
    def defaults(
        cls,
        project_root: Path,
        *,
        platform: str | None = None,
    ) -> "ReleaseConfig":
        return build_config_from_mapping({}, project_root=project_root, platform=platform)

    @property
    def archive_name(self) -> str:
        if self.version:
            return f"{self.bundle_name}-{self.version}.zip"
        return f"{self.bundle_name}.zip"

    @property
    def archive_path(self) -> Path:
        return self.archive_dir / self.archive_name

    def to_mapping(self) -> Mapping[str, object]:
        return {
            "project_root": str(self.project_root),
            "platform": self.platform,
            "bundle_name": self.bundle_name,
            "version": self.version,
            "build_command": list(self.build_command),
            "artifact": str(self.artifact_path),
            "staging_dir": str(self.staging_dir),
            "archive": str(self.archive_path),
            "signing_enabled": self.signing.enabled,
            "resources": [resource.name for resource in self.resources],
        }


def _read_cargo_package_field(project_root: Path, key: str) -> str | None:
    manifest_path = project_root / "Cargo.toml"
    if not manifest_path.is_file():
        return None
    try:
        data = tomllib.loads(manifest_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        _LOGGER.warning("Cannot read package %s from %s: %s", key, manifest_path, exc)
        return None
    package = data.get("package")
    if not isinstance(package, Mapping):
        return None
    value = package.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def read_cargo_version(project_root: Path) -> str | None:
    """Return ``[package] version`` from ``Cargo.toml`` when it is declared."""

    return _read_cargo_package_field(project_root, "version")


def read_cargo_package_name(project_root: Path) -> str | None:
    """Return ``[package] name`` from ``Cargo.toml``; cargo names the binary after it."""

    return _read_cargo_package_field(project_root, "name")


def load_config_mapping(path: Path) -> Mapping[str, object]:
    """Load a configuration mapping from TOML, YAML or JSON."""

    path = path.expanduser()
    if not path.exists():
        raise FileNotFoundError(path)
    payload = path.read_text(encoding="utf-8")
    data: Any
    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            data = tomllib.loads(payload)
        elif suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(payload)
        else:
            try:
                data = json.loads(payload)
            except json.JSONDecodeError:
                data = yaml.safe_load(payload)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid release configuration {path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Release configuration must be a mapping: {path}")
    return data


def load_config(
    path: Path,
    *,
    project_root: Path | None = None,
    overrides: Mapping[str, object] | None = None,
) -> ReleaseConfig:
    """Load ``path`` and resolve it against ``project_root`` (default: its directory)."""

    mapping = dict(load_config_mapping(path))
    if overrides:
        mapping.update(overrides)
    root = project_root if project_root is not None else path.expanduser().resolve().parent
    return build_config_from_mapping(mapping, project_root=root)


def _resolve_path(value: object, *, base_dir: Path, label: str) -> Path:
    if not isinstance(value, (str, os.PathLike)):
        raise TypeError(f"{label} must be a path string, got {type(value).__name__}")
    candidate = Path(str(value).replace("\\", "/")).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return candidate.resolve()


def _get_section(mapping: Mapping[str, object], key: str) -> Mapping[str, object]:
    section = mapping.get(key)
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        raise TypeError(f"'{key}' must be a mapping")
    return section


def _get_str(mapping: Mapping[str, object], key: str) -> str | None:
    value = mapping.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _get_bool(mapping: Mapping[str, object], key: str, default: bool) -> bool:
    value = mapping.get(key, default)
    if not isinstance(value, bool):
        raise TypeError(f"'{key}' must be true or false")
    return value


def _get_timeout(mapping: Mapping[str, object], key: str, default: float | None) -> float | None:
    value = mapping.get(key, default)
    if value in (None, ""):
        return None
    timeout = float(value)  # type: ignore[arg-type]
    if timeout <= 0:
        raise ValueError(f"'{key}' must be positive")
    return timeout


def _parse_command(value: object, *, label: str) -> tuple[str, ...]:
    if isinstance(value, str):
        parts = shlex.split(value)
    elif isinstance(value, Sequence):
        parts = [str(part) for part in value]
    else:
        raise TypeError(f"{label} must be a string or a list of arguments")
    if not parts:
        raise ValueError(f"{label} cannot be empty")
    return tuple(parts)


def _build_signing(section: Mapping[str, object], *, project_root: Path) -> SigningConfig:
    unknown = set(section) - {"enabled", "certificate", "password_env", "tool", "digest_algorithm", "timestamp_url"}
    if unknown:
        raise ValueError(f"Unknown signing keys: {', '.join(sorted(unknown))}")
    return SigningConfig(
        enabled=_get_bool(section, "enabled", True),
        certificate=_resolve_path(
            section.get("certificate", DEFAULT_CERTIFICATE), base_dir=project_root, label="signing.certificate"
        ),
        password_env=_get_str(section, "password_env") or DEFAULT_PASSWORD_ENV,
        tool=_parse_command(section.get("tool") or "signtool", label="signing.tool"),
        digest_algorithm=(_get_str(section, "digest_algorithm") or "SHA256").upper(),
        timestamp_url=_get_str(section, "timestamp_url") or DEFAULT_TIMESTAMP_URL,
    )


def _default_fetch_sources(platform: str) -> tuple[FetchSource, ...]:
    if platform != "windows":
        return ()
    return (
        FetchSource(resource="pdfium", url=PDFIUM_WINDOWS_URL, member="bin/pdfium.dll"),
        FetchSource(resource="tectonic", url=TECTONIC_WINDOWS_URL, member="tectonic.exe"),
    )


def _build_fetch(section: Mapping[str, object], *, platform: str) -> FetchConfig:
    unknown = set(section) - {"enabled", "sources", "timeout_seconds"}
    if unknown:
        raise ValueError(f"Unknown fetch keys: {', '.join(sorted(unknown))}")
    raw_sources = section.get("sources")
    if raw_sources is None:
        sources = _default_fetch_sources(platform)
    else:
        if isinstance(raw_sources, (str, bytes)) or not isinstance(raw_sources, Sequence):
            raise TypeError("fetch.sources must be a list")
        parsed: list[FetchSource] = []
        for entry in raw_sources:
            if not isinstance(entry, Mapping):
                raise TypeError("fetch.sources entries must be mappings")
            resource = _get_str(entry, "resource")
            url = _get_str(entry, "url")
            member = _get_str(entry, "member")
            if not (resource and url and member):
                raise ValueError("fetch.sources entries require 'resource', 'url' and 'member'")
            parsed.append(FetchSource(resource=resource, url=url, member=member))
        sources = tuple(parsed)
    return FetchConfig(
        enabled=_get_bool(section, "enabled", False),
        sources=sources,
        timeout_seconds=_get_timeout(section, "timeout_seconds", 60.0) or 60.0,
    )


def _build_generator(section: Mapping[str, object]) -> GeneratorConfig:
    unknown = set(section) - {"command", "output"}
    if unknown:
        raise ValueError(f"Unknown generator keys: {', '.join(sorted(unknown))}")
    command = section.get("command")
    return GeneratorConfig(
        command=_parse_command(command, label="generator.command") if command else None,
        output=_get_str(section, "output") or "latex_data.json",
    )


def _check_staging_overlap(staging_dir: Path, protected: Sequence[tuple[str, Path]], *, root: Path) -> None:
    """Reject a staging directory that overlaps any build input or output.

    The staging directory is deleted recursively before every run. Paths equal
    to the project root are left to the project-root check.
    """

    for label, path in protected:
        resolved = path.resolve()
        if resolved == root:
            continue
        if is_within(resolved, staging_dir) or is_within(staging_dir, resolved):
            raise ValueError(f"Staging directory {staging_dir} overlaps the {label} at {resolved}")


def build_config_from_mapping(
    mapping: Mapping[str, object],
    *,
    project_root: Path,
    platform: str | None = None,
) -> ReleaseConfig:
    """Create a :class:`ReleaseConfig` from a configuration mapping."""

    unknown = set(mapping) - _TOP_LEVEL_KEYS
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    root = Path(project_root).expanduser().resolve()
    if not root.is_dir():
        raise NotADirectoryError(f"Project root is not a directory: {root}")

    resolved_platform = platform or _get_str(mapping, "platform") or detect_platform()
    if resolved_platform not in SUPPORTED_PLATFORMS:
        raise ValueError(f"Unsupported platform: {resolved_platform}")

    bundle_name = validate_bundle_name(_get_str(mapping, "bundle_name") or DEFAULT_BUNDLE_NAME)
    binary_name = _get_str(mapping, "binary_name") or read_cargo_package_name(root) or DEFAULT_BUNDLE_NAME
    version = _get_str(mapping, "version") or read_cargo_version(root)
    if version is not None:
        version = validate_version(version)

    build_command = DEFAULT_BUILD_COMMAND
    if mapping.get("build_command") is not None:
        build_command = _parse_command(mapping["build_command"], label="build_command")

    artifact_default = f"{DEFAULT_BUILD_DIR}/{platform_executable(binary_name, resolved_platform)}"
    artifact_path = _resolve_path(mapping.get("artifact", artifact_default), base_dir=root, label="artifact")
    deps_dir = _resolve_path(mapping.get("deps_dir", "deps"), base_dir=root, label="deps_dir")
    staging_dir = _resolve_path(mapping.get("staging_dir", DEFAULT_STAGING_DIR), base_dir=root, label="staging_dir")
    archive_dir = _resolve_path(mapping.get("archive_dir", "."), base_dir=root, label="archive_dir")

    if is_within(root, staging_dir):
        raise ValueError(f"Staging directory must not contain the project root: {staging_dir}")
    if is_within(archive_dir, staging_dir):
        raise ValueError(f"Archive directory must not be inside the staging directory: {archive_dir}")

    raw_resources = mapping.get("resources")
    if raw_resources is None:
        deps_relative = os.path.relpath(deps_dir, root).replace(os.sep, "/")
        build_relative = os.path.relpath(artifact_path.parent, root).replace(os.sep, "/")
        resources = tuple(default_resources(resolved_platform, build_dir=build_relative, deps_dir=deps_relative))
    else:
        if isinstance(raw_resources, (str, bytes)) or not isinstance(raw_resources, Sequence):
            raise TypeError("'resources' must be a list of mappings")
        resources = tuple(parse_resources(raw_resources))

    signing = _build_signing(_get_section(mapping, "signing"), project_root=root)
    generator = _build_generator(_get_section(mapping, "generator"))

    protected: list[tuple[str, Path]] = [
        ("build output directory", artifact_path.parent),
        ("dependencies directory", deps_dir),
        ("signing certificate", signing.certificate),
        ("generator output", root / generator.output),
    ]
    for resource in resources:
        protected.append((f"resource '{resource.name}'", resource.source_path(root)))
        protected.extend(
            (f"resource '{resource.name}' destination", destination) for destination in resource.runtime_paths(root)
        )
    _check_staging_overlap(staging_dir, protected, root=root)

    return ReleaseConfig(
        project_root=root,
        platform=resolved_platform,
        signing=signing,
        resources=resources,
        bundle_name=bundle_name,
        binary_name=binary_name,
        version=version,
        build_command=build_command,
        artifact_path=artifact_path,
        deps_dir=deps_dir,
        staging_dir=staging_dir,
        archive_dir=archive_dir,
        timeout_seconds=_get_timeout(mapping, "timeout_seconds", None),
        fetch=_build_fetch(_get_section(mapping, "fetch"), platform=resolved_platform),
        generator=generator,
    )


__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_PASSWORD_ENV",
    "FetchConfig",
    "FetchSource",
    "GeneratorConfig",
    "ReleaseConfig",
    "SUPPORTED_PLATFORMS",
    "SigningConfig",
    "SigningCredential",
    "build_config_from_mapping",
    "detect_platform",
    "load_config",
    "load_config_mapping",
    "read_cargo_package_name",
    "read_cargo_version",
    "validate_bundle_name",
    "validate_version",
]
