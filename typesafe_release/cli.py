"""Command-line entry point for building a Typesafe Editor release."""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Optional

from .config import (
    DEFAULT_CONFIG_NAME,
    SUPPORTED_PLATFORMS,
    ReleaseConfig,
    build_config_from_mapping,
    load_config_mapping,
)
from .paths import find_project_root
from .pipeline import PipelineReport, ReleasePipeline
from .results import EXIT_FAILURE, ReleaseError

_LOGGER = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="typesafe-release",
        description="Build, sign and package the Typesafe Editor for distribution",
    )
    parser.add_argument(
        "--project-root",
        default=None,
        help="Project directory (default: nearest directory above the config file or cwd holding Cargo.toml)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help=f"TOML/YAML/JSON release configuration (default: {DEFAULT_CONFIG_NAME} in the project root, if present)",
    )
    parser.add_argument("--version", dest="release_version", default=None, help="Version embedded in the archive name")
    parser.add_argument("--platform", choices=sorted(SUPPORTED_PLATFORMS), default=None)
    parser.add_argument("--build-command", default=None, help="Override the build command (shell-style string)")
    parser.add_argument("--fetch-deps", action="store_true", help="Download missing optional dependencies first")
    parser.add_argument("--no-sign", action="store_true", help="Skip code signing even when credentials exist")
    parser.add_argument("--report", default=None, help="Write a JSON report of the run to this path")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def _resolve_root(args: argparse.Namespace) -> Path:
    if args.project_root:
        root = Path(args.project_root).expanduser().resolve()
        if not root.is_dir():
            raise NotADirectoryError(f"Project root is not a directory: {root}")
        return root
    hint = Path(args.config).expanduser() if args.config else None
    return find_project_root(hint)


def _overrides(args: argparse.Namespace, mapping: dict[str, Any]) -> dict[str, Any]:
    if args.release_version:
        mapping["version"] = args.release_version
    if args.platform:
        mapping["platform"] = args.platform
    if args.build_command:
        mapping["build_command"] = args.build_command
    if args.fetch_deps:
        fetch = dict(mapping.get("fetch") or {})
        fetch["enabled"] = True
        mapping["fetch"] = fetch
    if args.no_sign:
        signing = dict(mapping.get("signing") or {})
        signing["enabled"] = False
        mapping["signing"] = signing
    return mapping


def load_cli_config(args: argparse.Namespace) -> ReleaseConfig:
    project_root = _resolve_root(args)
    if args.config:
        config_path = Path(args.config).expanduser()
        if not config_path.is_absolute():
            config_path = Path.cwd() / config_path
    else:
        config_path = project_root / DEFAULT_CONFIG_NAME
    mapping: dict[str, Any] = {}
    if args.config or config_path.is_file():
        _LOGGER.debug("Loading release configuration from %s", config_path)
        mapping = dict(load_config_mapping(config_path))
    return build_config_from_mapping(_overrides(args, mapping), project_root=project_root)


def write_report(report: PipelineReport, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report.to_mapping(), ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    _LOGGER.info("Release report written to %s", path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=_LOG_FORMAT)

    try:
        config = load_cli_config(args)
    except (OSError, ValueError, TypeError) as exc:
        parser.exit(2, f"typesafe-release: configuration error: {exc}\n")

    try:
        report = ReleasePipeline(config).run()
    except ReleaseError as exc:
        _LOGGER.error("[fatal] %s", exc)
        return exc.exit_code or EXIT_FAILURE

    if args.report:
        write_report(report, Path(args.report).expanduser())
    return report.exit_code


__all__ = ["load_cli_config", "main", "write_report"]
