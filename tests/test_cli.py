from __future__ import annotations

import importlib.util
import json
import shlex
from pathlib import Path

import pytest

from typesafe_release import cli


def _args(project, *extra: str) -> list[str]:
    return [
        "--project-root",
        str(project.root),
        "--platform",
        "linux",
        "--build-command",
        shlex.join(project.build_command),
        *extra,
    ]


def test_successful_run_returns_zero_and_writes_report(project, tmp_path: Path) -> None:
    report_path = tmp_path / "reports" / "release.json"

    exit_code = cli.main(_args(project, "--report", str(report_path)))

    assert exit_code == 0
    assert project.archive.exists()
    payload = json.loads(report_path.read_text(encoding="utf-8"))
    assert payload["state"] == "done"
    assert payload["signed"] is False
    assert payload["config"]["platform"] == "linux"
    assert payload["archive"]["path"] == str(project.archive)


def test_build_failure_exit_code_is_returned(project) -> None:
    args = _args(project)
    args[-1] = shlex.join(project.failing_command(42))

    assert cli.main(args) == 42
    assert not project.archive.exists()


def test_missing_build_tool_returns_127(project) -> None:
    args = _args(project)
    args[-1] = "typesafe-no-such-cargo build --release"

    assert cli.main(args) == 127


def test_version_flag_overrides_archive_name(project) -> None:
    assert cli.main(_args(project, "--version", "1.2.3")) == 0

    assert (project.root / "typesafe-editor-1.2.3.zip").exists()
    assert (project.root / "typesafe-editor-1.2.3.zip.sha256").exists()


def test_no_sign_skips_even_with_credentials(project, signing_env, tmp_path: Path) -> None:
    project.add_certificate()
    report_path = tmp_path / "report.json"

    assert cli.main(_args(project, "--no-sign", "--report", str(report_path))) == 0

    payload = json.loads(report_path.read_text(encoding="utf-8"))
    assert payload["signed"] is False
    assert payload["config"]["signing_enabled"] is False


def test_release_toml_in_project_root_is_loaded(project) -> None:
    (project.root / "release.toml").write_text('bundle_name = "TypesafeEditor"\n', encoding="utf-8")

    assert cli.main(_args(project)) == 0

    assert (project.root / "TypesafeEditor-0.4.2.zip").exists()


def test_project_root_is_discovered_from_config_path(project, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = project.root / "packaging" / "release.yaml"
    config_path.parent.mkdir()
    config_path.write_text(
        f"platform: linux\nbuild_command: {json.dumps(shlex.join(project.build_command))}\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)

    assert cli.main(["--config", str(config_path)]) == 0
    assert project.archive.exists()


def test_configuration_errors_exit_with_two(project, capsys: pytest.CaptureFixture[str]) -> None:
    (project.root / "release.toml").write_text('unknown_key = "x"\n', encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(_args(project))

    assert excinfo.value.code == 2
    assert "configuration error: Unknown configuration keys: unknown_key" in capsys.readouterr().err


def test_missing_project_root_is_a_configuration_error(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--project-root", str(tmp_path / "absent")])

    assert excinfo.value.code == 2


def _load_build_script():
    path = Path(__file__).resolve().parents[1] / "scripts" / "build_release.py"
    spec = importlib.util.spec_from_file_location("build_release_script", path)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_build_script_pins_its_own_project_root(monkeypatch: pytest.MonkeyPatch) -> None:
    module = _load_build_script()
    calls: list[list[str]] = []
    monkeypatch.setattr(module, "main", lambda argv: calls.append(argv) or 0)

    assert module.run(["--no-sign"]) == 0
    assert module.run(["--project-root", "/srv/editor"]) == 0

    assert calls[0] == ["--project-root", str(module.PROJECT_ROOT), "--no-sign"]
    assert calls[1] == ["--project-root", "/srv/editor"]
