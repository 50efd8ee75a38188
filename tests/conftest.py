from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from tests._project_helpers import CERT_PASSWORD, PASSWORD_ENV, EditorProject, populate_project
from typesafe_release.config import ReleaseConfig, build_config_from_mapping


@pytest.fixture()
def project(tmp_path: Path) -> EditorProject:
    root = tmp_path / "editor"
    root.mkdir()
    root = root.resolve()
    populate_project(root)
    return EditorProject(root=root)


@pytest.fixture()
def make_config(project: EditorProject) -> Callable[..., ReleaseConfig]:
    def _factory(**overrides: Any) -> ReleaseConfig:
        mapping: dict[str, Any] = {
            "platform": "linux",
            "build_command": project.build_command,
            "signing": {"tool": project.signtool},
        }
        mapping.update(overrides)
        return build_config_from_mapping(mapping, project_root=project.root)

    return _factory


@pytest.fixture()
def signing_env(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    monkeypatch.setenv(PASSWORD_ENV, CERT_PASSWORD)
    return {PASSWORD_ENV: CERT_PASSWORD}


@pytest.fixture(autouse=True)
def _no_ambient_password(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(PASSWORD_ENV, raising=False)
