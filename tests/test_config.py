from __future__ import annotations

import json
from pathlib import Path

import pytest

from typesafe_release.config import (
    DEFAULT_PASSWORD_ENV,
    SigningCredential,
    build_config_from_mapping,
    load_config,
    read_cargo_package_name,
    read_cargo_version,
)


def test_defaults_follow_cargo_manifest(project) -> None:
    config = build_config_from_mapping({"platform": "windows"}, project_root=project.root)

    assert config.version == "0.4.2"
    assert config.archive_path == project.root / "typesafe-editor-0.4.2.zip"
    assert config.artifact_path == project.root / "target" / "release" / "typesafe-editor.exe"
    assert config.staging_dir == project.root / "release-staging"
    assert config.build_command == ("cargo", "build", "--release")
    assert config.signing.enabled is True
    assert config.signing.tool == ("signtool",)
    assert config.signing.password_env == DEFAULT_PASSWORD_ENV
    assert config.fetch.enabled is False
    assert {source.resource for source in config.fetch.sources} == {"pdfium", "tectonic"}

    resources = {resource.name: resource for resource in config.resources}
    assert set(resources) == {"tectonic", "pdfium", "icon", "dictionary", "latex_data", "web_assets"}
    assert resources["pdfium"].source == "deps/pdfium.dll"
    assert resources["pdfium"].runtime_destinations == ("target/release/pdfium.dll",)
    assert resources["web_assets"].kind == "directory"
    assert resources["web_assets"].bundle_path == "web"


def test_linux_defaults_use_shared_object_names(project) -> None:
    config = build_config_from_mapping({"platform": "linux"}, project_root=project.root)

    resources = {resource.name: resource for resource in config.resources}
    assert resources["pdfium"].source == "deps/libpdfium.so"
    assert resources["tectonic"].bundle_path == "tectonic"
    assert config.fetch.sources == ()


def test_unversioned_archive_name(tmp_path: Path) -> None:
    config = build_config_from_mapping({"platform": "linux"}, project_root=tmp_path)

    assert config.version is None
    assert config.archive_path == tmp_path.resolve() / "typesafe-editor.zip"


def test_explicit_version_overrides_cargo(project) -> None:
    config = build_config_from_mapping({"platform": "linux", "version": "1.0.0-rc1"}, project_root=project.root)

    assert config.archive_name == "typesafe-editor-1.0.0-rc1.zip"


@pytest.mark.parametrize("version", ["1.0/evil", "-1.0", "1.0 beta"])
def test_rejects_unsafe_versions(project, version: str) -> None:
    with pytest.raises(ValueError):
        build_config_from_mapping({"platform": "linux", "version": version}, project_root=project.root)


def test_rejects_unknown_keys(project) -> None:
    with pytest.raises(ValueError, match="Unknown configuration keys: stagin_dir"):
        build_config_from_mapping({"stagin_dir": "tmp"}, project_root=project.root)


def test_rejects_staging_dir_containing_project_root(project) -> None:
    with pytest.raises(ValueError, match="must not contain the project root"):
        build_config_from_mapping({"platform": "linux", "staging_dir": ".."}, project_root=project.root)


def test_rejects_unsupported_platform(project) -> None:
    with pytest.raises(ValueError, match="Unsupported platform"):
        build_config_from_mapping({"platform": "amiga"}, project_root=project.root)


def test_build_command_accepts_shell_string(project) -> None:
    config = build_config_from_mapping(
        {"platform": "linux", "build_command": "cargo build --release --locked"},
        project_root=project.root,
    )

    assert config.build_command == ("cargo", "build", "--release", "--locked")


def test_load_toml_configuration(project) -> None:
    path = project.root / "release.toml"
    path.write_text(
        "\n".join(
            [
                'bundle_name = "TypesafeEditor"',
                'platform = "linux"',
                'staging_dir = "out/stage"',
                "timeout_seconds = 600",
                "",
                "[signing]",
                'certificate = "secrets/codesign.pfx"',
                'password_env = "CODESIGN_PASSWORD"',
                'timestamp_url = "http://timestamp.sectigo.com"',
                "",
                "[[resources]]",
                'name = "dictionary"',
                'source = "dictionary.txt"',
                'destinations = ["target/release/dictionary.txt"]',
                'bundle_path = "data/dictionary.txt"',
            ]
        ),
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.project_root == project.root.resolve()
    assert config.bundle_name == "TypesafeEditor"
    assert config.archive_name == "TypesafeEditor-0.4.2.zip"
    assert config.staging_dir == project.root.resolve() / "out" / "stage"
    assert config.timeout_seconds == 600
    assert config.signing.certificate == project.root.resolve() / "secrets" / "codesign.pfx"
    assert config.signing.password_env == "CODESIGN_PASSWORD"
    assert config.signing.timestamp_url == "http://timestamp.sectigo.com"
    assert [resource.name for resource in config.resources] == ["dictionary"]
    assert config.resources[0].bundle_path == "data/dictionary.txt"


def test_load_yaml_configuration(project) -> None:
    path = project.root / "release.yaml"
    path.write_text(
        "platform: windows\n"
        "signing:\n"
        "  enabled: false\n"
        "fetch:\n"
        "  enabled: true\n"
        "  sources:\n"
        "    - resource: pdfium\n"
        "      url: https://example.invalid/pdfium.tgz\n"
        "      member: bin/pdfium.dll\n"
        "generator:\n"
        "  command: cargo run --release --bin ingest_cwl\n",
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.signing.enabled is False
    assert config.fetch.enabled is True
    assert [source.url for source in config.fetch.sources] == ["https://example.invalid/pdfium.tgz"]
    assert config.generator.command == ("cargo", "run", "--release", "--bin", "ingest_cwl")
    assert config.generator.output == "latex_data.json"


def test_load_json_configuration_with_overrides(project) -> None:
    path = project.root / "release.json"
    path.write_text(json.dumps({"platform": "linux", "bundle_name": "editor"}), encoding="utf-8")

    config = load_config(path, overrides={"version": "2.0.0"})

    assert config.archive_name == "editor-2.0.0.zip"


def test_invalid_yaml_is_reported_as_value_error(project) -> None:
    path = project.root / "release.yaml"
    path.write_text("signing: [unterminated\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid release configuration"):
        load_config(path)


def test_resource_paths_cannot_escape_project(project) -> None:
    with pytest.raises(ValueError, match="Parent traversal"):
        build_config_from_mapping(
            {"platform": "linux", "resources": [{"name": "x", "source": "../outside.dll"}]},
            project_root=project.root,
        )


def test_duplicate_bundle_paths_are_rejected(project) -> None:
    resources = [
        {"name": "a", "source": "a.txt", "bundle_path": "data/file.txt"},
        {"name": "b", "source": "b.txt", "bundle_path": "DATA/file.txt"},
    ]
    with pytest.raises(ValueError, match="share bundle path"):
        build_config_from_mapping({"platform": "linux", "resources": resources}, project_root=project.root)


def test_read_cargo_version_handles_workspace_manifest(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text('[workspace]\nmembers = ["editor"]\n', encoding="utf-8")

    assert read_cargo_version(tmp_path) is None


def test_signing_credential_requires_certificate_and_passphrase(tmp_path: Path) -> None:
    certificate = tmp_path / "certificate.pfx"

    missing_both = SigningCredential.from_environment(certificate, "PW", environ={})
    assert missing_both.present is False

    certificate.write_bytes(b"pfx")
    empty_password = SigningCredential.from_environment(certificate, "PW", environ={"PW": ""})
    assert empty_password.passphrase_present is False
    assert empty_password.present is False

    complete = SigningCredential.from_environment(certificate, "PW", environ={"PW": "hunter2"})
    assert complete.present is True
    assert "hunter2" not in repr(complete)


@pytest.mark.parametrize(
    ("staging_dir", "overlapped"),
    [
        ("target", "build output directory"),
        ("target/release", "build output directory"),
        ("target/release/bundle", "build output directory"),
        ("deps", "dependencies directory"),
        ("web", "resource 'web_assets'"),
        ("web/dist/staging", "resource 'web_assets'"),
        ("dictionary.txt", "resource 'dictionary'"),
    ],
)
def test_rejects_staging_dir_overlapping_build_inputs(project, staging_dir: str, overlapped: str) -> None:
    with pytest.raises(ValueError, match=f"overlaps the {overlapped}"):
        build_config_from_mapping({"platform": "linux", "staging_dir": staging_dir}, project_root=project.root)

    assert (project.root / "deps" / "tectonic").exists()
    assert (project.root / "web" / "dist" / "index.html").exists()


def test_rejects_staging_dir_overlapping_custom_resource_destination(project) -> None:
    resources = [{"name": "fonts", "source": "assets/fonts", "destinations": ["out/fonts"], "kind": "directory"}]

    with pytest.raises(ValueError, match="overlaps the resource 'fonts' destination"):
        build_config_from_mapping(
            {"platform": "linux", "staging_dir": "out", "resources": resources},
            project_root=project.root,
        )


def test_rejects_staging_dir_holding_signing_certificate(project) -> None:
    with pytest.raises(ValueError, match="overlaps the signing certificate"):
        build_config_from_mapping(
            {"platform": "linux", "staging_dir": "secrets", "signing": {"certificate": "secrets/codesign.pfx"}},
            project_root=project.root,
        )


def test_staging_dir_beside_inputs_is_accepted(project) -> None:
    config = build_config_from_mapping({"platform": "linux", "staging_dir": "out/stage"}, project_root=project.root)

    assert config.staging_dir == project.root / "out" / "stage"


def test_bundle_name_does_not_change_executable_name(project) -> None:
    config = build_config_from_mapping(
        {"platform": "windows", "bundle_name": "TypesafeEditor"},
        project_root=project.root,
    )

    assert config.archive_name == "TypesafeEditor-0.4.2.zip"
    assert config.artifact_path == project.root / "target" / "release" / "typesafe-editor.exe"


def test_executable_name_follows_cargo_package_name(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text('[package]\nname = "texpad"\nversion = "2.1.0"\n', encoding="utf-8")

    config = build_config_from_mapping({"platform": "linux"}, project_root=tmp_path)

    assert config.binary_name == "texpad"
    assert config.artifact_path == tmp_path.resolve() / "target" / "release" / "texpad"
    assert read_cargo_package_name(tmp_path) == "texpad"
    assert config.archive_name == "typesafe-editor-2.1.0.zip"


def test_explicit_binary_name_wins(project) -> None:
    config = build_config_from_mapping({"platform": "linux", "binary_name": "editor-bin"}, project_root=project.root)

    assert config.artifact_path == project.root / "target" / "release" / "editor-bin"


@pytest.mark.parametrize("bundle_name", ["../out/x", "dist/editor", "editor.", "-editor", "editor 2"])
def test_rejects_unsafe_bundle_names(project, bundle_name: str) -> None:
    with pytest.raises(ValueError, match="Bundle name"):
        build_config_from_mapping({"platform": "linux", "bundle_name": bundle_name}, project_root=project.root)
