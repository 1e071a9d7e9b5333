"""
scopepack - in-process CLI tests

File: tests/unit/ui/test_cli.py

Purpose
- Exercise argument routing, JSON payloads, human output, and exit codes
  without spawning a subprocess.
"""

from __future__ import annotations

import functools
import json
from pathlib import Path

import pytest
from php_project import FakeInstaller, write_vendor_tree

from scopepack import main as main_module
from scopepack.errors import ConfigurationError, DependencyInstallError, ManifestParseError
from scopepack.main import ExitCode, cli_entrypoint
from scopepack.pipeline import BuildPipeline
from scopepack.ui import cli
from scopepack.ui.cli import build_parser, run_cli


def _use_installer(monkeypatch: pytest.MonkeyPatch, installer: FakeInstaller) -> None:
    monkeypatch.setattr(cli, "BuildPipeline", functools.partial(BuildPipeline, installer=installer))


def _json_out(capsys: pytest.CaptureFixture[str]) -> dict[str, object]:
    out = capsys.readouterr().out
    return json.loads(out.strip().splitlines()[-1])


def test_parser_exposes_build_namespaces_and_config() -> None:
    parser = build_parser()

    args = parser.parse_args(["build", "--ignore-platform-reqs", "--no-archive", "--json"])

    assert args.command == "build"
    assert args.ignore_platform_reqs is True
    assert args.no_archive is True
    assert args.json is True
    assert args.project_root == "."
    assert parser.parse_args(["namespaces", "-v"]).verbose is True


def test_config_json_reports_effective_config(
    project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = run_cli(["config", "--project-root", str(project), "--json"])

    payload = _json_out(capsys)
    assert exit_code == 0
    assert payload["command"] == "config"
    config = payload["config"]
    assert isinstance(config, dict)
    assert config["artifact_id"] == "acme-app"
    assert config["build"]["prefixer"]["namespace_prefix"] == "Vendor_App"


def test_missing_config_is_exit_code_two(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = run_cli(["config", "--project-root", str(tmp_path)])

    captured = capsys.readouterr()
    assert exit_code == 2
    assert "error: config file not found" in captured.err


def test_project_root_must_be_a_directory(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = run_cli(["build", "--project-root", str(tmp_path / "nope")])

    assert exit_code == 2
    assert "project root is not a directory" in capsys.readouterr().err


def test_namespaces_json_previews_mapping_from_vendor(
    project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    write_vendor_tree(project)

    exit_code = run_cli(["namespaces", "--project-root", str(project), "--json"])

    payload = _json_out(capsys)
    assert exit_code == 0
    assert payload["prefix"] == "Vendor_App"
    assert payload["root_namespace"] == "AcmeApp"
    assert payload["inventory_source"] == "installed.json"
    assert payload["scoped_packages"] == ["acme/lib", "acme/util", "other/tool"]
    assert payload["mapping"] == {
        "Acme\\Lib": "Vendor_App\\Acme\\Lib",
        "Acme\\Util": "Vendor_App\\Acme\\Util",
        "Other\\Tool": "Vendor_App\\Other\\Tool",
    }
    assert not (project / "dist").exists()


def test_namespaces_json_skips_metapackage_with_warning(
    project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    write_vendor_tree(project, metapackages=("acme/meta",))

    exit_code = run_cli(["namespaces", "--project-root", str(project), "--json"])

    payload = _json_out(capsys)
    assert exit_code == 0
    assert "acme/meta" in payload["installed_packages"]
    assert payload["scoped_packages"] == ["acme/lib", "acme/util", "other/tool"]
    assert payload["warnings"] == ["vendor package not found: acme/meta"]
    assert len(payload["mapping"]) == 3


def test_namespaces_human_output_lists_table(
    project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    write_vendor_tree(project)

    exit_code = run_cli(["namespaces", "--project-root", str(project), "--no-color", "-v"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Prefix: Vendor_App" in out
    assert "Namespace mapping:" in out
    assert "Other\\Tool  " in out
    assert "Vendor_App\\Other\\Tool" in out
    assert "Scoped packages:" in out
    assert "- acme/util" in out


def test_namespaces_without_prefix_is_a_config_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    project = tmp_path / "project"
    project.mkdir()
    (project / "scopepack.toml").write_text(
        'artifact_id = "acme-app"\n\n[build.prefixer]\n', encoding="utf-8"
    )

    exit_code = run_cli(["namespaces", "--project-root", str(project)])

    assert exit_code == 2
    assert "nothing to preview" in capsys.readouterr().err


def test_namespaces_with_malformed_metadata_fails(
    project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    vendor = write_vendor_tree(project)
    (vendor / "acme" / "lib" / "composer.json").write_text("{", encoding="utf-8")

    exit_code = run_cli(["namespaces", "--project-root", str(project)])

    assert exit_code == 1
    assert "error:" in capsys.readouterr().err


def test_build_json_reports_outcome_and_log_path(
    project: Path,
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    installer = FakeInstaller()
    _use_installer(monkeypatch, installer)

    exit_code = run_cli(
        ["build", "--project-root", str(project), "--json", "--ignore-platform-reqs"]
    )

    payload = _json_out(capsys)
    assert exit_code == 0
    assert payload["command"] == "build"
    assert payload["succeeded"] is True
    assert payload["state"] == "done"
    assert payload["archived"] is True
    assert str(payload["run_id"]).startswith("run-")
    assert installer.calls[0]["ignore_platform_reqs"] is True

    log_path = Path(str(payload["log_path"]))
    assert log_path.is_file()
    events = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    done = [event for event in events if event["message"] == "pipeline_done"]
    assert done[0]["artifact_id"] == "acme-app"
    assert done[0]["run_id"] == payload["run_id"]


def test_build_human_output_summarizes_result(
    project: Path,
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _use_installer(monkeypatch, FakeInstaller())

    exit_code = run_cli(["build", "--project-root", str(project), "--no-color"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "  Using namespace prefix: Vendor_App" in out
    assert "  Created: acme-app.zip" in out
    assert "Build completed successfully!" in out
    assert "SHA-256: " in out
    assert "Namespaces prefixed: 3 across 3 package(s)" in out


def test_build_no_archive_flag(
    project: Path,
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _use_installer(monkeypatch, FakeInstaller())

    exit_code = run_cli(["build", "--project-root", str(project), "--no-archive", "--json"])

    payload = _json_out(capsys)
    assert exit_code == 0
    assert payload["archived"] is False
    assert not (project / "dist" / "acme-app.zip").exists()


def test_build_installer_failure_is_exit_code_three(
    project: Path,
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    failing = FakeInstaller(fail_with=DependencyInstallError("composer exploded"))
    _use_installer(monkeypatch, failing)

    exit_code = run_cli(["build", "--project-root", str(project), "--no-color"])

    captured = capsys.readouterr()
    assert exit_code == 3
    assert "error: build failed during resolving: composer exploded" in captured.err
    assert "Partial build:" in captured.out


def test_build_with_invalid_config_is_exit_code_two(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    project = tmp_path / "project"
    project.mkdir()
    (project / "scopepack.toml").write_text(
        'artifact_id = "acme-app"\n\n[build.prefixer]\nenabled = true\n', encoding="utf-8"
    )

    exit_code = run_cli(["build", "--project-root", str(project)])

    assert exit_code == 2
    assert "build.prefixer.namespace_prefix" in capsys.readouterr().err
    assert not (project / "dist").exists()


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ConfigurationError("bad config"), ExitCode.CONFIG_ERROR),
        (DependencyInstallError("composer failed"), ExitCode.INSTALL_ERROR),
        (ManifestParseError("bad metadata"), ExitCode.BUILD_FAILED),
        (RuntimeError("boom"), ExitCode.INTERNAL_ERROR),
    ],
)
def test_entrypoint_routes_uncaught_errors(
    error: Exception,
    expected: ExitCode,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    def _raise(argv: object = None) -> int:
        raise error

    monkeypatch.setattr(cli, "run_cli", _raise)

    assert cli_entrypoint(["build"]) == int(expected)
    err = capsys.readouterr().err
    if expected is ExitCode.INTERNAL_ERROR:
        assert "Traceback" in err
    else:
        assert err.startswith("error: ")


def test_entrypoint_routes_wrapped_errors_by_cause() -> None:
    try:
        try:
            raise DependencyInstallError("composer failed")
        except DependencyInstallError as exc:
            raise RuntimeError("wrapped") from exc
    except RuntimeError as wrapped:
        assert main_module._route_exception(wrapped) is ExitCode.INSTALL_ERROR


def test_entrypoint_normalizes_argparse_exit(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint([]) == 2
    assert "usage: scopepack" in capsys.readouterr().err
