"""
scopepack - CLI subprocess smoke contracts

File: tests/integration/test_cli_smoke.py

Purpose
- Run ``python -m scopepack`` as a real process against a project whose
  installer command is a fake ``composer`` script.
- Verify exit codes, JSON payloads, and the on-disk build and archive.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
import zipfile
from pathlib import Path

import pytest
from php_project import installer_config, write_fake_composer, write_project

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"

pytestmark = pytest.mark.integration


def _run_cli(project: Path, *args: str) -> subprocess.CompletedProcess[str]:
    env = {key: value for key, value in os.environ.items() if not key.startswith("SCOPEPACK_")}
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath
        if not existing_pythonpath
        else os.pathsep.join([src_pythonpath, existing_pythonpath])
    )
    env["NO_COLOR"] = "1"
    return subprocess.run(
        [sys.executable, "-m", "scopepack", *args, "--project-root", str(project)],
        cwd=project,
        text=True,
        capture_output=True,
        check=False,
        env=env,
        timeout=300,
    )


def test_build_subprocess_produces_prefixed_tree_and_archive(tmp_path: Path) -> None:
    command = write_fake_composer(tmp_path)
    project = write_project(tmp_path / "project", config=installer_config(command))

    completed = _run_cli(project, "build", "--json")

    assert completed.returncode == 0, completed.stderr
    payload = json.loads(completed.stdout.strip().splitlines()[-1])
    assert payload["state"] == "done"
    assert payload["installed_packages"] == ["acme/lib", "acme/util", "other/tool"]
    assert payload["namespace_count"] == 3

    build = project / "dist" / "acme-app"
    client = (build / "vendor" / "acme" / "lib" / "src" / "Client.php").read_text(
        encoding="utf-8"
    )
    assert "namespace Vendor_App\\Acme\\Lib;" in client
    assert not (build / "composer.json").exists()

    archive = project / "dist" / "acme-app.zip"
    assert payload["archive_path"] == archive.as_posix()
    with zipfile.ZipFile(archive) as bundle:
        assert "acme-app/src/Plugin.php" in bundle.namelist()
        entry = bundle.read("acme-app/acme-app.php").decode("utf-8")
    assert "use Vendor_App\\Acme\\Lib\\Client;" in entry


def test_build_subprocess_reports_installer_failure(tmp_path: Path) -> None:
    command = write_fake_composer(tmp_path, returncode=2)
    project = write_project(tmp_path / "project", config=installer_config(command))

    completed = _run_cli(project, "build")

    assert completed.returncode == 3
    assert "build failed during resolving" in completed.stderr
    assert "could not be resolved" in completed.stderr
    assert (project / "dist" / "acme-app").is_dir()
    assert not (project / "dist" / "acme-app.zip").exists()


def test_build_subprocess_rejects_missing_prefix(tmp_path: Path) -> None:
    project = write_project(
        tmp_path / "project",
        config='artifact_id = "acme-app"\n\n[build.prefixer]\nenabled = true\n',
    )

    completed = _run_cli(project, "build")

    assert completed.returncode == 2
    assert "build.prefixer.namespace_prefix" in completed.stderr
    assert not (project / "dist").exists()


def test_config_and_namespaces_subprocess(tmp_path: Path) -> None:
    command = write_fake_composer(tmp_path)
    project = write_project(tmp_path / "project", config=installer_config(command))

    config_run = _run_cli(project, "config", "--json")
    assert config_run.returncode == 0, config_run.stderr
    config = json.loads(config_run.stdout)["config"]
    assert config["build"]["installer"]["command"] == list(command)

    namespaces_run = _run_cli(project, "namespaces", "--json")
    assert namespaces_run.returncode == 0, namespaces_run.stderr
    payload = json.loads(namespaces_run.stdout)
    assert payload["installed_packages"] == []
    assert payload["mapping"] == {}
