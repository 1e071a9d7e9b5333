"""Unit tests for deterministic ZIP packaging."""

from __future__ import annotations

import os
import stat
import zipfile
from pathlib import Path

import pytest

from scopepack.errors import ArchiveIOError, ArchiveUnavailable
from scopepack.packaging.archiver import ZipArchiver
from scopepack.utils import sha256_file


def _build_tree(build_dir: Path) -> Path:
    (build_dir / "vendor" / "acme" / "lib").mkdir(parents=True)
    (build_dir / "vendor" / "acme" / "lib" / "Client.php").write_text("<?php\n", encoding="utf-8")
    (build_dir / "vendor" / "bin").mkdir()
    tool = build_dir / "vendor" / "bin" / "tool"
    tool.write_text("#!/bin/sh\n", encoding="utf-8")
    os.chmod(tool, 0o755)
    (build_dir / "assets").mkdir()
    (build_dir / "acme-app.php").write_text("<?php\n", encoding="utf-8")
    return build_dir


def test_archive_roots_every_entry_under_artifact_name(tmp_path: Path) -> None:
    build_dir = _build_tree(tmp_path / "dist" / "acme-app")
    output = tmp_path / "dist" / "acme-app.zip"

    result = ZipArchiver().archive(build_dir, output, "acme-app")

    with zipfile.ZipFile(output) as bundle:
        names = bundle.namelist()
        infos = {info.filename: info for info in bundle.infolist()}
        client = bundle.read("acme-app/vendor/acme/lib/Client.php")

    assert names == [
        "acme-app/acme-app.php",
        "acme-app/assets/",
        "acme-app/vendor/",
        "acme-app/vendor/acme/",
        "acme-app/vendor/acme/lib/",
        "acme-app/vendor/acme/lib/Client.php",
        "acme-app/vendor/bin/",
        "acme-app/vendor/bin/tool",
    ]
    assert client == b"<?php\n"
    assert result.entries == len(names)
    assert result.path == output
    assert result.sha256 == sha256_file(output)
    assert stat.S_IMODE(infos["acme-app/vendor/bin/tool"].external_attr >> 16) == 0o755
    assert stat.S_IMODE(infos["acme-app/acme-app.php"].external_attr >> 16) == 0o644
    assert infos["acme-app/assets/"].is_dir()
    assert all(info.date_time == (1980, 1, 1, 0, 0, 0) for info in infos.values())
    assert not (tmp_path / "dist" / ".acme-app.zip.tmp").exists()


def test_archive_is_byte_identical_across_runs(tmp_path: Path) -> None:
    build_dir = _build_tree(tmp_path / "dist" / "acme-app")
    archiver = ZipArchiver()

    first = archiver.archive(build_dir, tmp_path / "one.zip", "acme-app")
    os.utime(build_dir / "acme-app.php", (0, 0))
    second = archiver.archive(build_dir, tmp_path / "two.zip", "acme-app")

    assert first.sha256 == second.sha256


def test_archive_replaces_stale_output(tmp_path: Path) -> None:
    build_dir = _build_tree(tmp_path / "dist" / "acme-app")
    output = tmp_path / "dist" / "acme-app.zip"
    output.write_bytes(b"stale")

    ZipArchiver().archive(build_dir, output, "acme-app")

    assert zipfile.is_zipfile(output)


def test_archive_rejects_output_inside_build_dir(tmp_path: Path) -> None:
    build_dir = _build_tree(tmp_path / "dist" / "acme-app")

    with pytest.raises(ArchiveIOError, match="inside the build directory"):
        ZipArchiver().archive(build_dir, build_dir / "acme-app.zip", "acme-app")


def test_archive_requires_build_dir(tmp_path: Path) -> None:
    with pytest.raises(ArchiveIOError, match="does not exist"):
        ZipArchiver().archive(tmp_path / "missing", tmp_path / "out.zip", "acme-app")


def test_archive_unavailable_is_reported(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    build_dir = _build_tree(tmp_path / "dist" / "acme-app")
    archiver = ZipArchiver()
    monkeypatch.setattr(archiver, "is_available", lambda: False)

    with pytest.raises(ArchiveUnavailable):
        archiver.archive(build_dir, tmp_path / "out.zip", "acme-app")

    assert not (tmp_path / "out.zip").exists()
