"""Unit tests for the frozen domain models."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from scopepack.domain.models import (
    AUTO_SCOPE,
    BuildConfiguration,
    BuildOutcome,
    NamespaceMappingTable,
    PackageDescriptor,
    PipelineState,
    clean_namespace,
    is_valid_namespace,
)
from scopepack.errors import ConfigurationError


def test_mapping_table_first_writer_wins_and_prefixes() -> None:
    table = NamespaceMappingTable("\\Vendor_App\\")

    assert table.add("Acme\\Lib\\") is True
    assert table.add("Acme\\Lib") is False
    assert table.add("") is False
    assert table.extend(["Acme\\Util", "Acme\\Lib", "Other"]) == 2

    assert table.prefix == "Vendor_App"
    assert table.prefixed("\\Acme\\Lib") == "Vendor_App\\Acme\\Lib"
    assert table.prefixed("Missing") is None
    assert "Acme\\Util" in table
    assert 3 not in table
    assert list(table) == ["Acme\\Lib", "Acme\\Util", "Other"]
    assert len(table) == 3


def test_mapping_table_longest_first_ordering() -> None:
    table = NamespaceMappingTable("P", ["Acme", "Acme\\Lib\\Http", "Zed\\Lib", "Acme\\Lib"])

    assert [original for original, _ in table.entries_longest_first()] == [
        "Acme\\Lib\\Http",
        "Acme\\Lib",
        "Zed\\Lib",
        "Acme",
    ]


def test_mapping_table_union_and_serialization() -> None:
    descriptor = PackageDescriptor(
        id="acme/lib",
        root_path=Path("vendor/acme/lib"),
        namespace_map=(("Acme\\Lib", ("src/",)), ("Acme\\Compat", ("compat/",))),
    )
    table = NamespaceMappingTable("P")

    assert table.union(descriptor) == 2
    assert table.union(descriptor) == 0
    assert table.to_dict() == {"Acme\\Compat": "P\\Acme\\Compat", "Acme\\Lib": "P\\Acme\\Lib"}
    assert NamespaceMappingTable.from_mapping("P", table.to_dict()).items() == (
        ("Acme\\Compat", "P\\Acme\\Compat"),
        ("Acme\\Lib", "P\\Acme\\Lib"),
    )
    assert not NamespaceMappingTable("P")
    assert descriptor.namespaces == ("Acme\\Lib", "Acme\\Compat")


@pytest.mark.parametrize(
    ("namespace", "valid"),
    [
        ("Vendor_App", True),
        ("Vendor\\App2", True),
        ("_Internal", True),
        ("2Fast", False),
        ("Vendor\\\\App", False),
        ("Vendor-App", False),
        ("", False),
    ],
)
def test_is_valid_namespace(namespace: str, valid: bool) -> None:
    assert is_valid_namespace(namespace) is valid


def test_clean_namespace_strips_whitespace_and_separators() -> None:
    assert clean_namespace("  \\Acme\\Lib\\ ") == "Acme\\Lib"


def test_build_configuration_resolves_paths_and_defaults(tmp_path: Path) -> None:
    config = BuildConfiguration(
        project_root=tmp_path,
        artifact_id=" acme-app ",
        prefix_enabled=True,
        namespace_prefix="\\Vendor_App",
        scope_packages=["acme/lib"],  # type: ignore[arg-type]
    )

    assert config.artifact_id == "acme-app"
    assert config.namespace_prefix == "Vendor_App"
    assert config.scope_packages == frozenset({"acme/lib"})
    assert not config.auto_scope
    assert config.build_dir == tmp_path / "dist" / "acme-app"
    assert config.archive_path == tmp_path / "dist" / "acme-app.zip"
    assert config.resolved_entry_file == "acme-app.php"
    assert config.to_dict()["scope_packages"] == ["acme/lib"]
    assert config.to_dict()["entry_file"] == "acme-app.php"


def test_build_configuration_keeps_absolute_output_dir(tmp_path: Path) -> None:
    out = tmp_path / "elsewhere"

    config = BuildConfiguration(
        project_root=tmp_path / "project",
        artifact_id="acme-app",
        output_dir=out,
        entry_file="bootstrap.php",
    )

    assert config.build_dir == out / "acme-app"
    assert config.resolved_entry_file == "bootstrap.php"
    assert config.auto_scope
    assert config.scope_packages == AUTO_SCOPE


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"artifact_id": "  "}, "artifact_id"),
        ({"artifact_id": "a/b"}, "single path segment"),
        ({"prefix_enabled": True}, "namespace_prefix"),
        ({"prefix_enabled": True, "namespace_prefix": "1bad"}, "not a valid namespace"),
        ({"installer_timeout_seconds": 0}, "timeout_seconds"),
        ({"installer_command": ()}, "must not be empty"),
    ],
)
def test_build_configuration_rejects_invalid_settings(
    tmp_path: Path, overrides: dict[str, object], message: str
) -> None:
    fields: dict[str, object] = {"project_root": tmp_path, "artifact_id": "acme-app"}
    fields.update(overrides)

    with pytest.raises(ConfigurationError, match=message):
        BuildConfiguration(**fields)  # type: ignore[arg-type]


def test_build_configuration_is_frozen(tmp_path: Path) -> None:
    config = BuildConfiguration(project_root=tmp_path, artifact_id="acme-app")

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.artifact_id = "other"  # type: ignore[misc]


def test_build_outcome_to_dict(tmp_path: Path) -> None:
    outcome = BuildOutcome(
        state=PipelineState.FAILED,
        build_dir=tmp_path / "dist" / "acme-app",
        failed_state=PipelineState.PREPARING,
        error="dependency install failed",
        error_type="DependencyInstallError",
        warnings=("w",),
        stages=(PipelineState.VALIDATING, PipelineState.PREPARING),
    )

    payload = outcome.to_dict()

    assert not outcome.succeeded
    assert payload["state"] == "failed"
    assert payload["failed_state"] == "preparing"
    assert payload["build_dir"] == (tmp_path / "dist" / "acme-app").as_posix()
    assert payload["archive_path"] is None
    assert payload["stages"] == ["validating", "preparing"]
    assert payload["warnings"] == ["w"]
    assert BuildOutcome(state=PipelineState.DONE).succeeded
