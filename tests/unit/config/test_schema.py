"""
scopepack - unit tests for config schema validation

File: tests/unit/config/test_schema.py

Purpose
- Validate strict schema checks and structured issue paths.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from scopepack.config.schema import (
    ConfigValidationError,
    assert_valid_config,
    default_config,
    merge_config,
    to_build_configuration,
    validate_config,
)
from scopepack.domain.models import AUTO_SCOPE


def _config(**prefixer: object) -> dict[str, object]:
    return merge_config(
        default_config(),
        {
            "artifact_id": "acme-app",
            "build": {"prefixer": {"enabled": True, "namespace_prefix": "Vendor_App", **prefixer}},
        },
    )


def _paths(config: object) -> list[str]:
    return [issue.path for issue in validate_config(config).issues]


def test_defaults_plus_artifact_id_validate_successfully() -> None:
    config = merge_config(default_config(), {"artifact_id": "acme-app"})

    result = validate_config(config)

    assert result.is_valid
    assert result.config is not None
    assert result.config["build"]["prefixer"] == {"enabled": False, "include_packages": AUTO_SCOPE}


def test_unknown_key_rejection_is_explicit() -> None:
    config = _config()
    config["build"]["zip"] = True
    config["extra"] = 1

    assert _paths(config) == ["extra", "build.zip"]


def test_type_validation_reports_structured_paths() -> None:
    config = _config()
    config["build"]["archive"] = "yes"
    config["build"]["source_dirs"] = ["src", 3]
    config["build"]["installer"]["timeout_seconds"] = -1

    assert _paths(config) == [
        "build.archive",
        "build.source_dirs[1]",
        "build.installer.timeout_seconds",
    ]


def test_missing_artifact_id_and_root_type() -> None:
    assert _paths(default_config()) == ["artifact_id"]
    assert _paths(["not", "a", "table"]) == ["<root>"]


@pytest.mark.parametrize("artifact_id", ["", "..", "a/b", "a\\b"])
def test_artifact_id_must_be_one_path_segment(artifact_id: str) -> None:
    config = _config()
    config["artifact_id"] = artifact_id

    assert _paths(config) == ["artifact_id"]


def test_prefix_required_when_prefixing_enabled() -> None:
    config = _config()
    del config["build"]["prefixer"]["namespace_prefix"]

    result = validate_config(config)

    assert [(issue.path, issue.message) for issue in result.issues] == [
        (
            "build.prefixer.namespace_prefix",
            "missing required field while prefixing is enabled",
        )
    ]


def test_invalid_prefix_is_reported_once() -> None:
    result = validate_config(_config(namespace_prefix="9Vendor"))

    assert [issue.path for issue in result.issues] == ["build.prefixer.namespace_prefix"]
    assert "not a valid namespace" in result.issues[0].message


def test_prefix_separators_are_trimmed() -> None:
    validated = assert_valid_config(_config(namespace_prefix="\\Vendor\\App\\"))

    assert validated["build"]["prefixer"]["namespace_prefix"] == "Vendor\\App"


@pytest.mark.parametrize(
    ("include_packages", "expected_path"),
    [
        ("everything", "build.prefixer.include_packages"),
        (["acme"], "build.prefixer.include_packages[0]"),
        (["acme/lib/extra"], "build.prefixer.include_packages[0]"),
        ([1], "build.prefixer.include_packages[0]"),
    ],
)
def test_include_packages_must_be_auto_or_package_ids(
    include_packages: object, expected_path: str
) -> None:
    assert _paths(_config(include_packages=include_packages)) == [expected_path]


def test_include_packages_are_lowercased_deduplicated_and_sorted() -> None:
    validated = assert_valid_config(
        _config(include_packages=["Other/Tool", "acme/lib", "ACME/LIB"])
    )

    assert validated["build"]["prefixer"]["include_packages"] == ["acme/lib", "other/tool"]


@pytest.mark.parametrize("value", ["/abs/src", "../outside", "src/../../x"])
def test_project_relative_paths_are_enforced(value: str) -> None:
    config = _config()
    config["build"]["asset_dirs"] = [value]
    config["build"]["entry_file"] = value

    assert _paths(config) == ["build.asset_dirs[0]", "build.entry_file"]


def test_unsupported_schema_version() -> None:
    config = _config()
    config["meta"]["schema_version"] = 99

    assert _paths(config) == ["meta.schema_version"]


def test_validation_error_renders_every_issue() -> None:
    config = _config()
    config["build"]["archive"] = 1
    config["observability"]["log_level"] = "LOUD"

    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(config)

    message = str(excinfo.value)
    assert "- build.archive: expected boolean, got int" in message
    assert "- observability.log_level: invalid value 'LOUD'" in message


def test_merge_config_is_deep_and_does_not_alias() -> None:
    base = default_config()
    merged = merge_config(base, {"build": {"installer": {"timeout_seconds": 5}}})

    merged["build"]["source_dirs"].append("lib")

    assert merged["build"]["installer"] == {"command": ["composer"], "timeout_seconds": 5}
    assert base["build"]["source_dirs"] == ["src"]


def test_to_build_configuration_fills_defaults(tmp_path: Path) -> None:
    config = to_build_configuration(
        {"artifact_id": "acme-app", "build": {"prefixer": {"enabled": False}}},
        project_root=tmp_path,
    )

    assert config.output_dir == tmp_path / "dist"
    assert config.auto_scope
    assert config.namespace_prefix == ""
    assert config.source_dirs == ("src",)
    assert config.asset_dirs == ("assets",)
    assert config.docs == ("README.md",)
    assert config.installer_command == ("composer",)
    assert config.entry_file is None
