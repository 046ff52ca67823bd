"""
docstore — unit tests for config schema validation

Purpose
- Validate strict config schema behavior and structured errors.

What this test file should cover
- Built-in defaults validate cleanly and are never shared between callers.
- Unknown keys, missing keys, and invalid types are reported with their paths.
"""

from __future__ import annotations

import pytest

from docstore.config import (
    FIELDS,
    ConfigValidationError,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)


def _issue_map(config: object) -> dict[str, str]:
    issues = validate_config(config)
    assert issues
    return {issue.path: issue.message for issue in issues}


def test_defaults_validate_and_are_copied() -> None:
    assert validate_config(default_config()) == ()

    mutated = default_config()
    mutated["database"]["busy_timeout_ms"] = 1
    assert default_config()["database"]["busy_timeout_ms"] == 5000


def test_defaults_cover_every_declared_field() -> None:
    config = default_config()

    assert {field.dotted for field in FIELDS} == {
        f"{section}.{key}" for section, values in config.items() for key in values
    }


def test_merge_config_is_deep_and_non_destructive() -> None:
    base = default_config()
    merged = merge_config(base, {"database": {"busy_retry_limit": 9}})

    assert merged["database"]["busy_retry_limit"] == 9
    assert merged["database"]["busy_timeout_ms"] == base["database"]["busy_timeout_ms"]
    assert base["database"]["busy_retry_limit"] == 4


def test_unknown_and_missing_fields_are_reported_with_paths() -> None:
    config = merge_config(default_config(), {"database": {"pool": 1}, "extra": {}})
    del config["observability"]["log_level"]

    issues = _issue_map(config)

    assert issues == {
        "database.pool": "unknown field",
        "extra": "unknown field",
        "observability.log_level": "missing required field",
    }


def test_missing_and_malformed_sections_are_reported() -> None:
    config = merge_config(default_config(), {"observability": "loud"})
    del config["database"]

    assert _issue_map(config) == {
        "database": "missing required section",
        "observability": "expected table, got str",
    }


@pytest.mark.parametrize(
    ("overlay", "path", "fragment"),
    [
        ({"database": {"busy_timeout_ms": "fast"}}, "database.busy_timeout_ms", "integer"),
        ({"database": {"busy_retry_limit": -1}}, "database.busy_retry_limit", ">= 0"),
        ({"database": {"busy_timeout_ms": True}}, "database.busy_timeout_ms", "integer"),
        ({"database": {"path": "   "}}, "database.path", "must not be empty"),
        ({"database": {"path": ":memory:"}}, "database.path", "filesystem path"),
        ({"database": {"path": "file:db?mode=memory"}}, "database.path", "filesystem path"),
        (
            {"database": {"async_blocking_policy": "lenient"}},
            "database.async_blocking_policy",
            "expected one of",
        ),
        ({"observability": {"log_level": "TRACE"}}, "observability.log_level", "expected one of"),
        ({"observability": {"log_to_stdout": "yes"}}, "observability.log_to_stdout", "boolean"),
        ({"observability": {"log_dir": 7}}, "observability.log_dir", "expected string"),
    ],
)
def test_invalid_values_report_actionable_paths(
    overlay: dict[str, object], path: str, fragment: str
) -> None:
    issues = _issue_map(merge_config(default_config(), overlay))

    assert list(issues) == [path]
    assert fragment in issues[path]


def test_non_mapping_root_is_rejected() -> None:
    assert _issue_map(["not", "a", "table"]) == {"<root>": "expected table, got list"}


def test_assert_valid_config_raises_with_every_issue() -> None:
    config = merge_config(
        default_config(),
        {"database": {"busy_retry_limit": -1}, "observability": {"log_level": "LOUD"}},
    )

    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(config)

    assert [issue.path for issue in excinfo.value.issues] == [
        "database.busy_retry_limit",
        "observability.log_level",
    ]
    assert str(excinfo.value).startswith("invalid config:\n- ")


def test_assert_valid_config_returns_a_copy() -> None:
    config = default_config()
    validated = assert_valid_config(config)

    validated["database"]["busy_retry_limit"] = 0
    assert config["database"]["busy_retry_limit"] == 4
