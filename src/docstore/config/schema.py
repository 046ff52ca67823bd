"""Config keys, defaults, and validation.

Every key the store reads is declared once in ``FIELDS``. Defaults, the
``DOCSTORE_`` environment variable names, path normalization, and validation
all derive from that table, and validation reports every problem at once.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict, cast

from docstore.constants import (
    ASYNC_BLOCKING_POLICIES,
    DEFAULT_ASYNC_BLOCKING_POLICY,
    DEFAULT_BUSY_RETRY_BACKOFF_MS,
    DEFAULT_BUSY_RETRY_LIMIT,
    DEFAULT_BUSY_TIMEOUT_MS,
    DEFAULT_DATABASE_PATH,
    DEFAULT_LOG_DIR,
    AsyncBlockingPolicy,
)

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

ConfigValue = bool | int | str


class DatabaseConfig(TypedDict):
    path: str
    busy_timeout_ms: int
    busy_retry_limit: int
    busy_retry_backoff_ms: int
    async_blocking_policy: AsyncBlockingPolicy


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stdout: bool


class DocstoreConfig(TypedDict):
    database: DatabaseConfig
    observability: ObservabilityConfig


@dataclass(frozen=True, slots=True)
class ConfigField:
    section: str
    key: str
    kind: type[bool] | type[int] | type[str]
    default: ConfigValue
    choices: tuple[str, ...] = ()
    minimum: int | None = None
    is_path: bool = False

    @property
    def dotted(self) -> str:
        return f"{self.section}.{self.key}"


FIELDS: Final[tuple[ConfigField, ...]] = (
    ConfigField("database", "path", str, DEFAULT_DATABASE_PATH.as_posix(), is_path=True),
    ConfigField("database", "busy_timeout_ms", int, DEFAULT_BUSY_TIMEOUT_MS, minimum=0),
    ConfigField("database", "busy_retry_limit", int, DEFAULT_BUSY_RETRY_LIMIT, minimum=0),
    ConfigField(
        "database", "busy_retry_backoff_ms", int, DEFAULT_BUSY_RETRY_BACKOFF_MS, minimum=0
    ),
    ConfigField(
        "database",
        "async_blocking_policy",
        str,
        DEFAULT_ASYNC_BLOCKING_POLICY,
        choices=ASYNC_BLOCKING_POLICIES,
    ),
    ConfigField("observability", "log_level", str, "INFO", choices=LOG_LEVELS),
    ConfigField("observability", "log_dir", str, DEFAULT_LOG_DIR.as_posix(), is_path=True),
    ConfigField("observability", "log_to_stdout", bool, False),
)

SECTIONS: Final[tuple[str, ...]] = tuple(dict.fromkeys(field.section for field in FIELDS))


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


class ConfigValidationError(ValueError):
    """Raised when a config fails validation; ``issues`` lists every problem."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        rendered = "\n".join(f"- {issue.path}: {issue.message}" for issue in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


def default_config() -> DocstoreConfig:
    config: dict[str, dict[str, ConfigValue]] = {}
    for field in FIELDS:
        config.setdefault(field.section, {})[field.key] = field.default
    return cast(DocstoreConfig, config)


def merge_config(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``."""
    merged = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validate_config(config: object) -> tuple[ConfigValidationIssue, ...]:
    """Return every problem with ``config``, ordered by path; empty when valid."""
    if not isinstance(config, Mapping):
        return (ConfigValidationIssue("<root>", f"expected table, got {type(config).__name__}"),)

    issues: list[ConfigValidationIssue] = []
    for name in config:
        if name not in SECTIONS:
            issues.append(ConfigValidationIssue(str(name), "unknown field"))

    for section_name in SECTIONS:
        section = config.get(section_name)
        if section is None:
            issues.append(ConfigValidationIssue(section_name, "missing required section"))
            continue
        if not isinstance(section, Mapping):
            issues.append(
                ConfigValidationIssue(section_name, f"expected table, got {type(section).__name__}")
            )
            continue
        known = {field.key for field in FIELDS if field.section == section_name}
        for key in section:
            if key not in known:
                issues.append(ConfigValidationIssue(f"{section_name}.{key}", "unknown field"))

    for field in FIELDS:
        section = config.get(field.section)
        if not isinstance(section, Mapping):
            continue
        if field.key not in section:
            issues.append(ConfigValidationIssue(field.dotted, "missing required field"))
            continue
        problem = _check_value(field, section[field.key])
        if problem is not None:
            issues.append(ConfigValidationIssue(field.dotted, problem))

    return tuple(sorted(issues, key=lambda issue: issue.path))


def assert_valid_config(config: object) -> DocstoreConfig:
    issues = validate_config(config)
    if issues:
        raise ConfigValidationError(issues)
    return cast(DocstoreConfig, merge_config({}, cast(Mapping[str, Any], config)))


def _check_value(field: ConfigField, value: object) -> str | None:
    if field.kind is bool:
        return None if isinstance(value, bool) else f"expected boolean, got {type(value).__name__}"

    if field.kind is int:
        if isinstance(value, bool) or not isinstance(value, int):
            return f"expected integer, got {type(value).__name__}"
        if field.minimum is not None and value < field.minimum:
            return f"must be >= {field.minimum}"
        return None

    if not isinstance(value, str):
        return f"expected string, got {type(value).__name__}"
    if not value.strip():
        return "must not be empty"
    if field.choices and value not in field.choices:
        return f"invalid value {value!r}; expected one of: {', '.join(field.choices)}"
    if field.is_path:
        if "\x00" in value:
            return "must not contain NUL bytes"
        if value == ":memory:" or value.startswith("file:"):
            return "must be a filesystem path"
    return None


__all__ = [
    "FIELDS",
    "LOG_LEVELS",
    "SECTIONS",
    "ConfigField",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "DatabaseConfig",
    "DocstoreConfig",
    "ObservabilityConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "validate_config",
]
