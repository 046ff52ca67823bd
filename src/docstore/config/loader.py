"""Effective config from layered sources.

Later layers win: built-in defaults, then ``docstore.toml``, then
``DOCSTORE_<SECTION>_<KEY>`` environment variables, then explicit overrides.
Relative paths resolve against the config file's directory.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final, cast

from docstore.config.schema import (
    FIELDS,
    ConfigField,
    DocstoreConfig,
    assert_valid_config,
    default_config,
    merge_config,
)
from docstore.constants import DEFAULT_CONFIG_FILE

ENV_PREFIX: Final[str] = "DOCSTORE_"

_TRUE_WORDS: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})


class ConfigLoadError(ValueError):
    """Raised when a config source cannot be read or a value cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> DocstoreConfig:
    """Load and validate the effective config.

    Without ``config_path`` a ``docstore.toml`` in the working directory is
    read when present; an explicit path must exist. ``overrides`` accepts
    dotted keys (``"database.path"``) or nested tables.
    """
    if config_path is None:
        path = (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    else:
        path = Path(config_path).expanduser().resolve()

    merged: dict[str, Any] = dict(default_config())
    for layer in (
        _file_layer(path, required=config_path is not None),
        _env_layer(os.environ if environ is None else environ),
        _override_layer(overrides or {}),
    ):
        merged = merge_config(merged, layer)

    return normalize_paths(assert_valid_config(merged), base_dir=path.parent)


def env_var_name(field: ConfigField) -> str:
    return f"{ENV_PREFIX}{field.section}_{field.key}".upper()


def normalize_paths(config: DocstoreConfig, *, base_dir: Path) -> DocstoreConfig:
    """Make every path field absolute, resolving relative ones under ``base_dir``."""
    normalized = merge_config({}, cast(Mapping[str, Any], config))
    for field in FIELDS:
        if not field.is_path:
            continue
        raw = normalized[field.section][field.key]
        candidate = Path(os.path.expandvars(raw)).expanduser()
        if not candidate.is_absolute():
            candidate = base_dir / candidate
        normalized[field.section][field.key] = Path(os.path.normpath(candidate)).as_posix()
    return cast(DocstoreConfig, normalized)


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _file_layer(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _env_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for field in FIELDS:
        name = env_var_name(field)
        raw = environ.get(name)
        if raw is not None:
            layer.setdefault(field.section, {})[field.key] = _coerce(field, raw, name)
    return layer


def _coerce(field: ConfigField, raw: str, name: str) -> object:
    value = raw.strip()
    if field.kind is int:
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{name} must be an integer, got {raw!r}") from exc
    if field.kind is bool:
        lowered = value.lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        raise ConfigLoadError(
            f"{name} must be a boolean (true/false/yes/no/on/off/1/0), got {raw!r}"
        )
    return value


def _override_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for key, value in overrides.items():
        if isinstance(value, Mapping):
            layer = merge_config(layer, {key: value})
            continue
        section, _, name = key.partition(".")
        if not section or not name:
            raise ConfigLoadError(f"override key must look like 'section.key', got {key!r}")
        layer = merge_config(layer, {section: {name: value}})
    return layer


__all__ = [
    "ENV_PREFIX",
    "ConfigLoadError",
    "dump_effective_config",
    "env_var_name",
    "load_config",
    "normalize_paths",
]
