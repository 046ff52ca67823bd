"""Layered TOML/env configuration for the document store. Importing loads nothing."""

from docstore.config.loader import (
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    env_var_name,
    load_config,
    normalize_paths,
)
from docstore.config.schema import (
    FIELDS,
    LOG_LEVELS,
    ConfigField,
    ConfigValidationError,
    ConfigValidationIssue,
    DocstoreConfig,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)

__all__ = [
    "ENV_PREFIX",
    "FIELDS",
    "LOG_LEVELS",
    "ConfigField",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "DocstoreConfig",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "env_var_name",
    "load_config",
    "merge_config",
    "normalize_paths",
    "validate_config",
]
