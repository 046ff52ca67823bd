"""Stable constants shared across the document store."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final, Literal

# Default runtime paths (relative to the config file unless overridden).
DEFAULT_CONFIG_FILE: Final[str] = "docstore.toml"
DEFAULT_DATABASE_PATH: Final[PurePosixPath] = PurePosixPath("state/docstore.sqlite3")
DEFAULT_LOG_DIR: Final[PurePosixPath] = PurePosixPath("logs")

# SQLite connection tuning.
DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5_000
DEFAULT_BUSY_RETRY_LIMIT: Final[int] = 4
DEFAULT_BUSY_RETRY_BACKOFF_MS: Final[int] = 25

AsyncBlockingPolicy = Literal["allow", "strict"]
DEFAULT_ASYNC_BLOCKING_POLICY: Final[AsyncBlockingPolicy] = "allow"
ASYNC_BLOCKING_POLICIES: Final[tuple[AsyncBlockingPolicy, ...]] = ("allow", "strict")

__all__ = [
    "ASYNC_BLOCKING_POLICIES",
    "AsyncBlockingPolicy",
    "DEFAULT_ASYNC_BLOCKING_POLICY",
    "DEFAULT_BUSY_RETRY_BACKOFF_MS",
    "DEFAULT_BUSY_RETRY_LIMIT",
    "DEFAULT_BUSY_TIMEOUT_MS",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_DATABASE_PATH",
    "DEFAULT_LOG_DIR",
]
