"""Id text for documents and units-of-work.

Generated ids are ULIDs: 26 Crockford Base32 characters whose lexical order
follows creation time, so freshly created documents page in insertion order
when sorted by id. Ids read back from the store are opaque text.
"""

from __future__ import annotations

import re
import secrets
import time
from typing import Final

ULID_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH: Final[int] = 26
MAX_ID_LENGTH: Final[int] = 255

_PREFIX_RE: Final[re.Pattern[str]] = re.compile(r"[a-z][a-z0-9_]*")
_SQL_IDENTIFIER_RE: Final[re.Pattern[str]] = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_CONTROL_CHAR_RE: Final[re.Pattern[str]] = re.compile(r"[\x00-\x1f\x7f]")


def new_ulid() -> str:
    """48-bit millisecond timestamp followed by 80 random bits."""
    value = (time.time_ns() // 1_000_000) << 80 | int.from_bytes(secrets.token_bytes(10), "big")
    chars = []
    for _ in range(ULID_LENGTH):
        chars.append(ULID_ALPHABET[value & 0b11111])
        value >>= 5
    return "".join(reversed(chars))


def new_prefixed_id(prefix: str) -> str:
    return f"{validate_prefix(prefix)}-{new_ulid()}"


def validate_prefix(prefix: str) -> str:
    if not isinstance(prefix, str) or _PREFIX_RE.fullmatch(prefix) is None:
        raise ValueError(f"prefix must match {_PREFIX_RE.pattern} (got {prefix!r})")
    return prefix


def validate_id_text(value: object) -> str:
    """Return ``value`` if it is usable as stored id text."""
    if not isinstance(value, str):
        raise ValueError(f"entity id must be a string, got {type(value).__name__}")
    if not value or value.strip() != value:
        raise ValueError("entity id must be non-empty without surrounding whitespace")
    if len(value) > MAX_ID_LENGTH:
        raise ValueError(f"entity id must be at most {MAX_ID_LENGTH} characters")
    if _CONTROL_CHAR_RE.search(value):
        raise ValueError("entity id must not contain control characters")
    return value


def validate_sql_identifier(name: str, *, field: str = "identifier") -> str:
    """Table names are interpolated into SQL, so only plain identifiers pass."""
    if not isinstance(name, str) or _SQL_IDENTIFIER_RE.fullmatch(name) is None:
        raise ValueError(f"{field} must match {_SQL_IDENTIFIER_RE.pattern} (got {name!r})")
    return name


__all__ = [
    "MAX_ID_LENGTH",
    "ULID_ALPHABET",
    "ULID_LENGTH",
    "new_prefixed_id",
    "new_ulid",
    "validate_id_text",
    "validate_prefix",
    "validate_sql_identifier",
]
