"""Structured logging for the document store.

Store modules log through :func:`get_logger`, a structlog logger over stdlib
``logging``. Nothing is emitted until an application opts in: the ``docstore``
logger carries a ``NullHandler`` and inherits the root level. Call
:func:`setup_logging` to write JSON lines, or attach handlers of your own.
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

import structlog

_ROOT_LOGGER_NAME: Final[str] = "docstore"
_LOG_FILENAME: Final[str] = "docstore.jsonl"

_ACTIVE_LOCK = threading.Lock()
_ACTIVE_HANDLE: LoggingHandle | None = None

logging.getLogger(_ROOT_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str) -> Any:
    """Return a structlog logger bound to the stdlib logger ``name``.

    Level filtering follows stdlib, so debug and info events cost nothing
    until a level is configured for the ``docstore`` hierarchy.
    """
    return structlog.wrap_logger(
        logging.getLogger(name),
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
    )


def json_formatter() -> structlog.stdlib.ProcessorFormatter:
    """Formatter that renders structlog and plain stdlib records as one JSON object per line."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.ExtraAdder(),
        ],
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
    )


def configure_structlog() -> None:
    """Route ``structlog.get_logger`` events through stdlib handlers and :func:`json_formatter`."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@dataclass(slots=True)
class LoggingHandle:
    """Handlers installed by :func:`setup_logging`; :meth:`shutdown` removes them."""

    logger: logging.Logger
    log_path: Path
    handlers: tuple[logging.Handler, ...]
    _previous_level: int
    _previous_propagate: bool
    _closed: bool = field(default=False)

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self) -> None:
        for handler in self.handlers:
            handler.flush()

    def shutdown(self) -> None:
        if self._closed:
            return
        for handler in self.handlers:
            self.logger.removeHandler(handler)
            handler.close()
        self.logger.setLevel(self._previous_level)
        self.logger.propagate = self._previous_propagate
        self._closed = True


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    log_dir: Path | str | None = None,
    logger_name: str = _ROOT_LOGGER_NAME,
) -> LoggingHandle:
    """Write JSON lines for ``logger_name`` per an ``[observability]`` config section.

    Records go to ``<log_dir>/docstore.jsonl`` and, with ``log_to_stdout``,
    to stdout as well. A previous setup is shut down first.
    """
    global _ACTIVE_HANDLE

    cfg = dict(observability_config or {})
    level = _parse_level(cfg.get("log_level", "INFO"))
    directory = Path(log_dir if log_dir is not None else str(cfg.get("log_dir", "logs")))
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / _LOG_FILENAME

    formatter = json_formatter()
    handlers: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if bool(cfg.get("log_to_stdout", False)):
        handlers.append(logging.StreamHandler(sys.stdout))

    logger = logging.getLogger(logger_name)
    with _ACTIVE_LOCK:
        if _ACTIVE_HANDLE is not None:
            _ACTIVE_HANDLE.shutdown()
        handle = LoggingHandle(
            logger=logger,
            log_path=log_path,
            handlers=tuple(handlers),
            _previous_level=logger.level,
            _previous_propagate=logger.propagate,
        )
        for handler in handlers:
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(level)
        logger.propagate = False
        _ACTIVE_HANDLE = handle

    configure_structlog()
    return handle


def shutdown_logging(handle: LoggingHandle | None = None) -> None:
    """Shut down ``handle``, or the active setup when omitted."""
    global _ACTIVE_HANDLE

    with _ACTIVE_LOCK:
        target = handle if handle is not None else _ACTIVE_HANDLE
        if target is None:
            return
        target.shutdown()
        if target is _ACTIVE_HANDLE:
            _ACTIVE_HANDLE = None


@contextmanager
def correlation_scope(**fields: str) -> Iterator[None]:
    """Attach ``fields`` to events logged in this context until the block exits."""
    for key, value in fields.items():
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"correlation value for {key!r} must be a non-empty string")
    with structlog.contextvars.bound_contextvars(**fields):
        yield


def get_correlation_context() -> dict[str, Any]:
    return dict(structlog.contextvars.get_contextvars())


def _parse_level(value: object) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    level = logging.getLevelNamesMapping().get(str(value).upper())
    if level is None:
        raise ValueError(f"unsupported log level {value!r}")
    return level


__all__ = [
    "LoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "get_correlation_context",
    "get_logger",
    "json_formatter",
    "setup_logging",
    "shutdown_logging",
]
