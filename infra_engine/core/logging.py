"""Structured logging configuration for the Infrastructure Topology Engine.

Records are rendered as ``key=value`` pairs. A request id bound with
``request_context`` is stamped on every record emitted inside the block,
including records from helpers that never see the id themselves (LLM
retries, topology client retries, connection resolution).
"""

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

_request_id: ContextVar[str | None] = ContextVar("infra_engine_request_id", default=None)


def new_request_id() -> str:
    """Short correlation id for one pipeline invocation."""
    return uuid.uuid4().hex[:9]


def current_request_id() -> str:
    """The bound request id, or a fresh one when nothing is bound."""
    return _request_id.get() or new_request_id()


@contextmanager
def request_context(request_id: str | None = None) -> Iterator[str]:
    """
    Bind a request id for the duration of the block.

    Nested blocks without an explicit id keep the outer id, so a facade call
    and the components it drives log under one correlation id.

    Args:
        request_id: Id to bind (defaults to the outer id or a new one)

    Yields:
        The bound request id
    """
    bound = request_id or _request_id.get() or new_request_id()
    token = _request_id.set(bound)
    try:
        yield bound
    finally:
        _request_id.reset(token)


class StructuredFormatter(logging.Formatter):
    """Key=value structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        request_id = getattr(record, "request_id", None) or _request_id.get()
        if request_id:
            log_data["request_id"] = request_id

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exc"] = self.formatException(record.exc_info).replace("\n", " | ")

        return " ".join(f"{k}={v}" for k, v in log_data.items())


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        try:
            from infra_engine.core.config import get_settings

            level = logging.DEBUG if get_settings().INFRA_ENGINE_ENV == "dev" else logging.INFO
        except Exception:
            # Settings unavailable (e.g. invalid env); stay at INFO
            level = logging.INFO
        logger.setLevel(level)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    ``request_id`` is promoted to the record itself; every other keyword is
    rendered as an extra field.
    """
    request_id = kwargs.pop("request_id", None)
    extra: dict[str, Any] = {"extra_data": kwargs}
    if request_id is not None:
        extra["request_id"] = request_id

    logger.log(level, msg, extra=extra)
