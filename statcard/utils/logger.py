"""Logging configuration"""

import logging
import sys
from typing import Any, Optional, TextIO, Union

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Attributes every LogRecord carries; anything else arrived through ``extra=``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class ExtraFieldsFormatter(logging.Formatter):
    """Formatter that appends ``extra=`` fields as sorted ``key=value`` pairs.

    Call sites pass already-sanitized fields (see ``sanitize_log_extra``), so
    values are rendered as-is.
    """

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        fields = extra_fields(record)
        if not fields:
            return line
        rendered = " ".join(f"{key}={_render(value)}" for key, value in sorted(fields.items()))
        return f"{line} | {rendered}"


def extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Fields attached to ``record`` through ``extra=``."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


def _render(value: Any) -> str:
    text = str(value)
    if not text or any(char.isspace() for char in text):
        return repr(text)
    return text


def resolve_level(level: Union[int, str]) -> int:
    """Numeric level for ``level``; unknown names fall back to INFO."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(
    name: str,
    level: Union[int, str] = logging.INFO,
    format_string: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Set up the package logger; module loggers below ``name`` propagate to it

    Args:
        name: Logger name (usually the top-level package)
        level: Logging level, number or name such as "DEBUG"
        format_string: Custom format string
        stream: Output stream, stdout by default (CloudWatch picks it up)

    Returns:
        Configured logger
    """
    numeric_level = resolve_level(level)
    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)

    # Warm Lambda containers re-import the handler module
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(ExtraFieldsFormatter(format_string or DEFAULT_FORMAT))
    logger.addHandler(handler)

    return logger
