"""A compact, optionally coloured log formatter."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from typing import Any, Mapping, TextIO

_RESET = "\x1b[0m"
_MAGENTA = "\x1b[35m"
_BLUE = "\x1b[34m"
_YELLOW = "\x1b[33m"
_RED = "\x1b[31m"
_CYAN = "\x1b[36m"
_WHITE = "\x1b[37m"

_LEVELS: dict[int, tuple[str, str]] = {
    logging.DEBUG: ("DEBUG", _MAGENTA),
    logging.INFO: ("INFO", _BLUE),
    logging.WARNING: ("WARN", _YELLOW),
    logging.ERROR: ("ERROR", _RED),
}

LOGGER_NAME = "dpiproxy"


class PrettyFormatter(logging.Formatter):
    """Formats records as ``[time] LEVEL: message {json fields}``.

    Structured fields are taken from ``extra={"fields": {...}}`` on the
    logging call; fields bound to the formatter take precedence.
    """

    def __init__(self, color: bool = True, extra_fields: Mapping[str, Any] | None = None):
        super().__init__()
        self.color = color
        self.extra_fields: dict[str, Any] = dict(extra_fields or {})

    def _paint(self, text: str, code: str | None) -> str:
        if not self.color or code is None:
            return text
        return f"{code}{text}{_RESET}"

    def format(self, record: logging.LogRecord) -> str:
        name, code = _LEVELS.get(record.levelno, (record.levelname, None))
        level = self._paint(name + ":", code)

        fields: dict[str, Any] = dict(getattr(record, "fields", None) or {})
        fields.update(self.extra_fields)
        encoded = (
            json.dumps(fields, sort_keys=True, separators=(",", ":"), default=str)
            if fields
            else ""
        )

        stamp = datetime.fromtimestamp(record.created)
        # Hour, then seconds twice, then milliseconds.
        time_str = f"[{stamp:%H}:{stamp:%S}:{stamp:%S}.{int(record.msecs):03d}]"

        return " ".join(
            (
                time_str,
                level,
                self._paint(record.getMessage(), _CYAN),
                self._paint(encoded, _WHITE),
            )
        )

    def with_fields(self, fields: Mapping[str, Any]) -> "PrettyFormatter":
        """Return a formatter with the same colouring bound to ``fields`` only."""
        return PrettyFormatter(self.color, fields)


def setup_pretty_logger(stream: TextIO | None = None, color: bool | None = None) -> logging.Logger:
    """Configure and return the package logger writing pretty lines to ``stream``."""
    if stream is None:
        stream = sys.stdout
    if color is None:
        isatty = getattr(stream, "isatty", None)
        color = bool(isatty and isatty())

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(PrettyFormatter(color))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger