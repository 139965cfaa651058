import io
import json
import logging
from datetime import datetime

import pytest

from dpiproxy.prettylog import PrettyFormatter, setup_pretty_logger


def _record(level, msg, fields=None, when=None):
    record = logging.LogRecord("t", level, __file__, 1, msg, None, None)
    if fields is not None:
        record.fields = fields
    if when is not None:
        record.created = when.timestamp()
        record.msecs = when.microsecond // 1000
    return record


def test_plain_line_without_fields():
    fmt = PrettyFormatter(color=False)
    when = datetime(2024, 1, 2, 3, 4, 5, 678000)
    line = fmt.format(_record(logging.INFO, "Proxy server started", when=when))
    assert line == "[03:05:05.678] INFO: Proxy server started "


def test_fields_are_sorted_compact_json():
    fmt = PrettyFormatter(color=False)
    line = fmt.format(_record(logging.WARNING, "Pipe error", {"error": "boom", "direction": "in"}))
    parts = line.split(" ", 3)
    assert parts[1] == "WARN:"
    assert parts[3].endswith('{"direction":"in","error":"boom"}')
    assert json.loads(parts[3].split(" ", 1)[1]) == {"direction": "in", "error": "boom"}


@pytest.mark.parametrize(
    "level,name",
    [(logging.DEBUG, "DEBUG:"), (logging.INFO, "INFO:"), (logging.WARNING, "WARN:"), (logging.ERROR, "ERROR:")],
)
def test_level_names(level, name):
    line = PrettyFormatter(color=False).format(_record(level, "m"))
    assert line.split(" ")[1] == name


@pytest.mark.parametrize(
    "level,code",
    [(logging.DEBUG, "\x1b[35m"), (logging.INFO, "\x1b[34m"), (logging.WARNING, "\x1b[33m"), (logging.ERROR, "\x1b[31m")],
)
def test_colored_levels(level, code):
    line = PrettyFormatter(color=True).format(_record(level, "hello"))
    assert code in line
    assert "\x1b[36mhello\x1b[0m" in line


def test_bound_fields_override_record_fields():
    fmt = PrettyFormatter(color=False).with_fields({"host": "example.com"})
    line = fmt.format(_record(logging.INFO, "m", {"host": "example.org", "port": 443}))
    payload = json.loads(line.split(" ", 3)[3])
    assert payload == {"host": "example.com", "port": 443}


def test_with_fields_replaces_previous_binding():
    base = PrettyFormatter(color=False, extra_fields={"a": 1})
    derived = base.with_fields({"b": 2})
    assert derived.extra_fields == {"b": 2}
    assert base.extra_fields == {"a": 1}
    assert derived.color is False


def test_setup_pretty_logger_writes_to_stream():
    stream = io.StringIO()
    logger = setup_pretty_logger(stream, color=False)
    logger.debug("Shutting down proxy...", extra={"fields": {"address": "127.0.0.1:8881"}})
    out = stream.getvalue()
    assert out.endswith('DEBUG: Shutting down proxy... {"address":"127.0.0.1:8881"}\n')
    assert logger.level == logging.DEBUG


def test_setup_pretty_logger_non_tty_is_uncolored():
    stream = io.StringIO()
    logger = setup_pretty_logger(stream)
    logger.error("bad")
    assert "\x1b[" not in stream.getvalue()
    assert "ERROR: bad" in stream.getvalue()


def test_setup_is_idempotent():
    first = io.StringIO()
    second = io.StringIO()
    setup_pretty_logger(first, color=False)
    logger = setup_pretty_logger(second, color=False)
    logger.info("once")
    assert first.getvalue() == ""
    assert second.getvalue().count("once") == 1