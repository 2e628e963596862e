"""Tests for logging configuration and formatters."""

import json
import logging
import sys
from datetime import datetime, timezone

import pytest

from app.domain.models import MatchStage
from app.logging import ComponentLoggerAdapter, get_logger
from app.logging.config import (
    NOISY_LOGGERS,
    SERVICE_NAME,
    ContextualFilter,
    JSONFormatter,
    KeyValueFormatter,
    configure_logging,
)
from app.logging.context import clear_log_context, log_context


@pytest.fixture(autouse=True)
def clean_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def restore_root_logger():
    """Put the root logger back after configure_logging replaced its handlers."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    noisy_levels = {name: logging.getLogger(name).level for name in NOISY_LOGGERS}
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, noisy_level in noisy_levels.items():
        logging.getLogger(name).setLevel(noisy_level)


class Opaque:
    def __str__(self):
        return "opaque"


def make_record(message="Scoring pair", extra=None, level=logging.INFO):
    return logging.getLogger("test").makeRecord(
        "test", level, "test.py", 1, message, (), None, extra=extra
    )


def key_value_formatter():
    return KeyValueFormatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def test_json_formatter_basic():
    """Test JSONFormatter produces valid JSON with mandatory fields."""
    log_obj = json.loads(JSONFormatter().format(make_record()))

    assert log_obj["level"] == "INFO"
    assert log_obj["logger"] == "test"
    assert log_obj["message"] == "Scoring pair"
    assert "timestamp" in log_obj
    assert "name" not in log_obj
    assert "lineno" not in log_obj


def test_json_formatter_with_extra_fields():
    record = make_record(extra={"event": "matching.run.completed", "matches_created": 9, "failed": False})

    log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["event"] == "matching.run.completed"
    assert log_obj["matches_created"] == 9
    assert log_obj["failed"] is False


def test_json_formatter_coerces_values():
    """Enums, datetimes and sets become JSON-friendly values."""
    record = make_record(
        extra={
            "to_stage": MatchStage.UNDERWRITING,
            "started_at": datetime(2025, 11, 4, 12, 0, tzinfo=timezone.utc),
            "zips": frozenset({"70065", "70062"}),
            "path": Opaque(),
        }
    )

    log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["to_stage"] == "Underwriting"
    assert log_obj["started_at"] == "2025-11-04T12:00:00+00:00"
    assert log_obj["zips"] == ["70062", "70065"]
    assert log_obj["path"] == "opaque"


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("store down")
    except RuntimeError:
        record = logging.getLogger("test").makeRecord(
            "test", logging.ERROR, "test.py", 1, "Fetch failed", (), sys.exc_info()
        )

    log_obj = json.loads(JSONFormatter().format(record))

    assert "RuntimeError: store down" in log_obj["exc_info"]


def test_timestamp_format():
    """Timestamps are ISO-8601 UTC with millisecond precision."""
    created = datetime(2025, 11, 4, 10, 30, 0, 123456, tzinfo=timezone.utc).timestamp()

    assert JSONFormatter.format_timestamp(created) == "2025-11-04T10:30:00.123Z"


def test_contextual_filter_adds_static_fields():
    record = make_record()

    assert ContextualFilter(service="matcher-test", environment="test").filter(record) is True
    assert record.service == "matcher-test"
    assert record.environment == "test"


def test_contextual_filter_defaults():
    record = make_record()
    ContextualFilter().filter(record)

    assert record.service == SERVICE_NAME
    assert record.environment == "local"


def test_contextual_filter_adds_context_fields():
    with log_context(run_id="4f1c", buyer_id="recBUYER001"):
        record = make_record()
        ContextualFilter().filter(record)

    assert record.run_id == "4f1c"
    assert record.buyer_id == "recBUYER001"


def test_explicit_extra_wins_over_context():
    with log_context(buyer_id="recBUYER001"):
        record = make_record(extra={"buyer_id": "recBUYER002"})
        ContextualFilter().filter(record)

    assert record.buyer_id == "recBUYER002"


def test_json_formatter_with_context():
    """Test full pipeline: context + filter + JSON formatter."""
    with log_context(run_id="4f1c", run_mode="all"):
        record = make_record("Matching run started", extra={"event": "matching.run.started"})
        ContextualFilter(environment="test").filter(record)
        log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["message"] == "Matching run started"
    assert log_obj["event"] == "matching.run.started"
    assert log_obj["service"] == SERVICE_NAME
    assert log_obj["environment"] == "test"
    assert log_obj["run_id"] == "4f1c"
    assert log_obj["run_mode"] == "all"


def test_key_value_formatter_basic():
    output = key_value_formatter().format(make_record())

    assert "[INFO] test: Scoring pair" in output


def test_key_value_formatter_with_extras():
    """Extras are appended sorted by key; service/environment are left out."""
    record = make_record(extra={"event": "matching.batch.failed", "batch_size": 10})
    ContextualFilter().filter(record)

    output = key_value_formatter().format(record)

    assert output.endswith("batch_size=10 event=matching.batch.failed")
    assert "service=" not in output


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, "null"),
        (True, "true"),
        (False, "false"),
        (42, "42"),
        ("recBUYER001", "recBUYER001"),
        ("Jane Doe", '"Jane Doe"'),
        ("a=b", '"a=b"'),
        (["70062", "70065"], '["70062", "70065"]'),
        (MatchStage.CONTRACTS, "Contracts"),
        (MatchStage.NOT_INTERESTED, '"Not Interested"'),
    ],
)
def test_key_value_render_value(value, expected):
    assert KeyValueFormatter.render_value(value) == expected


def test_get_logger_plain():
    logger = get_logger("app.tests.plain")

    assert isinstance(logger, logging.Logger)
    assert logger.name == "app.tests.plain"


def test_get_logger_component_adapter(caplog):
    """The component is added to every record; per-call extras are kept."""
    logger = get_logger("app.tests.component", component="scorer")
    assert isinstance(logger, ComponentLoggerAdapter)

    with caplog.at_level(logging.INFO, logger="app.tests.component"):
        logger.info("Scored", extra={"event": "matching.pair.scored"})
        logger.info("Overridden", extra={"component": "pipeline"})

    assert caplog.records[0].component == "scorer"
    assert caplog.records[0].event == "matching.pair.scored"
    assert caplog.records[1].component == "pipeline"


def test_configure_logging_invalid_level():
    with pytest.raises(ValueError, match="Invalid log level"):
        configure_logging(level="LOUD")


def test_configure_logging_invalid_format():
    with pytest.raises(ValueError, match="Invalid log format"):
        configure_logging(format_type="xml")


def test_configure_logging_json_format(restore_root_logger):
    configure_logging(level="info", format_type="json", environment="test")

    root = restore_root_logger
    assert root.level == logging.INFO
    assert len(root.handlers) == 1
    handler = root.handlers[0]
    assert isinstance(handler.formatter, JSONFormatter)
    assert any(isinstance(f, ContextualFilter) and f.environment == "test" for f in handler.filters)


def test_configure_logging_key_value_format(restore_root_logger):
    configure_logging(level="WARNING", format_type="key-value")

    assert isinstance(restore_root_logger.handlers[0].formatter, KeyValueFormatter)


def test_configure_logging_quiets_noisy_loggers(restore_root_logger):
    configure_logging(level="INFO")

    for name in NOISY_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING


def test_configure_logging_debug_leaves_noisy_loggers(restore_root_logger):
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)

    configure_logging(level="DEBUG")

    assert logging.getLogger("urllib3").level == logging.NOTSET
