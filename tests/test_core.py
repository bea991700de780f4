"""
Unit tests for the core helpers.
Validates currency formatting, date arithmetic, exceptions and log plumbing.
"""
import json
import logging
from datetime import date

import pytest

from ruralcalc.core.exceptions import InvalidInputError, RuralCalcError, UnknownModalityError
from ruralcalc.core.logger import JsonFormatter, audit_log, get_logger_with_correlation, setup_logging
from ruralcalc.core.utils import days_between, format_brl, format_rate, months_between


@pytest.mark.parametrize("value, expected", [
    (0, "R$ 0,00"),
    (1234.5, "R$ 1.234,50"),
    (1234567.891, "R$ 1.234.567,89"),
    (-500, "-R$ 500,00"),
])
def test_format_brl(value: float, expected: str):
    """Formats amounts in Brazilian notation."""
    assert format_brl(value) == expected


def test_format_rate():
    """Formats a rate with the requested precision."""
    assert format_rate(12.5) == "12.50%"
    assert format_rate(1.23456, 4) == "1.2346%"


@pytest.mark.parametrize("start, end, days, months", [
    (date(2024, 1, 1), date(2025, 1, 1), 366, 12),
    (date(2024, 1, 31), date(2024, 2, 1), 1, 1),
    (date(2024, 3, 15), date(2024, 3, 20), 5, 0),
    (date(2024, 6, 1), date(2024, 1, 1), -152, -5),
])
def test_date_arithmetic(start: date, end: date, days: int, months: int):
    """Day counts are exact; month counts ignore the day of month."""
    assert days_between(start, end) == days
    assert months_between(start, end) == months


def test_invalid_input_error_carries_field():
    """Input errors identify the violated field and remain ValueErrors."""
    error = InvalidInputError("principal", "must be positive")
    assert error.field == "principal"
    assert isinstance(error, ValueError)
    assert isinstance(error, RuralCalcError)
    assert "principal" in str(error)


def test_unknown_modality_error():
    """Unknown modalities are reported against the modality field."""
    error = UnknownModalityError("soja_premium")
    assert error.field == "modality"
    assert error.modality == "soja_premium"


def test_correlation_adapter_stamps_records(caplog: pytest.LogCaptureFixture):
    """Records logged through the adapter carry the correlation_id."""
    caplog.set_level(logging.INFO, logger="ruralcalc")
    log = get_logger_with_correlation("abc-123")
    log.info("hello")

    record = caplog.records[-1]
    assert record.correlation_id == "abc-123"
    assert "[abc-123] hello" in record.getMessage()


def test_audit_log_record(caplog: pytest.LogCaptureFixture):
    """Audit records are written to the audit logger with structured details."""
    caplog.set_level(logging.INFO, logger="ruralcalc.audit")
    audit_log("calc", "system", "calculation=1", {"correlation_id": "cid-1"})

    record = caplog.records[-1]
    assert record.name == "ruralcalc.audit"
    assert record.audit["action"] == "calc"
    assert record.correlation_id == "cid-1"


def test_json_formatter():
    """JSON formatter emits parseable records with correlation_id."""
    record = logging.LogRecord("ruralcalc", logging.INFO, __file__, 1, "message", None, None)
    record.correlation_id = "cid-2"
    data = json.loads(JsonFormatter().format(record))

    assert data["message"] == "message"
    assert data["level"] == "INFO"
    assert data["correlation_id"] == "cid-2"


@pytest.mark.parametrize("format_type, formatter_type", [
    ("json", JsonFormatter),
    ("standard", logging.Formatter),
])
def test_setup_logging_installs_single_handler(format_type: str, formatter_type: type):
    """Repeated setup keeps exactly one handler with the requested formatter."""
    setup_logging("DEBUG", format_type)
    setup_logging("INFO", format_type)

    root = logging.getLogger("ruralcalc")
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, formatter_type)
    assert root.level == logging.INFO

    root.removeHandler(root.handlers[0])
