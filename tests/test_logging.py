"""Tests for logging configuration."""

import json
import logging

from cardauth.core.logging import AUDIT_LOGGER, JsonFormatter, audit_event, get_logger, setup_logging


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="cardauth.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Authorization %s",
        args=("approved",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_basic_fields(self) -> None:
        data = json.loads(JsonFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "cardauth.test"
        assert data["message"] == "Authorization approved"
        assert "timestamp" in data

    def test_structured_extra_merged(self) -> None:
        record = make_record(extra={"card_id": "card-001", "outcome": "approved"})
        data = json.loads(JsonFormatter().format(record))

        assert data["card_id"] == "card-001"
        assert data["outcome"] == "approved"

    def test_non_json_values_stringified(self) -> None:
        from decimal import Decimal

        record = make_record(extra={"amount": Decimal("12.50")})
        assert json.loads(JsonFormatter().format(record))["amount"] == "12.50"


class TestSetupLogging:
    def test_levels(self) -> None:
        setup_logging(level="DEBUG")
        assert logging.getLogger("cardauth").level == logging.DEBUG
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        setup_logging(level="INFO")

    def test_json_format(self) -> None:
        setup_logging(format_type="json")
        handler = logging.getLogger().handlers[0]
        assert isinstance(handler.formatter, JsonFormatter)
        setup_logging()

    def test_get_logger(self) -> None:
        assert get_logger("cardauth.x").name == "cardauth.x"


class TestAuditEvent:
    def test_audit_record(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger=AUDIT_LOGGER):
            audit_event("webhook_rejected", reason="invalid_signature", ip="10.0.0.1")

        record = caplog.records[-1]
        assert record.name == AUDIT_LOGGER
        assert record.levelno == logging.WARNING
        assert record.extra["event"] == "webhook_rejected"
        assert "reason=invalid_signature" in record.getMessage()
