"""
Structured logger tests - JSON shape, redaction and correlation IDs.
"""

import json
import logging

import pytest

from membercache.core.logger import ComponentLogger, correlation_id_context, log_json


def captured_records(caplog):
    return [json.loads(record.getMessage()) for record in caplog.records if record.name == "membercache"]


@pytest.fixture
def capture(caplog):
    caplog.set_level(logging.DEBUG, logger="membercache")
    return caplog


class TestLogJson:
    """Test log_json output."""

    def test_standard_fields(self, capture):
        log_json("single_flight", "info", "members_fetched", guild_id=1, member_count=4)

        record = captured_records(capture)[0]
        assert record["event"] == "members_fetched"
        assert record["component"] == "single_flight"
        assert record["level"] == "INFO"
        assert record["member_count"] == 4
        assert record["timestamp"].endswith("Z")
        assert capture.records[0].levelno == logging.INFO

    def test_secrets_always_redacted(self, capture):
        log_json("config", "warning", "token_check", bot_token="abc", api_secret="xyz")

        record = captured_records(capture)[0]
        assert record["bot_token"] == "REDACTED"
        assert record["api_secret"] == "REDACTED"

    def test_ids_masked_in_production(self, capture, monkeypatch):
        monkeypatch.setenv("PRODUCTION", "True")

        log_json("resolver", "debug", "member_upserted", guild_id=1, member_id=2, duration_ms=5)

        record = captured_records(capture)[0]
        assert record["guild_id"] == "REDACTED"
        assert record["member_id"] == "REDACTED"
        assert record["duration_ms"] == 5

    def test_ids_kept_outside_production(self, capture, monkeypatch):
        monkeypatch.setenv("PRODUCTION", "False")

        log_json("resolver", "debug", "member_upserted", guild_id=1)

        assert captured_records(capture)[0]["guild_id"] == 1

    def test_exc_info_expanded(self, capture):
        try:
            raise ValueError("bad roster")
        except ValueError:
            log_json("warmer", "error", "guild_warming_error", exc_info=True)

        record = captured_records(capture)[0]
        assert record["exception_type"] == "ValueError"
        assert record["exception_message"] == "bad roster"

    def test_correlation_id_truncated(self, capture):
        token = correlation_id_context.set("abcdef123456")
        try:
            log_json("bot", "info", "bot_connected")
        finally:
            correlation_id_context.reset(token)

        assert captured_records(capture)[0]["correlation_id"] == "abcdef12"


class TestComponentLogger:
    """Test ComponentLogger level routing."""

    def test_levels(self, capture):
        logger = ComponentLogger("warmer")
        logger.debug("a")
        logger.warning("b")
        logger.critical("c")

        assert [r.levelno for r in capture.records] == [logging.DEBUG, logging.WARNING, logging.CRITICAL]
        assert {r["component"] for r in captured_records(capture)} == {"warmer"}
