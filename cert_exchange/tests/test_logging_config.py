"""Tests for logging helpers."""

import json
import logging
from unittest.mock import patch

import pytest

from cert_exchange.lib.logging_config import LOGGER, CustomJsonFormatter, report_platform_failures


async def _fail() -> None:
    raise RuntimeError("zip failed")


async def _value() -> str:
    return "ok"


def test_formatter_keeps_focused_fields() -> None:
    formatter = CustomJsonFormatter(
        fmt="%(timestamp)s %(levelname)s %(funcName)s %(lineno)d %(message)s",
        timestamp=True,
    )
    record = logging.LogRecord(
        "cert_exchange", logging.INFO, __file__, 12, "hello %s", ("x",), None
    )
    record.funcName = "test"

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "hello x"
    assert payload["level"] == "INFO"
    assert set(payload) <= {"timestamp", "level", "message", "exc_info", "funcName", "lineno"}


def test_logger_is_singleton() -> None:
    assert LOGGER is logging.getLogger("cert_exchange")
    assert len(LOGGER.handlers) == 1


@pytest.mark.asyncio
async def test_report_platform_failures_passes_result() -> None:
    assert await report_platform_failures(_value(), "event") == "ok"


@pytest.mark.asyncio
async def test_report_platform_failures_logs_and_reraises() -> None:
    with patch("cert_exchange.lib.logging_config.LOGGER") as mock_logger:
        with pytest.raises(RuntimeError, match="zip failed"):
            await report_platform_failures(_fail(), "www-certs-exchange-zipping-certs")

    mock_logger.error.assert_called_once()
    assert mock_logger.error.call_args.args[1] == "www-certs-exchange-zipping-certs"
