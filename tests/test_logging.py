import json
import logging

import pytest

from vericlean.shared.infrastructure.logging import (
    CustomJsonFormatter,
    get_context_logger,
    log_latency,
)


def _format(**extra):
    record = logging.LogRecord("vericlean.test", logging.INFO, __file__, 1, "Run finished", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    formatter = CustomJsonFormatter("%(name)s %(levelname)s %(message)s", environment="staging")
    return json.loads(formatter.format(record))


def test_formatter_stamps_context_and_redacts_secrets():
    line = _format(correlation_id="run-1", grafana_api_key="glc_abc", db_password="hunter2", outcome="no_overdue")

    assert line["correlation_id"] == "run-1"
    assert line["environment"] == "staging"
    assert line["timestamp"]
    assert line["grafana_api_key"] == "***REDACTED***"
    assert line["db_password"] == "***REDACTED***"
    assert line["outcome"] == "no_overdue"


def test_context_logger_merges_call_extra(caplog):
    logger = get_context_logger("vericlean.test", "run-7")

    with caplog.at_level(logging.INFO, logger="vericlean.test"):
        logger.info("Stage done", extra={"stage": "QUERY"})

    [record] = caplog.records
    assert record.correlation_id == "run-7"
    assert record.stage == "QUERY"


def test_log_latency_marks_failed_stage(caplog):
    logger = logging.getLogger("vericlean.test")

    with caplog.at_level(logging.INFO, logger="vericlean.test"):
        with pytest.raises(RuntimeError):
            with log_latency(logger, "overdue_query", page_size=0):
                raise RuntimeError("store down")

    [record] = caplog.records
    assert record.getMessage() == "overdue_query completed"
    assert record.failed is True
    assert record.page_size == 0
