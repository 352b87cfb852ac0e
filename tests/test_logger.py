"""Request id propagation into log records."""

from __future__ import annotations

import logging

from utils.logger import RequestIdFilter, request_id_var


def _record() -> logging.LogRecord:
    return logging.LogRecord("backend.submissions", logging.INFO, __file__, 1, "Submission logged", None, None)


def test_filter_stamps_current_request_id():
    token = request_id_var.set("rid-42")
    try:
        record = _record()
        assert RequestIdFilter().filter(record) is True
        assert record.request_id == "rid-42"
    finally:
        request_id_var.reset(token)


def test_filter_defaults_outside_a_request():
    record = _record()
    RequestIdFilter().filter(record)
    assert record.request_id == "-"
