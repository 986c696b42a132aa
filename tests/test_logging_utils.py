"""
Tests for structured logging helpers
"""

import json
import logging

from ambient_alarm.logging_utils import AlarmContextFilter, JSONFormatter, log_task_fired


def make_record(**extra):
    record = logging.LogRecord("ambient_alarm.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """JSON output carries message and extras"""

    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(make_record()))
        assert data["message"] == "hello world"
        assert data["level"] == "INFO"
        assert data["logger"] == "ambient_alarm.test"

    def test_extras_included(self):
        data = json.loads(JSONFormatter().format(make_record(task_id=3, history_id=9)))
        assert data["task_id"] == 3
        assert data["history_id"] == 9


class TestContextFilter:
    def test_task_context(self):
        record = make_record(task_id=4, task_name="Wake up")
        assert AlarmContextFilter().filter(record)
        assert record.task_context == {"task_id": 4, "task_name": "Wake up"}

    def test_playlist_context(self):
        record = make_record(playlist_id=2, generation=7)
        AlarmContextFilter().filter(record)
        assert record.playlist_context == {"playlist_id": 2, "generation": 7}

    def test_plain_record_untouched(self):
        record = make_record()
        AlarmContextFilter().filter(record)
        assert not hasattr(record, "task_context")


class TestHelpers:
    def test_log_task_fired(self, caplog):
        logger = logging.getLogger("ambient_alarm.test")
        with caplog.at_level(logging.INFO, logger="ambient_alarm.test"):
            log_task_fired(logger, 5, "Wake up", 11, priority=2)

        [record] = caplog.records
        assert record.event_type == "task_fired"
        assert (record.task_id, record.history_id, record.priority) == (5, 11, 2)
