"""Tests for structured logging - JSON lines with prune-specific extras."""

import json
import logging

from cascade_prune.infrastructure.observability import JSONFormatter, setup_logging


def _record(**extra):
    record = logging.LogRecord(
        "cascade_prune.services.pruner", logging.INFO, __file__, 1,
        "deleting %d rows", (3,), None,
    )
    record.__dict__.update(extra)
    return record


def test_json_formatter_includes_extras():
    line = JSONFormatter().format(_record(table="users", predicate="id = 1", iteration=2))
    data = json.loads(line)
    assert data["message"] == "deleting 3 rows"
    assert data["level"] == "INFO"
    assert data["table"] == "users"
    assert data["predicate"] == "id = 1"
    assert data["iteration"] == 2
    assert "constraint_name" not in data


def test_setup_logging_replaces_its_own_handler():
    before = list(logging.root.handlers)
    level = logging.root.level
    try:
        first = setup_logging("debug", "json")
        second = setup_logging("info", "text")
        assert first not in logging.root.handlers
        assert second in logging.root.handlers
        assert logging.root.level == logging.INFO
    finally:
        for handler in list(logging.root.handlers):
            if handler not in before:
                logging.root.removeHandler(handler)
        logging.root.setLevel(level)
