"""Tests for the observability module.

Tests for metrics collection, operation timing and logging configuration.
"""
import logging
import time
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

import pytest

from avisos.observability import (MetricsCollector, configure_logging,
                                  timed_operation, traced)


@pytest.fixture
def metrics_collector():
    return MetricsCollector()


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    def test_record_successful_operation(self, metrics_collector):
        """Test recording a successful operation."""
        metrics_collector.record_operation("save_note", 100.0, True)

        stats = metrics_collector.get_operation("save_note")
        assert stats["count"] == 1
        assert stats["failures"] == 0
        assert stats["avg_ms"] == 100.0
        assert stats["last_error"] is None

    def test_record_failed_operation(self, metrics_collector):
        metrics_collector.record_operation("purge_expired", 5.0, False, "locked")

        stats = metrics_collector.get_operation("purge_expired")
        assert stats["failures"] == 1
        assert stats["last_error"] == "locked"

    def test_multiple_operations_aggregated(self, metrics_collector):
        for duration in (10.0, 20.0, 30.0):
            metrics_collector.record_operation("soft_delete", duration, True)

        stats = metrics_collector.get_operation("soft_delete")
        assert stats["count"] == 3
        assert stats["avg_ms"] == 20.0
        assert stats["slowest_ms"] == 30.0

    def test_unknown_operation(self, metrics_collector):
        assert metrics_collector.get_operation("never_ran") is None

    def test_get_summary(self, metrics_collector):
        metrics_collector.record_operation("a", 1.0, True)
        metrics_collector.record_operation("b", 1.0, False, "x")

        summary = metrics_collector.get_summary()
        assert summary["total_operations"] == 2
        assert summary["total_errors"] == 1
        assert summary["operations_tracked"] == ["a", "b"]
        assert summary["uptime_seconds"] >= 0


class TestTimedOperation:
    """Tests for timed_operation and traced."""

    def test_timed_operation_records_success(self):
        collector = MetricsCollector()
        with patch('avisos.observability.metrics', collector):
            with timed_operation("save_note", note_id=1) as op:
                time.sleep(0.01)
                op["changes"] = 2

        stats = collector.get_operation("save_note")
        assert stats["failures"] == 0
        assert stats["avg_ms"] >= 10

    def test_timed_operation_records_failure(self):
        collector = MetricsCollector()
        with patch('avisos.observability.metrics', collector):
            with pytest.raises(ValueError):
                with timed_operation("save_note"):
                    raise ValueError("Test error")

        stats = collector.get_operation("save_note")
        assert stats["failures"] == 1
        assert "Test error" in stats["last_error"]

    def test_correlation_id_provided(self):
        with timed_operation("anything") as op:
            assert len(op["correlation_id"]) == 8

    def test_traced_decorator(self):
        collector = MetricsCollector()

        @traced("list_things")
        def list_things():
            return [1, 2, 3]

        with patch('avisos.observability.metrics', collector):
            assert list_things() == [1, 2, 3]
        assert collector.get_operation("list_things")["count"] == 1

    def test_service_operations_are_recorded(self, note_service):
        collector = MetricsCollector()
        with patch('avisos.observability.metrics', collector):
            note = note_service.create_note("n", "b", "Notes")
            note_service.soft_delete(note.id, "Esborrades")

        tracked = collector.get_summary()["operations_tracked"]
        assert "create_note" in tracked
        assert "soft_delete" in tracked


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_configure_logging_creates_directory(self, tmp_path, clean_logging):
        log_dir = tmp_path / "logs"
        result = configure_logging(log_dir=log_dir, console=False)
        assert result == log_dir
        assert log_dir.is_dir()

    def test_configure_logging_sets_level(self, tmp_path, clean_logging):
        configure_logging(log_dir=tmp_path, level=logging.DEBUG, console=False)
        assert logging.getLogger("avisos").level == logging.DEBUG

    def test_file_handler_installed_once(self, tmp_path, clean_logging):
        configure_logging(log_dir=tmp_path, console=False)
        configure_logging(log_dir=tmp_path, console=False)
        handlers = [
            h for h in logging.getLogger("avisos").handlers
            if isinstance(h, RotatingFileHandler)
        ]
        assert len(handlers) == 1

    def test_child_loggers_write_to_file(self, tmp_path, clean_logging):
        configure_logging(log_dir=tmp_path, console=False)
        logging.getLogger("avisos.services.lifecycle").info("purged 3 notes")
        for handler in logging.getLogger("avisos").handlers:
            handler.flush()
        assert "purged 3 notes" in (tmp_path / "avisos.log").read_text(encoding="utf-8")
