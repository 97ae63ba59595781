import json
import logging

import pytest

from calnotify.dapr import client as dapr_client
from calnotify.dapr.client import DaprEventPublisher
from calnotify.utils.logger import StructuredLogger
from calnotify.utils.metrics import MetricsCollector


class RecordingDaprClient:
    published = []

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def publish_event(self, **kwargs):
        self.published.append(kwargs)


def test_publisher_logs_in_dev_mode(caplog):
    publisher = DaprEventPublisher(enabled=False)

    with caplog.at_level(logging.INFO, logger="calnotify.dapr.client"):
        result = publisher.publish_notification_failed({"notification_id": 1, "last_error": "push unavailable"})

    assert result["success"] is True
    assert "[DEV MODE]" in caplog.text
    assert "notification.failed" in caplog.text


def test_publisher_sends_envelope_through_sidecar(monkeypatch):
    RecordingDaprClient.published = []
    monkeypatch.setattr(dapr_client, "DaprClient", RecordingDaprClient)
    publisher = DaprEventPublisher(enabled=True, pubsub_name="test-pubsub")

    result = publisher.publish_notification_failed({"notification_id": 7, "retry_count": 3})

    (call,) = RecordingDaprClient.published
    envelope = json.loads(call["data"])
    assert call["pubsub_name"] == "test-pubsub"
    assert call["topic_name"] == "notification-failures"
    assert envelope["type"] == "notification.failed"
    assert envelope["data"] == {"notification_id": 7, "retry_count": 3}
    assert result["event_id"] == envelope["event_id"]


def test_publisher_propagates_sidecar_errors(monkeypatch):
    class BrokenClient(RecordingDaprClient):
        def publish_event(self, **kwargs):
            raise ConnectionError("sidecar not running")

    monkeypatch.setattr(dapr_client, "DaprClient", BrokenClient)

    with pytest.raises(ConnectionError):
        DaprEventPublisher(enabled=True).publish_event("topic", "test.event", {})


def test_metrics_counters_and_timers():
    metrics = MetricsCollector()

    metrics.notification_sent()
    metrics.notification_sent()
    metrics.reminders_generated(3)
    with metrics.time_operation("dispatch_cycle_seconds"):
        pass

    snapshot = metrics.get_metrics()
    assert snapshot["counters"]["notifications_sent_total"] == 2
    assert snapshot["counters"]["reminders_generated_total"] == 3
    assert snapshot["counters"]["claim_conflicts_total"] == 0
    assert snapshot["timers"]["dispatch_cycle_seconds"] >= 0

    metrics.reset()
    assert metrics.get_metrics()["counters"]["notifications_sent_total"] == 0
    assert metrics.get_metrics()["timers"] == {}


def test_structured_logger_emits_json(caplog):
    logger = StructuredLogger("calnotify.test")

    with caplog.at_level(logging.INFO, logger="calnotify.test"):
        logger.info("Dispatch cycle finished", processed=2, sent=1)
        logger.debug("hidden")

    (record,) = caplog.records
    payload = json.loads(record.getMessage())
    assert payload["message"] == "Dispatch cycle finished"
    assert payload["service"] == "calnotify.test"
    assert payload["level"] == "INFO"
    assert payload["processed"] == 2


def test_structured_logger_exception_keeps_traceback(caplog):
    logger = StructuredLogger("calnotify.test")

    with caplog.at_level(logging.ERROR, logger="calnotify.test"):
        try:
            raise ValueError("bad payload")
        except ValueError:
            logger.exception("Publish failed", notification_id=3)

    (record,) = caplog.records
    payload = json.loads(record.getMessage())
    assert payload["exception"] is True
    assert payload["notification_id"] == 3
    assert record.exc_info[0] is ValueError
