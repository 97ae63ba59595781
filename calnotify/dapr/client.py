"""Dapr client for publishing notification events to the sidecar."""
import json
import logging
import uuid
from typing import Any, Dict

from dapr.clients import DaprClient

from calnotify.config import DAPR_ENABLED, FAILURE_TOPIC, PUBSUB_NAME
from calnotify.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class DaprEventPublisher:
    """Publishes notification events via Dapr pub/sub."""

    def __init__(self, enabled: bool = DAPR_ENABLED, pubsub_name: str = PUBSUB_NAME):
        self.enabled = enabled
        self.pubsub_name = pubsub_name
        if not self.enabled:
            logger.warning("Dapr disabled. Running in development mode without Dapr integration.")

    def publish_event(self, topic: str, event_type: str, data: Dict[str, Any], source: str = "calnotify"):
        """Publish an event to a topic via Dapr pub/sub."""
        if not self.enabled:
            # Development mode: log the event instead of publishing
            logger.info("[DEV MODE] Would publish to topic '%s': %s from %s with data %s", topic, event_type, source, data)
            return {"success": True, "message": "Event logged in dev mode"}

        event_envelope = {
            "event_id": str(uuid.uuid4()),
            "type": event_type,
            "timestamp": utcnow().isoformat(),
            "source": source,
            "data": data,
        }

        try:
            with DaprClient() as client:
                client.publish_event(
                    pubsub_name=self.pubsub_name,
                    topic_name=topic,
                    data=json.dumps(event_envelope, default=str),
                    data_content_type="application/json",
                )
        except Exception as e:
            logger.error("Failed to publish event to topic %s: %s", topic, e)
            raise

        logger.info("Published event %s to topic %s", event_type, topic)
        return {"success": True, "event_id": event_envelope["event_id"]}

    def publish_notification_failed(self, failure: Dict[str, Any]):
        """Publish notification.failed when a notification exhausts its retries."""
        return self.publish_event(
            topic=FAILURE_TOPIC,
            event_type="notification.failed",
            data=failure,
        )


# Global instance
dapr_publisher = DaprEventPublisher()
