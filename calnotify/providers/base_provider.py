"""
Notification Providers.

One provider per delivery channel. Providers report ordinary delivery
failures through their result dict rather than raising.
"""

import abc
import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class NotificationProvider(abc.ABC):
    """Abstract base class for notification providers."""

    channel: str = ""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize notification provider.

        Args:
            config: Configuration for the provider
        """
        self.config = config or {}

    @abc.abstractmethod
    async def send(self, recipient: str, title: str, body: str, priority: str = "medium", **kwargs) -> Dict[str, Any]:
        """
        Send a notification.

        Args:
            recipient: User the notification is addressed to
            title: Notification title
            body: Notification body
            priority: Priority label carried to the transport
            **kwargs: Additional provider-specific parameters

        Returns:
            Dict with send result (success, message_id or error)
        """

    def validate_recipient(self, recipient: Optional[str]) -> bool:
        return bool(recipient and str(recipient).strip())


class EmailProvider(NotificationProvider):
    """Email notification provider."""

    channel = "email"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.smtp_host = self.config.get("smtp_host", "localhost")
        self.smtp_port = self.config.get("smtp_port", 587)
        self.sender_email = self.config.get("sender_email", "noreply@example.com")

    async def send(self, recipient: str, title: str, body: str, priority: str = "medium", **kwargs) -> Dict[str, Any]:
        if not self.validate_recipient(recipient):
            return {"success": False, "error": "Missing email recipient"}

        # Transport is simulated; the message is only logged
        logger.info("Sending email to %s via %s:%s: %s", recipient, self.smtp_host, self.smtp_port, title)
        return {
            "success": True,
            "message_id": f"email_{abs(hash((recipient, title, body)))}",
            "provider": self.channel,
        }


class PushProvider(NotificationProvider):
    """Push notification provider.

    Posts to the configured push gateway when ``gateway_url`` is set,
    otherwise logs the notification.
    """

    channel = "push"

    def __init__(self, config: Optional[Dict[str, Any]] = None, client: Optional[httpx.AsyncClient] = None):
        super().__init__(config)
        self.gateway_url = self.config.get("gateway_url")
        self.timeout = float(self.config.get("timeout", 5.0))
        self._client = client

    async def send(self, recipient: str, title: str, body: str, priority: str = "medium", **kwargs) -> Dict[str, Any]:
        if not self.validate_recipient(recipient):
            return {"success": False, "error": "Missing push recipient"}

        if not self.gateway_url:
            logger.info("Sending push notification to %s: %s", recipient, title)
            return {
                "success": True,
                "message_id": f"push_{abs(hash((recipient, title, body)))}",
                "provider": self.channel,
            }

        payload = {
            "user_id": recipient,
            "title": title,
            "body": body,
            "priority": priority,
            "data": kwargs.get("metadata") or {},
        }
        try:
            if self._client is not None:
                response = await self._client.post(self.gateway_url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.gateway_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Push gateway rejected notification for %s: %s", recipient, e)
            return {"success": False, "error": f"Push gateway error: {e}"}

        message_id = None
        if response.headers.get("content-type", "").startswith("application/json"):
            message_id = response.json().get("message_id")
        return {"success": True, "message_id": message_id, "provider": self.channel}


class SMSProvider(NotificationProvider):
    """SMS notification provider."""

    channel = "sms"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.service_endpoint = self.config.get("service_endpoint", "https://sms.example.com")

    async def send(self, recipient: str, title: str, body: str, priority: str = "medium", **kwargs) -> Dict[str, Any]:
        if not self.validate_recipient(recipient):
            return {"success": False, "error": "Missing SMS recipient"}

        # SMS has no subject line, so the title is prefixed to the body
        logger.info("Sending SMS to %s: %s", recipient, f"{title}: {body}"[:160])
        return {
            "success": True,
            "message_id": f"sms_{abs(hash((recipient, body)))}",
            "provider": self.channel,
        }


class InAppProvider(NotificationProvider):
    """In-app notifications are read from the store by the client; nothing to transport."""

    channel = "in_app"

    async def send(self, recipient: str, title: str, body: str, priority: str = "medium", **kwargs) -> Dict[str, Any]:
        if not self.validate_recipient(recipient):
            return {"success": False, "error": "Missing in-app recipient"}
        logger.debug("In-app notification ready for %s: %s", recipient, title)
        return {"success": True, "message_id": None, "provider": self.channel}
