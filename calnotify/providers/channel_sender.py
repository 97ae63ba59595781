"""Channel sender: fans one notification out to its delivery channels."""
import asyncio
import logging
from typing import Any, Dict, Iterable, Mapping, NamedTuple, Optional

from calnotify import config
from calnotify.models.notification import DeliveryChannel
from calnotify.providers.base_provider import (
    EmailProvider,
    InAppProvider,
    NotificationProvider,
    PushProvider,
    SMSProvider,
)
from calnotify.services.errors import MalformedNotificationError

logger = logging.getLogger(__name__)


class ChannelResult(NamedTuple):
    delivered: bool
    error: Optional[str] = None


def default_providers() -> Dict[str, NotificationProvider]:
    return {
        DeliveryChannel.PUSH.value: PushProvider({"gateway_url": config.PUSH_GATEWAY_URL}),
        DeliveryChannel.EMAIL.value: EmailProvider(
            {
                "smtp_host": config.SMTP_HOST,
                "smtp_port": config.SMTP_PORT,
                "sender_email": config.SENDER_EMAIL,
            }
        ),
        DeliveryChannel.SMS.value: SMSProvider(),
        DeliveryChannel.IN_APP.value: InAppProvider(),
    }


class ChannelSender:
    """Deliver a notification over each requested channel.

    ``send`` reports per-channel outcomes and only raises for input it can
    never deliver (``MalformedNotificationError``).
    """

    def __init__(self, providers: Optional[Mapping[str, NotificationProvider]] = None):
        self.providers = dict(providers) if providers is not None else default_providers()

    async def send(
        self,
        channels: Iterable[str],
        title: str,
        body: str,
        priority: str,
        *,
        user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, ChannelResult]:
        channel_list = list(dict.fromkeys(channels or []))
        if not channel_list:
            raise MalformedNotificationError("No delivery channels given")
        unknown = [c for c in channel_list if c not in self.providers]
        if unknown:
            raise MalformedNotificationError(f"Unknown delivery channels: {', '.join(unknown)}")
        if not title or not title.strip():
            raise MalformedNotificationError("Notification title is empty")
        if not body or not body.strip():
            raise MalformedNotificationError("Notification body is empty")

        outcomes = await asyncio.gather(
            *(
                self.providers[channel].send(user_id, title, body, priority, metadata=metadata)
                for channel in channel_list
            ),
            return_exceptions=True,
        )

        results = {}
        for channel, outcome in zip(channel_list, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, Exception):
                logger.warning("Channel %s raised while sending to %s: %s", channel, user_id, outcome)
                results[channel] = ChannelResult(False, f"{type(outcome).__name__}: {outcome}")
            elif outcome.get("success"):
                results[channel] = ChannelResult(True)
            else:
                results[channel] = ChannelResult(False, outcome.get("error") or "delivery failed")
        return results
