from calnotify.providers.base_provider import (
    EmailProvider,
    InAppProvider,
    NotificationProvider,
    PushProvider,
    SMSProvider,
)
from calnotify.providers.channel_sender import ChannelResult, ChannelSender, default_providers

__all__ = [
    "ChannelResult",
    "ChannelSender",
    "EmailProvider",
    "InAppProvider",
    "NotificationProvider",
    "PushProvider",
    "SMSProvider",
    "default_providers",
]
