"""Channel dispatcher.

Builds one sender per configured channel from the provider settings loaded
at startup and routes each escalation step to the right sender.
"""

from typing import Dict, Optional, Type

import httpx
from escalation_config import Channel, CommunicationSettings

from ..errors import ConfigurationMissingError
from .base import ChannelSender, DeliveryResult
from .sms import SmsSender
from .voice import VoiceCallSender
from .whatsapp import WhatsAppSender


class ChannelDispatcher:
    """Routes deliveries to the sender registered for each channel."""

    # Mapping of channels to sender classes
    SENDER_CLASSES: Dict[Channel, Type[ChannelSender]] = {
        Channel.WHATSAPP: WhatsAppSender,
        Channel.SMS: SmsSender,
        Channel.CALL: VoiceCallSender,
    }

    # Mapping of channels to their CommunicationSettings attribute
    SETTINGS_FIELDS: Dict[Channel, str] = {
        Channel.WHATSAPP: "whatsapp",
        Channel.SMS: "sms",
        Channel.CALL: "freepbx",
    }

    def __init__(
        self,
        settings: CommunicationSettings,
        client: Optional[httpx.AsyncClient] = None,
        senders: Optional[Dict[Channel, ChannelSender]] = None,
    ):
        """Initialize the dispatcher.

        Args:
            settings: Provider settings for every channel
            client: Optional HTTP client shared by all senders
            senders: Optional pre-built senders that override the settings
        """
        self.settings = settings
        self._client = client
        self._senders: Dict[Channel, ChannelSender] = {}
        self._initialize_senders()
        if senders:
            self._senders.update(senders)

    def _initialize_senders(self) -> None:
        """Create a sender for every channel that has provider settings."""
        for channel, sender_class in self.SENDER_CLASSES.items():
            channel_settings = getattr(self.settings, self.SETTINGS_FIELDS[channel])
            if channel_settings is None:
                continue
            sender = sender_class(channel_settings, self._client)  # type: ignore[call-arg]
            self._senders[channel] = sender

    def has_channel(self, channel: Channel) -> bool:
        """Check whether a sender is configured for a channel."""
        return channel in self._senders

    async def dispatch(self, channel: Channel, message: str, recipient: str) -> DeliveryResult:
        """Deliver a message over a channel.

        Args:
            channel: Channel to use
            message: Text to deliver
            recipient: Recipient phone number

        Returns:
            DeliveryResult from the channel's sender

        Raises:
            ConfigurationMissingError: If the channel has no configured provider
        """
        sender = self._senders.get(channel)
        if sender is None:
            raise ConfigurationMissingError(f"No provider configured for channel '{channel.value}'")
        return await sender.deliver(message, recipient)

    async def aclose(self) -> None:
        """Close every sender's HTTP client."""
        for sender in self._senders.values():
            await sender.aclose()
