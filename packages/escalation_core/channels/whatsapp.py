"""WhatsApp Business API sender."""

from typing import Optional

import httpx
from escalation_config import Channel, WhatsAppSettings

from ..errors import ProviderDeliveryError
from .base import ChannelSender, DeliveryResult, parse_json, raise_for_provider


class WhatsAppSender(ChannelSender):
    """Sends text messages through the WhatsApp Business API."""

    channel = Channel.WHATSAPP

    def __init__(self, settings: WhatsAppSettings, client: Optional[httpx.AsyncClient] = None):
        """Initialize the sender.

        Args:
            settings: WhatsApp provider settings
            client: Optional HTTP client
        """
        super().__init__(settings.timeout_seconds, client)
        self.settings = settings

    async def _send(self, message: str, recipient: str) -> DeliveryResult:
        response = await self._client.post(
            f"{self.settings.api_endpoint}/messages",
            headers={"Authorization": f"Bearer {self.settings.api_key}"},
            json={
                "messaging_product": "whatsapp",
                "to": recipient.replace("+", ""),
                "type": "text",
                "text": {"body": message},
            },
        )
        data = parse_json(response)
        raise_for_provider(response, "WhatsApp", data)

        messages = data.get("messages") or []
        first = messages[0] if isinstance(messages, list) and messages else {}
        if not isinstance(first, dict):
            raise ProviderDeliveryError(f"WhatsApp returned an unexpected response: {data}")
        provider_ref = first.get("id")
        return DeliveryResult.sent(provider_ref, response=data)
