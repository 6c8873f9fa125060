"""SMS sender with pluggable gateways.

Supported gateways:
    ethio_telecom: JSON API with bearer auth
    africa_talking: form-encoded messaging API with an ``apiKey`` header
    twilio: Messages resource with basic auth
"""

from typing import Optional, Tuple

import httpx
from escalation_config import Channel, SmsProvider, SmsSettings

from ..errors import ProviderDeliveryError
from .base import ChannelSender, DeliveryResult, parse_json, raise_for_provider

ETHIO_TELECOM_DEFAULT_ENDPOINT = "https://sms.ethiotelecom.et/api/send"
AFRICA_TALKING_ENDPOINT = "https://api.africastalking.com/version1/messaging"
TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class SmsSender(ChannelSender):
    """Sends SMS through the configured gateway."""

    channel = Channel.SMS

    def __init__(self, settings: SmsSettings, client: Optional[httpx.AsyncClient] = None):
        """Initialize the sender.

        Args:
            settings: SMS provider settings
            client: Optional HTTP client
        """
        super().__init__(settings.timeout_seconds, client)
        self.settings = settings

    async def _send(self, message: str, recipient: str) -> DeliveryResult:
        provider = self.settings.provider
        if provider == SmsProvider.ETHIO_TELECOM:
            return await self._send_ethio_telecom(message, recipient)
        elif provider == SmsProvider.AFRICA_TALKING:
            return await self._send_africa_talking(message, recipient)
        elif provider == SmsProvider.TWILIO:
            return await self._send_twilio(message, recipient)
        else:
            raise ProviderDeliveryError(f"Unsupported SMS provider: {provider}")

    async def _send_ethio_telecom(self, message: str, recipient: str) -> DeliveryResult:
        response = await self._client.post(
            self.settings.api_endpoint or ETHIO_TELECOM_DEFAULT_ENDPOINT,
            headers={"Authorization": f"Bearer {self.settings.api_key}"},
            json={
                "sender": self.settings.sender_id,
                "recipient": recipient,
                "message": message,
            },
        )
        data = parse_json(response)
        raise_for_provider(response, "Ethio Telecom", data)

        provider_ref = data.get("message_id") or data.get("id")
        return DeliveryResult.sent(
            str(provider_ref) if provider_ref is not None else None, response=data
        )

    async def _send_africa_talking(self, message: str, recipient: str) -> DeliveryResult:
        response = await self._client.post(
            self.settings.api_endpoint or AFRICA_TALKING_ENDPOINT,
            headers={"apiKey": self.settings.api_key, "Accept": "application/json"},
            data={
                "username": self.settings.username or "sandbox",
                "to": recipient,
                "message": message,
                "from": self.settings.sender_id or "",
            },
        )
        data = parse_json(response)
        raise_for_provider(response, "Africa's Talking", data)

        message_data = data.get("SMSMessageData") or {}
        recipients = message_data.get("Recipients") if isinstance(message_data, dict) else None
        first = recipients[0] if isinstance(recipients, list) and recipients else {}
        status = first.get("status") if isinstance(first, dict) else None
        if status != "Success":
            raise ProviderDeliveryError(
                f"Africa's Talking rejected message: {status or 'no recipients'}"
            )

        return DeliveryResult.sent(first.get("messageId"), response=data)

    async def _send_twilio(self, message: str, recipient: str) -> DeliveryResult:
        account_sid, auth_token = self._twilio_credentials()
        base = self.settings.api_endpoint or TWILIO_API_BASE
        response = await self._client.post(
            f"{base.rstrip('/')}/Accounts/{account_sid}/Messages.json",
            auth=(account_sid, auth_token),
            data={
                "To": recipient,
                "From": self.settings.sender_id or "",
                "Body": message,
            },
        )
        data = parse_json(response)
        raise_for_provider(response, "Twilio", data)

        return DeliveryResult.sent(data.get("sid"), response=data)

    def _twilio_credentials(self) -> Tuple[str, str]:
        """Resolve Twilio credentials from explicit fields or an ``sid:token`` api_key."""
        sid, _, token = self.settings.api_key.partition(":")
        account_sid = self.settings.account_sid or sid
        auth_token = self.settings.auth_token or token
        if not account_sid or not auth_token:
            raise ProviderDeliveryError("Twilio requires account_sid and auth_token")
        return account_sid, auth_token
