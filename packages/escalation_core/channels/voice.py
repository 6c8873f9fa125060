"""Voice call sender backed by FreePBX's Asterisk REST Interface (ARI)."""

from typing import Optional

import httpx
from escalation_config import Channel, FreePBXSettings

from .base import ChannelSender, DeliveryResult, parse_json, raise_for_provider


class VoiceCallSender(ChannelSender):
    """Originates an outbound call that reads the message to the recipient.

    The message text is passed to the dialplan as the ``ESCALATION_MESSAGE``
    channel variable; the Stasis application is responsible for playback.
    """

    channel = Channel.CALL

    def __init__(self, settings: FreePBXSettings, client: Optional[httpx.AsyncClient] = None):
        """Initialize the sender.

        Args:
            settings: FreePBX provider settings
            client: Optional HTTP client
        """
        super().__init__(settings.timeout_seconds, client)
        self.settings = settings

    async def _send(self, message: str, recipient: str) -> DeliveryResult:
        endpoint = f"PJSIP/{recipient}"
        variables = {"ESCALATION_MESSAGE": message}
        if self.settings.caller_id:
            variables["CALLERID_NUM"] = self.settings.caller_id

        response = await self._client.post(
            f"{self.settings.server_url}/ari/channels",
            params={"endpoint": endpoint, "app": self.settings.app_name},
            auth=(self.settings.extension, self.settings.api_key),
            json={
                "endpoint": endpoint,
                "callerId": self.settings.caller_id,
                "timeout": self.settings.ring_timeout_seconds,
                "variables": variables,
            },
        )
        data = parse_json(response)
        raise_for_provider(response, "FreePBX", data)

        return DeliveryResult.sent(data.get("id"), response=data)
