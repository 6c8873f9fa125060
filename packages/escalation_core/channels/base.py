"""Base class for channel senders.

Every sender wraps one external provider behind the same
``deliver(message, recipient) -> DeliveryResult`` contract. Provider
failures never raise out of ``deliver``; they come back as a failed result.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
from escalation_config import Channel
from escalation_runtime import DeliveryStatus

from ..errors import ProviderDeliveryError

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    """Result of a delivery through a channel provider.

    Attributes:
        status: Whether the provider accepted the message
        provider_ref: Message, SMS or call identifier returned by the provider
        error: Failure description when status is FAILED
        metadata: Raw provider response data
    """

    status: DeliveryStatus
    provider_ref: Optional[str] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the delivery was accepted."""
        return self.status == DeliveryStatus.SENT

    @classmethod
    def sent(cls, provider_ref: Any = None, **metadata: Any) -> "DeliveryResult":
        """Build a successful result. Numeric provider identifiers are kept as text."""
        ref = str(provider_ref) if provider_ref is not None else None
        return cls(status=DeliveryStatus.SENT, provider_ref=ref, metadata=metadata)

    @classmethod
    def failed(cls, error: str, **metadata: Any) -> "DeliveryResult":
        """Build a failed result."""
        return cls(status=DeliveryStatus.FAILED, error=error, metadata=metadata)


class ChannelSender(ABC):
    """Abstract base class for channel senders."""

    channel: Channel

    def __init__(self, timeout_seconds: float, client: Optional[httpx.AsyncClient] = None):
        """Initialize the sender.

        Args:
            timeout_seconds: Per-request timeout for the provider call
            client: Optional shared HTTP client (tests inject a mock transport)
        """
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None

    async def deliver(self, message: str, recipient: str) -> DeliveryResult:
        """Deliver a message to a recipient.

        Args:
            message: Text to deliver
            recipient: Recipient phone number

        Returns:
            DeliveryResult describing the outcome
        """
        try:
            return await self._send(message, recipient)
        except ProviderDeliveryError as e:
            logger.warning("%s delivery to %s failed: %s", self.channel.value, recipient, e)
            return DeliveryResult.failed(str(e))
        except httpx.TimeoutException as e:
            logger.warning("%s delivery to %s timed out", self.channel.value, recipient)
            return DeliveryResult.failed(f"Timeout: {type(e).__name__}")
        except httpx.HTTPError as e:
            logger.warning(
                "%s delivery to %s failed (%s)", self.channel.value, recipient, type(e).__name__
            )
            return DeliveryResult.failed(f"{type(e).__name__}: {e}")
        except Exception as e:
            logger.exception(
                "%s delivery to %s raised unexpectedly", self.channel.value, recipient
            )
            return DeliveryResult.failed(f"Unexpected provider error: {type(e).__name__}: {e}")

    @abstractmethod
    async def _send(self, message: str, recipient: str) -> DeliveryResult:
        """Call the provider.

        Raises:
            ProviderDeliveryError: If the provider rejects the message
            httpx.HTTPError: On transport failures
        """
        pass

    async def aclose(self) -> None:
        """Close the HTTP client if this sender created it."""
        if self._owns_client:
            await self._client.aclose()


def parse_json(response: httpx.Response) -> Dict[str, Any]:
    """Parse a provider response body, tolerating non-JSON replies.

    Args:
        response: Provider response

    Returns:
        Decoded JSON object, or ``{"raw": <text>}`` when the body is not JSON
    """
    try:
        data = response.json()
    except ValueError:
        return {"raw": response.text[:1000]}
    return data if isinstance(data, dict) else {"data": data}


def raise_for_provider(response: httpx.Response, provider: str, data: Dict[str, Any]) -> None:
    """Raise ProviderDeliveryError for non-2xx provider responses."""
    if response.is_success:
        return
    detail = data.get("error") or data.get("message") or response.reason_phrase
    raise ProviderDeliveryError(f"{provider} API error: HTTP {response.status_code}: {detail}")
