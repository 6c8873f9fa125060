"""Outbound webhook notifier.

Delivers lifecycle events to every active webhook subscribed to them. Bodies
are signed with HMAC-SHA256 when the webhook has a secret, failed attempts are
retried with exponential backoff, and every HTTP attempt is written to the
webhook delivery log.
"""

import asyncio
import hashlib
import hmac
import json
import logging
from threading import Lock
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

import httpx
from escalation_config import EventType, WebhookConfig
from escalation_runtime import WebhookDelivery, WebhookDeliveryLog, utcnow

from .errors import WebhookDeliveryError
from .metrics import WEBHOOK_ATTEMPTS

logger = logging.getLogger(__name__)

USER_AGENT = "Escalation-Webhooks/1.0"
SIGNATURE_HEADER = "X-Webhook-Signature"
MAX_RESPONSE_BODY = 1000


def sign_payload(body: bytes, secret: str) -> str:
    """Compute the hex HMAC-SHA256 signature of a request body.

    Args:
        body: Exact bytes sent as the request body
        secret: Webhook secret

    Returns:
        Lowercase hex digest
    """
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class WebhookNotifier:
    """Fires events at subscribed webhooks without blocking the caller."""

    def __init__(
        self,
        webhooks: Iterable[WebhookConfig],
        delivery_log: WebhookDeliveryLog,
        client: Optional[httpx.AsyncClient] = None,
        backoff_base_seconds: float = 1.0,
        backoff_max_seconds: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the notifier.

        Args:
            webhooks: Webhook subscriptions
            delivery_log: Log receiving one row per HTTP attempt
            client: Optional HTTP client (tests inject a mock transport)
            backoff_base_seconds: Delay before the first retry
            backoff_max_seconds: Upper bound on any single retry delay
            sleep: Coroutine used to wait between retries
        """
        self.delivery_log = delivery_log
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self._webhooks: Dict[str, WebhookConfig] = {w.id: w for w in webhooks}
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None
        self._sleep = sleep
        self._tasks: Set["asyncio.Task[List[WebhookDelivery]]"] = set()
        self._lock = Lock()

    def subscribers(self, event: EventType) -> List[WebhookConfig]:
        """Get active webhooks subscribed to an event.

        Args:
            event: Event type being fired

        Returns:
            Matching webhook configurations
        """
        with self._lock:
            return [w for w in self._webhooks.values() if w.subscribes_to(event)]

    def list(self) -> List[WebhookConfig]:
        """Get all webhook configurations."""
        with self._lock:
            return list(self._webhooks.values())

    def backoff_delay(self, attempt: int) -> float:
        """Delay to wait after a failed attempt.

        Args:
            attempt: 1-based number of the attempt that just failed

        Returns:
            Seconds to wait before the next attempt
        """
        return min(self.backoff_base_seconds * (2 ** (attempt - 1)), self.backoff_max_seconds)

    def build_payload(self, event: EventType, data: Dict[str, Any]) -> Dict[str, Any]:
        """Build the JSON body for an event."""
        return {
            "event": event.value,
            "timestamp": utcnow().isoformat(),
            "data": data,
        }

    def notify(
        self, event: EventType, data: Dict[str, Any]
    ) -> List["asyncio.Task[List[WebhookDelivery]]"]:
        """Fire an event at every subscribed webhook in the background.

        Must be called from a running event loop. Returns immediately; use
        ``drain`` to wait for the deliveries.

        Args:
            event: Event type being fired
            data: Event data

        Returns:
            One task per subscribed webhook
        """
        targets = self.subscribers(event)
        if not targets:
            logger.debug("No active webhooks for event %s", event.value)
            return []

        loop = asyncio.get_running_loop()
        tasks = []
        for webhook in targets:
            task = loop.create_task(self._deliver_in_background(webhook, event, data))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            tasks.append(task)

        logger.info("Triggered %d webhooks for event %s", len(tasks), event.value)
        return tasks

    async def drain(self) -> None:
        """Wait for every outstanding background delivery."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def deliver(
        self, webhook: WebhookConfig, event: EventType, data: Dict[str, Any]
    ) -> List[WebhookDelivery]:
        """Deliver one event to one webhook, retrying up to ``retry_count`` attempts.

        Args:
            webhook: Target webhook
            event: Event type
            data: Event data

        Returns:
            Delivery rows written, one per attempt
        """
        payload = self.build_payload(event, data)
        body = json.dumps(payload, default=str).encode("utf-8")

        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            **webhook.headers,
        }
        if webhook.secret:
            headers[SIGNATURE_HEADER] = sign_payload(body, webhook.secret)

        rows: List[WebhookDelivery] = []
        for attempt in range(1, webhook.retry_count + 1):
            row = await self._attempt(webhook, event, payload, body, headers, attempt)
            self.delivery_log.record(row)
            rows.append(row)
            WEBHOOK_ATTEMPTS.labels(
                event_type=event.value, outcome="delivered" if row.succeeded else "failed"
            ).inc()

            if row.succeeded:
                logger.info(
                    "Webhook %s delivered %s on attempt %d", webhook.name, event.value, attempt
                )
                return rows

            if attempt < webhook.retry_count:
                await self._sleep(self.backoff_delay(attempt))

        logger.error(
            "Webhook %s (%s) permanently failed for %s after %d attempts: %s",
            webhook.name,
            webhook.id,
            event.value,
            webhook.retry_count,
            rows[-1].error_message,
        )
        return rows

    async def _attempt(
        self,
        webhook: WebhookConfig,
        event: EventType,
        payload: Dict[str, Any],
        body: bytes,
        headers: Dict[str, str],
        attempt: int,
    ) -> WebhookDelivery:
        """Make one HTTP attempt and describe it as a delivery row."""
        try:
            response = await self._post(webhook, body, headers)
        except WebhookDeliveryError as e:
            logger.warning(
                "Webhook %s attempt %d for %s failed: %s", webhook.name, attempt, event.value, e
            )
            return WebhookDelivery(
                webhook_id=webhook.id,
                event_type=event,
                attempt=attempt,
                payload=payload,
                response_status=e.status_code,
                failed_at=utcnow(),
                error_message=str(e),
            )

        return WebhookDelivery(
            webhook_id=webhook.id,
            event_type=event,
            attempt=attempt,
            payload=payload,
            response_status=response.status_code,
            response_body=response.text[:MAX_RESPONSE_BODY],
            delivered_at=utcnow(),
        )

    async def _post(
        self, webhook: WebhookConfig, body: bytes, headers: Dict[str, str]
    ) -> httpx.Response:
        """POST the body, raising WebhookDeliveryError on non-2xx or transport failure."""
        try:
            response = await self._client.post(
                webhook.url, content=body, headers=headers, timeout=webhook.timeout_seconds
            )
        except httpx.TimeoutException as e:
            raise WebhookDeliveryError(
                f"Timed out after {webhook.timeout_seconds}s ({type(e).__name__})"
            ) from e
        except httpx.HTTPError as e:
            raise WebhookDeliveryError(f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise WebhookDeliveryError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )
        return response

    async def _deliver_in_background(
        self, webhook: WebhookConfig, event: EventType, data: Dict[str, Any]
    ) -> List[WebhookDelivery]:
        try:
            return await self.deliver(webhook, event, data)
        except Exception:
            logger.exception(
                "Unexpected error delivering %s to webhook %s", event.value, webhook.id
            )
            return []

    async def aclose(self) -> None:
        """Wait for outstanding deliveries and close the HTTP client if owned."""
        await self.drain()
        if self._owns_client:
            await self._client.aclose()
