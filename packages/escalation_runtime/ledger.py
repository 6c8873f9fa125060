"""Append-only ledgers for delivery attempts and webhook deliveries."""

import logging
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional, Union

from escalation_config import EventType

from .state import DeliveryAttempt, WebhookDelivery

logger = logging.getLogger(__name__)


class DeliveryLedger:
    """Append-only record of every channel delivery attempt.

    Rows are never updated. Recording an attempt whose id is already present
    is ignored, so replayed provider events cannot double-count.
    """

    def __init__(self) -> None:
        """Initialize an empty ledger."""
        self._attempts: List[DeliveryAttempt] = []
        self._ids: Dict[str, DeliveryAttempt] = {}
        self._lock = Lock()

    def record(self, attempt: DeliveryAttempt) -> bool:
        """Append a delivery attempt.

        Args:
            attempt: Attempt to record

        Returns:
            True if appended, False if the attempt was already recorded
        """
        with self._lock:
            if attempt.id in self._ids:
                return False

            self._persist(attempt)
            self._ids[attempt.id] = attempt
            self._attempts.append(attempt)
            return True

    def history(self, case_id: str) -> List[DeliveryAttempt]:
        """Get all attempts for a case in dispatch order.

        Args:
            case_id: Case to look up

        Returns:
            Attempts ordered by sent_at, then insertion order
        """
        with self._lock:
            attempts = [a for a in self._attempts if a.case_id == case_id]
        # sort is stable, so equal timestamps keep insertion order
        attempts.sort(key=lambda a: a.sent_at)
        return attempts

    def all(self) -> List[DeliveryAttempt]:
        """Get every recorded attempt in insertion order."""
        with self._lock:
            return list(self._attempts)

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)

    def _persist(self, attempt: DeliveryAttempt) -> None:
        """Hook called under the lock before a new attempt is appended."""
        pass


class FileDeliveryLedger(DeliveryLedger):
    """Delivery ledger that appends every attempt to a JSON-lines file.

    Lines are only ever appended, so the file is the audit trail itself and a
    restarted process reloads the full delivery history of its cases.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        """Initialize the ledger and load any recorded attempts.

        Args:
            path: JSON-lines file to read from and append to
        """
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return

        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                attempt = DeliveryAttempt.model_validate_json(line)
                if attempt.id not in self._ids:
                    self._ids[attempt.id] = attempt
                    self._attempts.append(attempt)

        logger.info("Loaded %d delivery attempts from %s", len(self._attempts), self.path)

    def _persist(self, attempt: DeliveryAttempt) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(attempt.model_dump_json() + "\n")


class WebhookDeliveryLog:
    """Append-only audit log of webhook delivery attempts."""

    def __init__(self) -> None:
        """Initialize an empty log."""
        self._deliveries: List[WebhookDelivery] = []
        self._lock = Lock()

    def record(self, delivery: WebhookDelivery) -> None:
        """Append a webhook delivery row.

        Args:
            delivery: Delivery attempt to record
        """
        with self._lock:
            self._deliveries.append(delivery)

    def query(
        self,
        webhook_id: Optional[str] = None,
        event_type: Optional[EventType] = None,
    ) -> List[WebhookDelivery]:
        """List delivery rows with optional filtering.

        Args:
            webhook_id: Optional webhook filter
            event_type: Optional event type filter

        Returns:
            Matching rows in insertion order
        """
        with self._lock:
            rows = list(self._deliveries)

        if webhook_id is not None:
            rows = [r for r in rows if r.webhook_id == webhook_id]
        if event_type is not None:
            rows = [r for r in rows if r.event_type == event_type]
        return rows

    def __len__(self) -> int:
        with self._lock:
            return len(self._deliveries)
