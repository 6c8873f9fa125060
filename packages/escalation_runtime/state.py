"""State models for the escalation runtime.

This module defines the records the scheduler works with: escalation cases,
the delivery attempts made for them, and outbound webhook deliveries.

Cases are never edited in place. Each transition returns a new copy with a
bumped ``version`` which the store uses for compare-and-set.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from escalation_config import Channel, EventType
from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class CaseStatus(str, Enum):
    """Status of an escalation case."""

    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    EXHAUSTED = "exhausted"


class DeliveryStatus(str, Enum):
    """Outcome of a single delivery attempt."""

    SENT = "sent"
    FAILED = "failed"


class EscalationCase(BaseModel):
    """One in-flight urgent notification workflow."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="Unique case ID")
    trigger_source: str = Field(..., description="Meeting or message ID that triggered the case")
    priority_level: int = Field(..., ge=1, le=5, description="Priority level of the policy")
    current_step_index: int = Field(default=0, ge=0, description="Index of the current step")
    status: CaseStatus = Field(default=CaseStatus.PENDING, description="Current case status")
    message: str = Field(..., description="Text delivered to the recipient")
    recipient: str = Field(..., description="Phone number of the recipient")
    matched_keywords: List[str] = Field(
        default_factory=list, description="Keywords that triggered the case"
    )

    created_at: datetime = Field(default_factory=utcnow, description="When the case was opened")
    last_escalated_at: datetime = Field(
        default_factory=utcnow, description="When the current step was dispatched"
    )
    acknowledged_at: Optional[datetime] = Field(default=None, description="Acknowledgment time")
    acknowledged_by: Optional[str] = Field(default=None, description="Acknowledgment source")
    exhausted_at: Optional[datetime] = Field(default=None, description="Exhaustion time")

    version: int = Field(default=0, ge=0, description="Optimistic lock counter")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional case metadata")

    @property
    def is_terminal(self) -> bool:
        """Whether the case can no longer transition."""
        return self.status != CaseStatus.PENDING

    def advance(self, now: datetime) -> "EscalationCase":
        """Return a copy moved to the next step.

        Args:
            now: Time the next step is dispatched

        Returns:
            New case in Pending(current_step_index + 1)
        """
        return self.model_copy(
            update={
                "current_step_index": self.current_step_index + 1,
                "last_escalated_at": now,
                "version": self.version + 1,
            },
            deep=True,
        )

    def acknowledge(self, now: datetime, source: Optional[str] = None) -> "EscalationCase":
        """Return a copy in the Acknowledged state.

        Args:
            now: Acknowledgment time
            source: Optional description of who or what acknowledged

        Returns:
            New acknowledged case
        """
        return self.model_copy(
            update={
                "status": CaseStatus.ACKNOWLEDGED,
                "acknowledged_at": now,
                "acknowledged_by": source,
                "version": self.version + 1,
            },
            deep=True,
        )

    def exhaust(self, now: datetime) -> "EscalationCase":
        """Return a copy in the Exhausted state.

        Args:
            now: Exhaustion time

        Returns:
            New exhausted case
        """
        return self.model_copy(
            update={
                "status": CaseStatus.EXHAUSTED,
                "exhausted_at": now,
                "version": self.version + 1,
            },
            deep=True,
        )


class DeliveryAttempt(BaseModel):
    """A single dispatch of a case step over one channel."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()), description="Unique attempt ID")
    case_id: str = Field(..., description="Case this attempt belongs to")
    step_index: int = Field(..., ge=0, description="Step of the policy that was dispatched")
    channel: Channel = Field(..., description="Channel used")
    recipient: str = Field(..., description="Recipient address")
    sent_at: datetime = Field(default_factory=utcnow, description="Dispatch time")
    delivered_at: Optional[datetime] = Field(default=None, description="Provider acceptance time")
    failed_at: Optional[datetime] = Field(default=None, description="Failure time")
    error_message: Optional[str] = Field(default=None, description="Failure reason")
    provider_ref: Optional[str] = Field(default=None, description="Provider message/call ID")

    @property
    def status(self) -> DeliveryStatus:
        """Terminal status of the attempt."""
        return DeliveryStatus.FAILED if self.failed_at is not None else DeliveryStatus.SENT


class WebhookDelivery(BaseModel):
    """One HTTP attempt to deliver an event to a webhook."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()), description="Unique delivery ID")
    webhook_id: str = Field(..., description="Webhook the event was sent to")
    event_type: EventType = Field(..., description="Event that was fired")
    attempt: int = Field(..., ge=1, description="1-based attempt number")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Body that was sent")
    response_status: Optional[int] = Field(default=None, description="HTTP status received")
    response_body: Optional[str] = Field(default=None, description="Truncated response body")
    delivered_at: Optional[datetime] = Field(default=None, description="Success time")
    failed_at: Optional[datetime] = Field(default=None, description="Failure time")
    error_message: Optional[str] = Field(default=None, description="Failure reason")

    @property
    def succeeded(self) -> bool:
        """Whether this attempt was accepted by the receiver."""
        return self.delivered_at is not None
