"""Pydantic models for API request/response schemas."""

from datetime import datetime
from typing import Any, Optional

from escalation_config import Channel, EventType
from escalation_core import IntakeResult, Transition
from escalation_runtime import DeliveryAttempt, EscalationCase, WebhookDelivery
from pydantic import BaseModel, Field


class MessageRequest(BaseModel):
    """Request model for an inbound message or transcript chunk."""

    text: str = Field(..., min_length=1, description="Message or transcript text")
    recipient: str = Field(..., min_length=1, description="Phone number to escalate to")
    trigger_source: Optional[str] = Field(
        None, description="Meeting or message ID (generated if omitted)"
    )


class CaseResponse(BaseModel):
    """Response model for an escalation case."""

    id: str = Field(..., description="Case ID")
    trigger_source: str = Field(..., description="Meeting or message ID")
    priority_level: int = Field(..., description="Policy priority level")
    current_step_index: int = Field(..., description="Current step of the policy")
    status: str = Field(..., description="Case status")
    message: str = Field(..., description="Delivered text")
    recipient: str = Field(..., description="Recipient phone number")
    matched_keywords: list[str] = Field(default_factory=list, description="Matched keywords")
    created_at: datetime = Field(..., description="When the case was opened")
    last_escalated_at: datetime = Field(..., description="When the current step was dispatched")
    acknowledged_at: Optional[datetime] = Field(None, description="Acknowledgment time")
    acknowledged_by: Optional[str] = Field(None, description="Acknowledgment source")
    exhausted_at: Optional[datetime] = Field(None, description="Exhaustion time")
    next_due_at: Optional[datetime] = Field(None, description="When the current step expires")

    @classmethod
    def from_case(
        cls, case: EscalationCase, next_due_at: Optional[datetime] = None
    ) -> "CaseResponse":
        """Build a response from a stored case."""
        return cls(
            id=case.id,
            trigger_source=case.trigger_source,
            priority_level=case.priority_level,
            current_step_index=case.current_step_index,
            status=case.status.value,
            message=case.message,
            recipient=case.recipient,
            matched_keywords=case.matched_keywords,
            created_at=case.created_at,
            last_escalated_at=case.last_escalated_at,
            acknowledged_at=case.acknowledged_at,
            acknowledged_by=case.acknowledged_by,
            exhausted_at=case.exhausted_at,
            next_due_at=next_due_at,
        )


class IntakeResponse(BaseModel):
    """Response model for message intake."""

    is_urgent: bool = Field(..., description="Whether the message called for escalation")
    detected_keywords: list[str] = Field(default_factory=list, description="Matched keywords")
    priority_level: int = Field(..., description="Highest matched priority (0 if none)")
    case_id: Optional[str] = Field(None, description="Opened case, if any")
    escalation_skipped: bool = Field(False, description="Urgent but no case was opened")
    skipped_reason: Optional[str] = Field(None, description="Why escalation was skipped")
    urgency_score: Optional[float] = Field(None, description="LLM urgency score, if assessed")

    @classmethod
    def from_result(cls, result: IntakeResult) -> "IntakeResponse":
        """Build a response from an intake result."""
        return cls(
            is_urgent=result.is_urgent,
            detected_keywords=result.detected_keywords,
            priority_level=result.priority_level,
            case_id=result.case.id if result.case else None,
            escalation_skipped=result.escalation_skipped,
            skipped_reason=result.skipped_reason,
            urgency_score=result.urgency_score,
        )


class AttemptResponse(BaseModel):
    """Response model for a delivery attempt."""

    id: str
    case_id: str
    step_index: int
    channel: Channel
    recipient: str
    status: str
    sent_at: datetime
    delivered_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    provider_ref: Optional[str] = None

    @classmethod
    def from_attempt(cls, attempt: DeliveryAttempt) -> "AttemptResponse":
        """Build a response from a ledger row."""
        return cls(status=attempt.status.value, **attempt.model_dump())


class AcknowledgeRequest(BaseModel):
    """Request model for acknowledging a case."""

    source: Optional[str] = Field(None, description="Who or what acknowledged the case")


class TransitionResponse(BaseModel):
    """Response model for a case transition."""

    case_id: str
    kind: str
    step_index: int
    channel: Optional[Channel] = None
    at: datetime

    @classmethod
    def from_transition(cls, transition: Transition) -> "TransitionResponse":
        """Build a response from a scheduler transition."""
        return cls(
            case_id=transition.case_id,
            kind=transition.kind.value,
            step_index=transition.step_index,
            channel=transition.channel,
            at=transition.at,
        )


class TickResponse(BaseModel):
    """Response model for a scheduler tick."""

    transitions: list[TransitionResponse] = Field(default_factory=list)
    pending_cases: int = Field(..., description="Cases still pending after the tick")


class EventRequest(BaseModel):
    """Request model for firing an event to webhooks."""

    event: EventType = Field(..., description="Event type")
    data: dict[str, Any] = Field(default_factory=dict, description="Event data")


class EventResponse(BaseModel):
    """Response model for a fired event."""

    event: EventType
    webhooks_triggered: int = Field(..., description="Number of subscribed webhooks")


class WebhookDeliveryResponse(BaseModel):
    """Response model for a webhook delivery row."""

    id: str
    webhook_id: str
    event_type: EventType
    attempt: int
    succeeded: bool
    response_status: Optional[int] = None
    response_body: Optional[str] = None
    delivered_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @classmethod
    def from_delivery(cls, delivery: WebhookDelivery) -> "WebhookDeliveryResponse":
        """Build a response from a delivery log row."""
        return cls(
            succeeded=delivery.succeeded,
            **delivery.model_dump(exclude={"payload"}),
        )


class ErrorResponse(BaseModel):
    """Response model for errors."""

    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
