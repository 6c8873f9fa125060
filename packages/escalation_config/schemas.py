"""Configuration schemas for the escalation service.

This module defines Pydantic models for provider settings, urgent keywords,
escalation rules and outbound webhooks. All configuration must be validated
before use so that typos in channel or event names fail at load time.
"""

from enum import Enum
from typing import Dict, List, Optional, Set
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Channel(str, Enum):
    """Delivery channels an escalation step can use."""

    WHATSAPP = "whatsapp"
    SMS = "sms"
    CALL = "call"


class SmsProvider(str, Enum):
    """Supported SMS gateways."""

    ETHIO_TELECOM = "ethio_telecom"
    AFRICA_TALKING = "africa_talking"
    TWILIO = "twilio"


class EventType(str, Enum):
    """Event types that can be delivered to outbound webhooks."""

    DISTRIBUTION_SENT = "distribution.sent"
    DISTRIBUTION_FAILED = "distribution.failed"
    APPROVAL_REQUESTED = "approval.requested"
    APPROVAL_APPROVED = "approval.approved"
    APPROVAL_REJECTED = "approval.rejected"
    ESCALATION_OPENED = "escalation.opened"
    ESCALATION_ESCALATED = "escalation.escalated"
    ESCALATION_ACKNOWLEDGED = "escalation.acknowledged"
    ESCALATION_EXHAUSTED = "escalation.exhausted"


class LLMProvider(str, Enum):
    """Supported LLM providers."""

    OPENAI = "openai"
    KONKO = "konko"
    ANTHROPIC = "anthropic"


def _new_id() -> str:
    return str(uuid4())


class WhatsAppSettings(BaseModel):
    """WhatsApp Business API credentials."""

    model_config = ConfigDict(frozen=True)

    api_endpoint: str = Field(..., description="Base URL of the WhatsApp Business API")
    api_key: str = Field(..., description="Bearer token for the API")
    business_phone: Optional[str] = Field(default=None, description="Sending business number")
    webhook_url: Optional[str] = Field(
        default=None, description="Callback URL registered for read receipts and replies"
    )
    timeout_seconds: float = Field(default=10.0, gt=0, description="Per-request timeout")

    @field_validator("api_endpoint")
    @classmethod
    def validate_api_endpoint(cls, v: str) -> str:
        """Validate endpoint is an http(s) URL and drop any trailing slash."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_endpoint must be an http(s) URL")
        return v.rstrip("/")


class SmsSettings(BaseModel):
    """SMS gateway credentials."""

    model_config = ConfigDict(frozen=True)

    provider: SmsProvider = Field(..., description="SMS gateway to use")
    api_key: str = Field(..., description="Gateway API key (Twilio accepts 'sid:token')")
    sender_id: Optional[str] = Field(default=None, description="Sender name or number")
    api_endpoint: Optional[str] = Field(
        default=None, description="Override of the provider's default endpoint"
    )
    username: Optional[str] = Field(
        default=None, description="Account username (Africa's Talking)"
    )
    account_sid: Optional[str] = Field(default=None, description="Twilio account SID")
    auth_token: Optional[str] = Field(default=None, description="Twilio auth token")
    timeout_seconds: float = Field(default=10.0, gt=0, description="Per-request timeout")


class FreePBXSettings(BaseModel):
    """FreePBX / Asterisk ARI credentials for outbound voice calls."""

    model_config = ConfigDict(frozen=True)

    server_url: str = Field(..., description="Base URL of the FreePBX server")
    api_key: str = Field(..., description="ARI password")
    extension: str = Field(..., description="ARI user / originating extension")
    caller_id: Optional[str] = Field(default=None, description="Caller ID presented")
    app_name: str = Field(default="meetinghub", description="Stasis application name")
    ring_timeout_seconds: int = Field(default=30, gt=0, description="How long to ring")
    timeout_seconds: float = Field(default=15.0, gt=0, description="Per-request timeout")

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, v: str) -> str:
        """Validate server URL is an http(s) URL and drop any trailing slash."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("server_url must be an http(s) URL")
        return v.rstrip("/")


class CommunicationSettings(BaseModel):
    """Provider settings keyed by channel, loaded once at startup."""

    model_config = ConfigDict(frozen=True)

    whatsapp: Optional[WhatsAppSettings] = None
    sms: Optional[SmsSettings] = None
    freepbx: Optional[FreePBXSettings] = None

    def configured_channels(self) -> Set[Channel]:
        """Get the channels that have provider settings.

        Returns:
            Set of channels with a configured provider
        """
        channels: Set[Channel] = set()
        if self.whatsapp is not None:
            channels.add(Channel.WHATSAPP)
        if self.sms is not None:
            channels.add(Channel.SMS)
        if self.freepbx is not None:
            channels.add(Channel.CALL)
        return channels


class UrgentKeyword(BaseModel):
    """A keyword that marks inbound text as urgent."""

    id: str = Field(default_factory=_new_id, description="Unique keyword ID")
    keyword: str = Field(..., description="Text matched case-insensitively")
    priority_level: int = Field(default=3, ge=1, le=5, description="Priority 1 (low) - 5 (high)")
    auto_escalate: bool = Field(default=True, description="Whether a match opens a case")
    is_active: bool = Field(default=True, description="Soft-disable flag")

    @field_validator("keyword")
    @classmethod
    def validate_keyword(cls, v: str) -> str:
        """Normalize keyword to stripped lowercase and reject empty values."""
        if not v or not v.strip():
            raise ValueError("Keyword cannot be empty")
        return v.strip().lower()


class EscalationRule(BaseModel):
    """One step of the escalation chain for a priority level."""

    id: str = Field(default_factory=_new_id, description="Unique rule ID")
    rule_name: str = Field(..., description="Human-readable name")
    priority_level: int = Field(..., ge=1, le=5, description="Priority level this step belongs to")
    wait_time_minutes: int = Field(
        default=15, ge=0, description="Minutes to wait for acknowledgment after this step"
    )
    escalate_to: Channel = Field(..., description="Channel used by this step")
    step_order: Optional[int] = Field(
        default=None, ge=0, description="Explicit position in the chain"
    )
    is_active: bool = Field(default=True, description="Soft-disable flag")

    @field_validator("rule_name")
    @classmethod
    def validate_rule_name(cls, v: str) -> str:
        """Validate rule name is not empty."""
        if not v or not v.strip():
            raise ValueError("Rule name cannot be empty")
        return v.strip()


class WebhookConfig(BaseModel):
    """An outbound webhook subscription."""

    id: str = Field(default_factory=_new_id, description="Unique webhook ID")
    name: str = Field(..., description="Display name")
    url: str = Field(..., description="Target URL")
    secret: Optional[str] = Field(default=None, description="HMAC signing secret")
    events: List[EventType] = Field(..., description="Subscribed event types")
    is_active: bool = Field(default=True, description="Whether deliveries are sent")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra request headers")
    retry_count: int = Field(default=3, ge=1, le=10, description="Maximum delivery attempts")
    timeout_seconds: float = Field(default=30.0, gt=0, le=300, description="Per-attempt timeout")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL is http(s)."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("Webhook url must be an http(s) URL")
        return v

    @field_validator("events")
    @classmethod
    def validate_events(cls, v: List[EventType]) -> List[EventType]:
        """Validate at least one event is subscribed and drop duplicates."""
        if not v:
            raise ValueError("At least one event must be selected")
        return list(dict.fromkeys(v))

    def subscribes_to(self, event: EventType) -> bool:
        """Check whether this webhook should receive an event.

        Args:
            event: Event type being fired

        Returns:
            True if the webhook is active and subscribed to the event
        """
        return self.is_active and event in self.events


class SchedulerSettings(BaseModel):
    """Settings for the escalation tick loop and webhook retries."""

    tick_interval_seconds: float = Field(default=30.0, gt=0, description="Seconds between ticks")
    run_loop: bool = Field(
        default=True, description="Run the tick loop in-process (disable for cron ticks)"
    )
    state_file: Optional[str] = Field(
        default=None,
        description=(
            "JSON file used to persist cases across restarts; the delivery ledger and "
            "keyword and rule changes are kept beside it"
        ),
    )
    webhook_backoff_base_seconds: float = Field(
        default=1.0, ge=0, description="Initial webhook retry delay"
    )
    webhook_backoff_max_seconds: float = Field(
        default=60.0, ge=0, description="Upper bound on a single webhook retry delay"
    )


class LLMConfig(BaseModel):
    """Configuration for the LLM chat-completion gateway."""

    provider: LLMProvider = Field(default=LLMProvider.OPENAI, description="LLM provider")
    model_name: str = Field(default="gpt-4o-mini", description="Model identifier")
    temperature: float = Field(default=0.0, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: Optional[int] = Field(default=None, gt=0, description="Maximum response tokens")
    base_url: Optional[str] = Field(default=None, description="Override of the API base URL")
    api_key_env_var: str = Field(
        default="OPENAI_API_KEY", description="Environment variable holding the API key"
    )


class UrgencyAssessorConfig(BaseModel):
    """Configuration for LLM urgency scoring of messages with no keyword match."""

    enabled: bool = Field(default=True, description="Whether the assessor runs")
    threshold: float = Field(default=0.8, ge=0.0, le=1.0, description="Minimum urgency score")
    priority_level: int = Field(default=3, ge=1, le=5, description="Priority assigned on match")


class EngineConfig(BaseModel):
    """Complete escalation service configuration."""

    communication: CommunicationSettings = Field(
        default_factory=CommunicationSettings, description="Channel provider settings"
    )
    keywords: List[UrgentKeyword] = Field(default_factory=list, description="Urgent keywords")
    escalation_rules: List[EscalationRule] = Field(
        default_factory=list, description="Escalation chain steps"
    )
    webhooks: List[WebhookConfig] = Field(default_factory=list, description="Outbound webhooks")
    scheduler: SchedulerSettings = Field(
        default_factory=SchedulerSettings, description="Scheduler settings"
    )
    llm: Optional[LLMConfig] = Field(default=None, description="LLM gateway settings")
    urgency: Optional[UrgencyAssessorConfig] = Field(
        default=None, description="LLM urgency assessor settings"
    )

    @field_validator("keywords")
    @classmethod
    def validate_keywords(cls, v: List[UrgentKeyword]) -> List[UrgentKeyword]:
        """Validate keyword text is unique."""
        texts = [k.keyword for k in v]
        if len(texts) != len(set(texts)):
            raise ValueError("Keywords must be unique")
        return v

    @field_validator("escalation_rules")
    @classmethod
    def validate_rules(cls, v: List[EscalationRule]) -> List[EscalationRule]:
        """Validate no two active rules claim the same (priority_level, step_order)."""
        seen = set()
        for rule in v:
            if not rule.is_active or rule.step_order is None:
                continue
            key = (rule.priority_level, rule.step_order)
            if key in seen:
                raise ValueError(
                    f"Duplicate step_order {rule.step_order} for priority level "
                    f"{rule.priority_level}"
                )
            seen.add(key)
        return v

    @model_validator(mode="after")
    def validate_urgency_requires_llm(self) -> "EngineConfig":
        """Validate the urgency assessor has an LLM to talk to."""
        if self.urgency is not None and self.urgency.enabled and self.llm is None:
            raise ValueError("urgency assessor requires an 'llm' section")
        return self
