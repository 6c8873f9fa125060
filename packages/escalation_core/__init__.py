"""Urgent notification escalation service - Core Package."""

from .channels import ChannelDispatcher, ChannelSender, DeliveryResult
from .detector import KeywordDetector, KeywordMatch, highest_priority
from .engine import EscalationEngine
from .errors import (
    CaseNotFoundError,
    ConfigurationMissingError,
    EscalationError,
    PolicyNotFoundError,
    ProviderDeliveryError,
    WebhookDeliveryError,
)
from .llm_provider import (
    LLMProvider,
    LLMProviderError,
    LLMQuotaExceededError,
    LLMRateLimitedError,
    create_llm,
)
from .policy import PolicyStore
from .scheduler import EscalationScheduler, Transition, TransitionKind, compose_message
from .service import EscalationService, IntakeResult
from .urgency import UrgencyAssessment, UrgencyAssessor
from .webhooks import WebhookNotifier, sign_payload

__version__ = "0.1.0"

__all__ = [
    "CaseNotFoundError",
    "ChannelDispatcher",
    "ChannelSender",
    "ConfigurationMissingError",
    "DeliveryResult",
    "EscalationEngine",
    "EscalationError",
    "EscalationScheduler",
    "EscalationService",
    "IntakeResult",
    "KeywordDetector",
    "KeywordMatch",
    "LLMProvider",
    "LLMProviderError",
    "LLMQuotaExceededError",
    "LLMRateLimitedError",
    "PolicyNotFoundError",
    "PolicyStore",
    "ProviderDeliveryError",
    "Transition",
    "TransitionKind",
    "UrgencyAssessment",
    "UrgencyAssessor",
    "WebhookDeliveryError",
    "WebhookNotifier",
    "compose_message",
    "create_llm",
    "highest_priority",
    "sign_payload",
]
