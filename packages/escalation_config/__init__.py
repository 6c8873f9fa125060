"""Urgent notification escalation service - Configuration Package."""

from .loader import ConfigurationError, load_config_from_dict, load_config_from_yaml
from .schemas import (
    Channel,
    CommunicationSettings,
    EngineConfig,
    EscalationRule,
    EventType,
    FreePBXSettings,
    LLMConfig,
    LLMProvider,
    SchedulerSettings,
    SmsProvider,
    SmsSettings,
    UrgencyAssessorConfig,
    UrgentKeyword,
    WebhookConfig,
    WhatsAppSettings,
)

__version__ = "0.1.0"

__all__ = [
    "Channel",
    "CommunicationSettings",
    "ConfigurationError",
    "EngineConfig",
    "EscalationRule",
    "EventType",
    "FreePBXSettings",
    "LLMConfig",
    "LLMProvider",
    "SchedulerSettings",
    "SmsProvider",
    "SmsSettings",
    "UrgencyAssessorConfig",
    "UrgentKeyword",
    "WebhookConfig",
    "WhatsAppSettings",
    "load_config_from_dict",
    "load_config_from_yaml",
]
