"""Urgent notification escalation service - API Package."""

from .app import AppState, create_app, get_app_state
from .config_routes import config_router
from .models import (
    AttemptResponse,
    CaseResponse,
    ErrorResponse,
    EventRequest,
    IntakeResponse,
    MessageRequest,
    TickResponse,
    WebhookDeliveryResponse,
)
from .routes import router

__version__ = "0.1.0"

__all__ = [
    "AppState",
    "AttemptResponse",
    "CaseResponse",
    "ErrorResponse",
    "EventRequest",
    "IntakeResponse",
    "MessageRequest",
    "TickResponse",
    "WebhookDeliveryResponse",
    "config_router",
    "create_app",
    "get_app_state",
    "router",
]
