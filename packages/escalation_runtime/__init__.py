"""Urgent notification escalation service - Runtime Package."""

from .ledger import DeliveryLedger, FileDeliveryLedger, WebhookDeliveryLog
from .state import (
    CaseStatus,
    DeliveryAttempt,
    DeliveryStatus,
    EscalationCase,
    WebhookDelivery,
    utcnow,
)
from .store import CaseStore, FileCaseStore

__version__ = "0.1.0"

__all__ = [
    "CaseStatus",
    "CaseStore",
    "DeliveryAttempt",
    "DeliveryLedger",
    "DeliveryStatus",
    "EscalationCase",
    "FileCaseStore",
    "FileDeliveryLedger",
    "WebhookDelivery",
    "WebhookDeliveryLog",
    "utcnow",
]
