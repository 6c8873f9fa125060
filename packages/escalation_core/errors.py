"""Error types raised by the escalation core."""

from typing import Optional


class EscalationError(Exception):
    """Base class for escalation core errors."""

    pass


class ConfigurationMissingError(EscalationError):
    """Raised when no policy or provider is configured for a request.

    Callers treat this as "skip escalation", not as a fatal error.
    """

    pass


class PolicyNotFoundError(ConfigurationMissingError):
    """Raised when no active escalation rules exist for a priority level."""

    def __init__(self, priority_level: int):
        """Initialize with the priority level that has no rules.

        Args:
            priority_level: Priority level that was looked up
        """
        self.priority_level = priority_level
        super().__init__(f"No active escalation rules for priority level {priority_level}")


class ProviderDeliveryError(EscalationError):
    """Raised inside a channel sender when the provider rejects a message.

    Senders convert it into a failed DeliveryResult; it never escapes ``deliver``.
    """

    pass


class WebhookDeliveryError(EscalationError):
    """Raised for a single failed webhook attempt before it is retried."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        """Initialize with an optional HTTP status.

        Args:
            message: Failure description
            status_code: HTTP status returned by the receiver, if any
        """
        self.status_code = status_code
        super().__init__(message)


class CaseNotFoundError(EscalationError):
    """Raised when an operation references an unknown case."""

    def __init__(self, case_id: str):
        """Initialize with the missing case ID.

        Args:
            case_id: ID that was looked up
        """
        self.case_id = case_id
        super().__init__(f"Escalation case '{case_id}' not found")
