"""Message intake service.

Ties keyword detection, the optional LLM urgency assessor and the scheduler
together: an inbound message is scanned, and when it is urgent an escalation
case is opened at the highest matched priority.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from escalation_config import EventType
from escalation_runtime import EscalationCase

from .detector import KeywordDetector, highest_priority
from .errors import ConfigurationMissingError
from .metrics import KEYWORD_MATCHES
from .scheduler import EscalationScheduler

if TYPE_CHECKING:
    import asyncio

    from .urgency import UrgencyAssessor
    from .webhooks import WebhookNotifier

logger = logging.getLogger(__name__)


@dataclass
class IntakeResult:
    """Outcome of processing an inbound message.

    Attributes:
        is_urgent: Whether the message called for an escalation
        detected_keywords: Keywords found in the message
        priority_level: Priority the case was (or would have been) opened at; 0 if none
        case: The opened case, if any
        skipped_reason: Why an urgent message did not open a case
        urgency_score: LLM urgency score, when the assessor ran
    """

    is_urgent: bool
    detected_keywords: List[str] = field(default_factory=list)
    priority_level: int = 0
    case: Optional[EscalationCase] = None
    skipped_reason: Optional[str] = None
    urgency_score: Optional[float] = None

    @property
    def escalation_skipped(self) -> bool:
        return self.is_urgent and self.case is None


class EscalationService:
    """Entry point for inbound messages and externally fired events."""

    def __init__(
        self,
        detector: KeywordDetector,
        scheduler: EscalationScheduler,
        notifier: Optional["WebhookNotifier"] = None,
        assessor: Optional["UrgencyAssessor"] = None,
    ):
        """Initialize the service.

        Args:
            detector: Urgent keyword detector
            scheduler: Scheduler that owns escalation cases
            notifier: Optional webhook notifier for ``fire_event``
            assessor: Optional LLM assessor for messages without keyword matches
        """
        self.detector = detector
        self.scheduler = scheduler
        self.notifier = notifier
        self.assessor = assessor

    async def process_message(
        self,
        text: str,
        recipient: str,
        trigger_source: Optional[str] = None,
    ) -> IntakeResult:
        """Scan a message and open an escalation case when it is urgent.

        A message is urgent when any matched keyword has ``auto_escalate``
        set. A missing policy for the priority level is not an error: the
        result reports the skip instead.

        Args:
            text: Message or transcript text
            recipient: Phone number to escalate to
            trigger_source: Meeting or message ID (generated if omitted)

        Returns:
            IntakeResult describing what happened
        """
        trigger_source = trigger_source or str(uuid.uuid4())
        matches = self.detector.detect(text)
        for match in matches:
            KEYWORD_MATCHES.labels(priority_level=str(match.priority_level)).inc()

        best = highest_priority(matches)
        result = IntakeResult(
            is_urgent=any(m.auto_escalate for m in matches),
            detected_keywords=[m.keyword for m in matches],
            priority_level=best.priority_level if best else 0,
        )

        if not matches and self.assessor is not None:
            assessment = await self.assessor.assess(text)
            if assessment is not None:
                result.urgency_score = assessment.score
                if assessment.is_urgent:
                    logger.info(
                        "Message from %s assessed urgent (score %.2f)",
                        trigger_source,
                        assessment.score,
                    )
                    result.is_urgent = True
                    result.priority_level = assessment.priority_level

        if not result.is_urgent:
            return result

        try:
            result.case = await self.scheduler.open_case(
                trigger_source=trigger_source,
                priority_level=result.priority_level,
                message=text,
                recipient=recipient,
                matched_keywords=result.detected_keywords,
            )
        except ConfigurationMissingError as e:
            logger.warning("Escalation skipped for %s: %s", trigger_source, e)
            result.skipped_reason = str(e)

        return result

    def fire_event(self, event: EventType, data: Dict[str, Any]) -> List["asyncio.Task[Any]"]:
        """Fire an event raised outside the escalation engine.

        Args:
            event: Event type (e.g. ``approval.requested``)
            data: Event data

        Returns:
            Background delivery tasks, one per subscribed webhook
        """
        if self.notifier is None:
            logger.debug("No webhook notifier configured; dropping %s", event.value)
            return []
        return list(self.notifier.notify(event, data))
