"""LLM urgency assessment.

Messages that match no urgent keyword can still be urgent ("the server room
is flooding"). When configured, the assessor asks an LLM to rate urgency and
promotes the message to an escalation at a fixed priority level.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from escalation_config import UrgencyAssessorConfig

from .llm_provider import LLMProviderError
from .metrics import URGENCY_ASSESSMENTS

if TYPE_CHECKING:
    from .llm_provider import LLMProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UrgencyAssessment:
    """Outcome of an urgency assessment.

    Attributes:
        score: Urgency score between 0.0 and 1.0
        threshold: Threshold the score was compared against
        priority_level: Priority to escalate at when urgent
    """

    score: float
    threshold: float
    priority_level: int

    @property
    def is_urgent(self) -> bool:
        return self.score >= self.threshold


class UrgencyAssessor:
    """Rates message urgency with an LLM."""

    def __init__(self, llm_provider: "LLMProvider", config: UrgencyAssessorConfig):
        """Initialize the assessor.

        Args:
            llm_provider: LLM provider used for scoring
            config: Threshold and priority settings
        """
        self.llm_provider = llm_provider
        self.config = config

    async def assess(self, text: str) -> Optional[UrgencyAssessment]:
        """Score a message.

        Failures never block intake: provider errors and unparseable responses
        are logged and reported as no assessment.

        Args:
            text: Message or transcript text

        Returns:
            UrgencyAssessment, or None when disabled or the LLM could not score it
        """
        if not self.config.enabled:
            return None

        try:
            response = await self.llm_provider.ainvoke(self._build_prompt(text))
        except LLMProviderError as e:
            logger.warning("Urgency assessment unavailable: %s", e)
            URGENCY_ASSESSMENTS.labels(result="error").inc()
            return None

        score = self._parse_score(response)
        if score is None:
            logger.warning("Could not parse urgency score from LLM response: %r", response[:100])
            URGENCY_ASSESSMENTS.labels(result="unparseable").inc()
            return None

        assessment = UrgencyAssessment(
            score=score,
            threshold=self.config.threshold,
            priority_level=self.config.priority_level,
        )
        URGENCY_ASSESSMENTS.labels(result="urgent" if assessment.is_urgent else "not_urgent").inc()
        logger.debug("Urgency score %.2f (threshold %.2f)", score, self.config.threshold)
        return assessment

    def _build_prompt(self, text: str) -> str:
        return f"""Rate how urgently a human must respond to this message on a \
scale from 0.0 to 1.0.

Message: "{text}"

Instructions:
- 0.0 = Routine, can wait for normal working hours
- 0.5 = Should be looked at today
- 1.0 = Emergency, someone must respond immediately

Respond with ONLY a decimal number between 0.0 and 1.0, nothing else.

Urgency score:"""

    def _parse_score(self, response: str) -> Optional[float]:
        """Parse the LLM response into a clamped score.

        Args:
            response: LLM response string

        Returns:
            Score as float, or None if parsing fails
        """
        try:
            score = float(response.strip())
        except (ValueError, TypeError):
            return None
        return max(0.0, min(1.0, score))
