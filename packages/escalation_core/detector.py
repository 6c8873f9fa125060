"""Urgent keyword detection.

This module scans inbound message or transcript text for the configured
urgent keywords and reports which ones matched and at what priority.
"""

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Dict, Iterable, List, Optional

from escalation_config import UrgentKeyword

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeywordMatch:
    """A keyword found in inbound text.

    Attributes:
        keyword: The keyword text as configured (lowercase)
        priority_level: Priority level of the keyword (1-5)
        auto_escalate: Whether this keyword opens an escalation case
    """

    keyword: str
    priority_level: int
    auto_escalate: bool


def highest_priority(matches: List[KeywordMatch]) -> Optional[KeywordMatch]:
    """Pick the match that decides the escalation priority.

    Ties keep the earliest match.

    Args:
        matches: Matches returned by ``KeywordDetector.detect``

    Returns:
        The match with the highest priority_level, or None if there are none
    """
    best: Optional[KeywordMatch] = None
    for match in matches:
        if best is None or match.priority_level > best.priority_level:
            best = match
    return best


class KeywordDetector:
    """Case-insensitive substring matcher over the active urgent keywords.

    ``detect`` has no side effects beyond logging; opening a case is the
    caller's job. The keyword set itself can be administered at runtime.
    """

    def __init__(self, keywords: Optional[Iterable[UrgentKeyword]] = None):
        """Initialize the detector.

        Args:
            keywords: Initial keyword set
        """
        self._keywords: Dict[str, UrgentKeyword] = {}
        self._lock = Lock()
        for keyword in keywords or []:
            self._keywords[keyword.id] = keyword

    def detect(self, text: str) -> List[KeywordMatch]:
        """Find every active keyword contained in the text.

        Args:
            text: Inbound message or transcript text

        Returns:
            Matches in keyword declaration order; empty if nothing matched
        """
        if not text:
            return []

        normalized = text.lower()
        with self._lock:
            active = [k for k in self._keywords.values() if k.is_active]

        matches = [
            KeywordMatch(
                keyword=k.keyword,
                priority_level=k.priority_level,
                auto_escalate=k.auto_escalate,
            )
            for k in active
            if k.keyword in normalized
        ]

        if matches:
            logger.info(
                "Detected urgent keywords %s",
                ", ".join(f"{m.keyword}(p{m.priority_level})" for m in matches),
            )
        return matches

    def list(self) -> List[UrgentKeyword]:
        """Get all keywords, active or not, ordered by priority descending."""
        with self._lock:
            keywords = list(self._keywords.values())
        return sorted(keywords, key=lambda k: k.priority_level, reverse=True)

    def get(self, keyword_id: str) -> Optional[UrgentKeyword]:
        """Get a keyword by ID.

        Args:
            keyword_id: Keyword ID to look up

        Returns:
            UrgentKeyword if found, None otherwise
        """
        with self._lock:
            return self._keywords.get(keyword_id)

    def add(self, keyword: UrgentKeyword) -> UrgentKeyword:
        """Add a keyword.

        Args:
            keyword: Keyword to add

        Returns:
            The added keyword

        Raises:
            ValueError: If the keyword text or id already exists
        """
        with self._lock:
            if keyword.id in self._keywords:
                raise ValueError(f"Keyword with id {keyword.id} already exists")
            if any(k.keyword == keyword.keyword for k in self._keywords.values()):
                raise ValueError(f"Keyword '{keyword.keyword}' already exists")

            self._keywords[keyword.id] = keyword
            return keyword

    def set_active(self, keyword_id: str, is_active: bool) -> Optional[UrgentKeyword]:
        """Enable or soft-disable a keyword.

        Args:
            keyword_id: Keyword to update
            is_active: New active flag

        Returns:
            The updated keyword, or None if not found
        """
        with self._lock:
            keyword = self._keywords.get(keyword_id)
            if keyword is None:
                return None

            updated = keyword.model_copy(update={"is_active": is_active})
            self._keywords[keyword_id] = updated
            return updated

    def remove(self, keyword_id: str) -> bool:
        """Hard-delete a keyword.

        Args:
            keyword_id: Keyword to delete

        Returns:
            True if deleted, False if not found
        """
        with self._lock:
            return self._keywords.pop(keyword_id, None) is not None
