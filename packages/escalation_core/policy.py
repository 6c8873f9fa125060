"""Escalation policy store.

A policy is the ordered chain of escalation rules for one priority level,
for example WhatsApp (wait 10m) -> SMS (wait 15m) -> Call (wait 5m).
"""

from threading import Lock
from typing import Dict, Iterable, List, Optional

from escalation_config import EscalationRule

from .errors import PolicyNotFoundError


class PolicyStore:
    """Holds escalation rules and resolves the chain for a priority level.

    Chain order is ``step_order`` ascending. Rules without a ``step_order``
    come after the explicitly ordered ones, sorted by ``wait_time_minutes``
    and then by the order they were added.
    """

    def __init__(self, rules: Optional[Iterable[EscalationRule]] = None):
        """Initialize the policy store.

        Args:
            rules: Initial rule set
        """
        self._rules: Dict[str, EscalationRule] = {}
        self._lock = Lock()
        for rule in rules or []:
            self._rules[rule.id] = rule

    def rules_for(self, priority_level: int) -> List[EscalationRule]:
        """Get the ordered chain of active rules for a priority level.

        Args:
            priority_level: Priority level to resolve

        Returns:
            Active rules in chain order

        Raises:
            PolicyNotFoundError: If no active rules exist for the level
        """
        with self._lock:
            candidates = [
                (idx, rule)
                for idx, rule in enumerate(self._rules.values())
                if rule.is_active and rule.priority_level == priority_level
            ]

        if not candidates:
            raise PolicyNotFoundError(priority_level)

        candidates.sort(
            key=lambda item: (
                item[1].step_order is None,
                item[1].step_order if item[1].step_order is not None else 0,
                item[1].wait_time_minutes,
                item[0],
            )
        )
        return [rule for _, rule in candidates]

    def priorities(self) -> List[int]:
        """Get priority levels that have at least one active rule, highest first."""
        with self._lock:
            levels = {r.priority_level for r in self._rules.values() if r.is_active}
        return sorted(levels, reverse=True)

    def list(self) -> List[EscalationRule]:
        """Get all rules ordered by priority_level descending."""
        with self._lock:
            rules = list(self._rules.values())
        return sorted(rules, key=lambda r: r.priority_level, reverse=True)

    def get(self, rule_id: str) -> Optional[EscalationRule]:
        """Get a rule by ID."""
        with self._lock:
            return self._rules.get(rule_id)

    def add(self, rule: EscalationRule) -> EscalationRule:
        """Add a rule.

        Args:
            rule: Rule to add

        Returns:
            The added rule

        Raises:
            ValueError: If the id exists or the step collides with an active rule
        """
        with self._lock:
            if rule.id in self._rules:
                raise ValueError(f"Rule with id {rule.id} already exists")
            self._check_step_conflict(rule)
            self._rules[rule.id] = rule
            return rule

    def set_active(self, rule_id: str, is_active: bool) -> Optional[EscalationRule]:
        """Enable or soft-disable a rule.

        Args:
            rule_id: Rule to update
            is_active: New active flag

        Returns:
            The updated rule, or None if not found

        Raises:
            ValueError: If re-enabling would collide with another active step
        """
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                return None

            updated = rule.model_copy(update={"is_active": is_active})
            self._check_step_conflict(updated)
            self._rules[rule_id] = updated
            return updated

    def remove(self, rule_id: str) -> bool:
        """Hard-delete a rule.

        Returns:
            True if deleted, False if not found
        """
        with self._lock:
            return self._rules.pop(rule_id, None) is not None

    def _check_step_conflict(self, rule: EscalationRule) -> None:
        if not rule.is_active or rule.step_order is None:
            return
        for other in self._rules.values():
            if (
                other.id != rule.id
                and other.is_active
                and other.priority_level == rule.priority_level
                and other.step_order == rule.step_order
            ):
                raise ValueError(
                    f"Priority level {rule.priority_level} already has an active rule "
                    f"at step_order {rule.step_order}"
                )
