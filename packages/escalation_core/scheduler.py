"""Escalation scheduler.

Drives each escalation case through its policy:

    Pending(0) -> Pending(1) -> ... -> Exhausted
         \\            \\
          +------------+--> Acknowledged

Timers are never held in memory. Every tick re-derives a case's due time
from the persisted ``last_escalated_at`` plus the current step's
``wait_time_minutes``, so a restarted process (or an external cron hitting
``tick``) picks up exactly where the previous one stopped.

All status changes go through ``CaseStore.compare_and_set``. When an
acknowledgment and a timer expiry race, whichever write lands first wins and
the other is dropped.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from escalation_config import Channel, EscalationRule, EventType
from escalation_runtime import (
    CaseStatus,
    CaseStore,
    DeliveryAttempt,
    DeliveryLedger,
    EscalationCase,
    utcnow,
)

from .channels import ChannelDispatcher, DeliveryResult
from .errors import CaseNotFoundError, ConfigurationMissingError, PolicyNotFoundError
from .metrics import CASE_TRANSITIONS, CASES_OPENED, DELIVERY_ATTEMPTS, PENDING_CASES, TICK_LATENCY
from .policy import PolicyStore
from .webhooks import WebhookNotifier

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

URGENT_PREFIX = "URGENT: "
URGENT_SUFFIX = "\n\nPlease respond immediately."


def compose_message(message: str, step_index: int) -> str:
    """Build the text sent for a step.

    The first step sends the original message; escalated steps flag it as urgent.
    """
    if step_index == 0:
        return message
    return f"{URGENT_PREFIX}{message}{URGENT_SUFFIX}"


class TransitionKind(str, Enum):
    """Kinds of case transitions reported by the scheduler."""

    OPENED = "opened"
    ESCALATED = "escalated"
    ACKNOWLEDGED = "acknowledged"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class Transition:
    """A state change applied to a case.

    Attributes:
        case_id: Case that changed
        kind: What happened
        step_index: Step index after the change
        channel: Channel dispatched by the change, if any
        at: When the change was applied
    """

    case_id: str
    kind: TransitionKind
    step_index: int
    channel: Optional[Channel]
    at: datetime


_TRANSITION_EVENTS: Dict[TransitionKind, EventType] = {
    TransitionKind.OPENED: EventType.ESCALATION_OPENED,
    TransitionKind.ESCALATED: EventType.ESCALATION_ESCALATED,
    TransitionKind.ACKNOWLEDGED: EventType.ESCALATION_ACKNOWLEDGED,
    TransitionKind.EXHAUSTED: EventType.ESCALATION_EXHAUSTED,
}


class EscalationScheduler:
    """Timer-driven state machine over all pending escalation cases."""

    def __init__(
        self,
        store: CaseStore,
        policies: PolicyStore,
        dispatcher: ChannelDispatcher,
        ledger: DeliveryLedger,
        notifier: Optional[WebhookNotifier] = None,
        clock: Clock = utcnow,
    ):
        """Initialize the scheduler.

        Args:
            store: Case store (the single point of case mutation)
            policies: Escalation policy store
            dispatcher: Channel dispatcher used for every step
            ledger: Ledger receiving one row per dispatch
            notifier: Optional webhook notifier for lifecycle events
            clock: Source of the current time
        """
        self.store = store
        self.policies = policies
        self.dispatcher = dispatcher
        self.ledger = ledger
        self.notifier = notifier
        self.clock = clock
        self._stop_event = asyncio.Event()

    async def open_case(
        self,
        trigger_source: str,
        priority_level: int,
        message: str,
        recipient: str,
        matched_keywords: Optional[List[str]] = None,
    ) -> EscalationCase:
        """Open a case in Pending(0) and dispatch its first step immediately.

        Args:
            trigger_source: Meeting or message ID that triggered the case
            priority_level: Priority level selecting the policy
            message: Text to deliver
            recipient: Recipient phone number
            matched_keywords: Keywords that triggered the case

        Returns:
            The newly stored case

        Raises:
            PolicyNotFoundError: If no active rules exist for the priority level
        """
        rules = self.policies.rules_for(priority_level)
        now = self.clock()

        case = EscalationCase(
            trigger_source=trigger_source,
            priority_level=priority_level,
            message=message,
            recipient=recipient,
            matched_keywords=matched_keywords or [],
            created_at=now,
            last_escalated_at=now,
        )
        self.store.create(case)

        CASES_OPENED.labels(priority_level=str(priority_level)).inc()
        logger.info(
            "Opened escalation case %s for %s (priority %d, %d steps)",
            case.id,
            trigger_source,
            priority_level,
            len(rules),
        )

        self._record_transition(case, TransitionKind.OPENED, rules[0].escalate_to, now)
        await self._dispatch_step(case, rules[0])
        self._update_pending_gauge()
        return case

    async def acknowledge(self, case_id: str, source: Optional[str] = None) -> EscalationCase:
        """Move a pending case to Acknowledged.

        Terminal cases are returned unchanged, so repeated signals are harmless.

        Args:
            case_id: Case to acknowledge
            source: Optional description of the acknowledging party

        Returns:
            The case after the call

        Raises:
            CaseNotFoundError: If the case does not exist
        """
        while True:
            case = self.store.get(case_id)
            if case is None:
                raise CaseNotFoundError(case_id)

            if case.is_terminal:
                logger.debug("Ignoring acknowledgment for %s case %s", case.status.value, case_id)
                return case

            now = self.clock()
            updated = case.acknowledge(now, source)
            if self.store.compare_and_set(case_id, case.version, updated):
                break

            # A tick advanced the case between the read and the write; re-read it
            logger.debug("Acknowledgment for case %s lost a race; retrying", case_id)

        logger.info(
            "Escalation case %s acknowledged at step %d%s",
            case_id,
            updated.current_step_index,
            f" by {source}" if source else "",
        )
        self._record_transition(updated, TransitionKind.ACKNOWLEDGED, None, now)
        self._update_pending_gauge()
        return updated

    def next_due_at(self, case: EscalationCase) -> Optional[datetime]:
        """Compute when a pending case's current step expires.

        Args:
            case: Case to inspect

        Returns:
            Due time, or None for terminal cases or cases without a policy
        """
        if case.is_terminal:
            return None
        try:
            rules = self.policies.rules_for(case.priority_level)
        except PolicyNotFoundError:
            return None
        if case.current_step_index >= len(rules):
            return None
        wait = rules[case.current_step_index].wait_time_minutes
        return case.last_escalated_at + timedelta(minutes=wait)

    async def tick(self, now: Optional[datetime] = None) -> List[Transition]:
        """Advance every pending case whose current step has expired.

        Cases are processed concurrently. A failure in one case is logged and
        does not affect the others.

        Args:
            now: Time to evaluate against (defaults to the clock). A naive
                value is taken to be UTC.

        Returns:
            Transitions applied during this tick
        """
        now = now or self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        pending = self.store.pending()

        with TICK_LATENCY.time():
            results = await asyncio.gather(
                *(self._process_case(case, now) for case in pending),
                return_exceptions=True,
            )

        transitions: List[Transition] = []
        for case, result in zip(pending, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Failed to process escalation case %s",
                    case.id,
                    exc_info=(type(result), result, result.__traceback__),
                )
            elif result is not None:
                transitions.append(result)

        self._update_pending_gauge()
        return transitions

    async def run_forever(self, interval_seconds: float) -> None:
        """Tick every ``interval_seconds`` until ``stop`` is called.

        Args:
            interval_seconds: Seconds between ticks
        """
        logger.info("Escalation scheduler started (tick every %.1fs)", interval_seconds)

        while not self._stop_event.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("Escalation tick failed")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Escalation scheduler stopped")

    def stop(self) -> None:
        """Ask ``run_forever`` to exit after the current tick."""
        self._stop_event.set()

    async def _process_case(self, case: EscalationCase, now: datetime) -> Optional[Transition]:
        """Apply at most one transition to a pending case."""
        try:
            rules = self.policies.rules_for(case.priority_level)
        except PolicyNotFoundError:
            logger.warning(
                "Policy for priority %d no longer exists; exhausting case %s",
                case.priority_level,
                case.id,
            )
            return self._exhaust(case, now)

        index = case.current_step_index
        if index >= len(rules):
            return self._exhaust(case, now)

        due_at = case.last_escalated_at + timedelta(minutes=rules[index].wait_time_minutes)
        if now < due_at:
            return None

        next_index = index + 1
        if next_index >= len(rules):
            return self._exhaust(case, now)

        updated = case.advance(now)
        if not self.store.compare_and_set(case.id, case.version, updated):
            logger.debug("Case %s changed concurrently; skipping escalation", case.id)
            return None

        rule = rules[next_index]
        logger.info(
            "Escalating case %s to step %d via %s (rule '%s')",
            case.id,
            next_index,
            rule.escalate_to.value,
            rule.rule_name,
        )
        transition = self._record_transition(
            updated, TransitionKind.ESCALATED, rule.escalate_to, now
        )
        await self._dispatch_step(updated, rule)
        return transition

    def _exhaust(self, case: EscalationCase, now: datetime) -> Optional[Transition]:
        updated = case.exhaust(now)
        if not self.store.compare_and_set(case.id, case.version, updated):
            logger.debug("Case %s changed concurrently; skipping exhaustion", case.id)
            return None

        logger.warning(
            "Escalation case %s exhausted after %d steps without acknowledgment",
            case.id,
            case.current_step_index + 1,
        )
        return self._record_transition(updated, TransitionKind.EXHAUSTED, None, now)

    async def _dispatch_step(self, case: EscalationCase, rule: EscalationRule) -> DeliveryAttempt:
        """Send the current step and append the outcome to the ledger."""
        channel = rule.escalate_to
        text = compose_message(case.message, case.current_step_index)
        sent_at = self.clock()

        try:
            result = await self.dispatcher.dispatch(channel, text, case.recipient)
        except ConfigurationMissingError as e:
            logger.warning("Case %s step %d skipped: %s", case.id, case.current_step_index, e)
            result = DeliveryResult.failed(str(e))

        finished_at = self.clock()
        attempt = DeliveryAttempt(
            case_id=case.id,
            step_index=case.current_step_index,
            channel=channel,
            recipient=case.recipient,
            sent_at=sent_at,
            delivered_at=finished_at if result.ok else None,
            failed_at=None if result.ok else finished_at,
            error_message=result.error,
            provider_ref=result.provider_ref,
        )
        self.ledger.record(attempt)
        DELIVERY_ATTEMPTS.labels(channel=channel.value, status=attempt.status.value).inc()

        if result.ok:
            logger.info(
                "Delivery attempt %s for case %s sent via %s", attempt.id, case.id, channel.value
            )
        else:
            logger.warning(
                "Delivery attempt %s for case %s via %s failed: %s",
                attempt.id,
                case.id,
                channel.value,
                result.error,
            )

        self._emit(
            EventType.DISTRIBUTION_SENT if result.ok else EventType.DISTRIBUTION_FAILED,
            {
                "attempt_id": attempt.id,
                "case_id": case.id,
                "step_index": attempt.step_index,
                "channel": channel.value,
                "recipient": attempt.recipient,
                "status": attempt.status.value,
                "provider_ref": attempt.provider_ref,
                "error_message": attempt.error_message,
            },
        )
        return attempt

    def _record_transition(
        self,
        case: EscalationCase,
        kind: TransitionKind,
        channel: Optional[Channel],
        at: datetime,
    ) -> Transition:
        CASE_TRANSITIONS.labels(transition=kind.value).inc()
        self._emit(
            _TRANSITION_EVENTS[kind],
            {
                "case_id": case.id,
                "trigger_source": case.trigger_source,
                "priority_level": case.priority_level,
                "step_index": case.current_step_index,
                "status": case.status.value,
                "channel": channel.value if channel else None,
            },
        )
        return Transition(
            case_id=case.id,
            kind=kind,
            step_index=case.current_step_index,
            channel=channel,
            at=at,
        )

    def _emit(self, event: EventType, data: Dict[str, Any]) -> None:
        if self.notifier is not None:
            self.notifier.notify(event, data)

    def _update_pending_gauge(self) -> None:
        PENDING_CASES.set(self.store.count(CaseStatus.PENDING))
