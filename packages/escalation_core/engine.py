"""Escalation engine assembly.

Builds every component from an EngineConfig and owns their lifecycle.

With ``scheduler.state_file`` set, everything that must survive a restart
lives next to that file:

    cases.json             case snapshot (FileCaseStore)
    cases.attempts.jsonl   delivery ledger (FileDeliveryLedger)
    cases.config.json      keywords and rules changed through the API

The keyword and rule file, once written, takes precedence over the YAML
configuration. Delete it to fall back to the YAML.
"""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple

import httpx
from escalation_config import EngineConfig, EscalationRule, UrgentKeyword
from escalation_runtime import (
    CaseStore,
    DeliveryLedger,
    FileCaseStore,
    FileDeliveryLedger,
    WebhookDeliveryLog,
    utcnow,
)

from .channels import ChannelDispatcher
from .detector import KeywordDetector
from .llm_provider import LLMProvider
from .policy import PolicyStore
from .scheduler import Clock, EscalationScheduler
from .service import EscalationService
from .urgency import UrgencyAssessor
from .webhooks import WebhookNotifier

logger = logging.getLogger(__name__)


def _beside(state_file: str, suffix: str) -> Path:
    path = Path(state_file)
    return path.with_name(f"{path.stem}.{suffix}")


class EscalationEngine:
    """All escalation components wired together from one configuration."""

    def __init__(
        self,
        config: EngineConfig,
        client: Optional[httpx.AsyncClient] = None,
        store: Optional[CaseStore] = None,
        llm_provider: Optional[LLMProvider] = None,
        clock: Clock = utcnow,
    ):
        """Initialize the engine.

        Args:
            config: Complete service configuration
            client: Optional HTTP client shared by channel senders and webhooks
            store: Optional case store (defaults to file-backed when configured)
            llm_provider: Optional LLM provider (built from config.llm otherwise)
            clock: Source of the current time
        """
        self.config = config
        state_file = config.scheduler.state_file

        if store is None:
            store = FileCaseStore(state_file) if state_file else CaseStore()
        self.store = store

        if state_file:
            self.ledger: DeliveryLedger = FileDeliveryLedger(_beside(state_file, "attempts.jsonl"))
            self.config_file: Optional[Path] = _beside(state_file, "config.json")
        else:
            self.ledger = DeliveryLedger()
            self.config_file = None

        keywords, rules = self._initial_keywords_and_rules()
        self.detector = KeywordDetector(keywords)
        self.policies = PolicyStore(rules)
        self.webhook_log = WebhookDeliveryLog()

        self.notifier = WebhookNotifier(
            config.webhooks,
            self.webhook_log,
            client=client,
            backoff_base_seconds=config.scheduler.webhook_backoff_base_seconds,
            backoff_max_seconds=config.scheduler.webhook_backoff_max_seconds,
        )
        self.dispatcher = ChannelDispatcher(config.communication, client=client)
        self.scheduler = EscalationScheduler(
            self.store,
            self.policies,
            self.dispatcher,
            self.ledger,
            notifier=self.notifier,
            clock=clock,
        )

        assessor = None
        if config.urgency is not None and config.urgency.enabled:
            if llm_provider is None and config.llm is not None:
                llm_provider = LLMProvider(config.llm)
            if llm_provider is not None:
                assessor = UrgencyAssessor(llm_provider, config.urgency)
        self.assessor = assessor

        self.service = EscalationService(
            self.detector,
            self.scheduler,
            notifier=self.notifier,
            assessor=self.assessor,
        )

        channels = sorted(c.value for c in config.communication.configured_channels())
        logger.info(
            "Escalation engine ready: %d keywords, %d rules, %d webhooks, channels: %s",
            len(self.detector.list()),
            len(self.policies.list()),
            len(config.webhooks),
            ", ".join(channels) or "none",
        )

    def save_config_changes(self) -> None:
        """Persist the current keywords and rules beside the state file.

        Does nothing when no state file is configured; changes then last
        until the process exits.
        """
        if self.config_file is None:
            return

        data = {
            "keywords": [k.model_dump(mode="json") for k in self.detector.list()],
            "escalation_rules": [r.model_dump(mode="json") for r in self.policies.list()],
        }
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.config_file.with_suffix(self.config_file.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp_path, self.config_file)

    def _initial_keywords_and_rules(
        self,
    ) -> Tuple[List[UrgentKeyword], List[EscalationRule]]:
        if self.config_file is None or not self.config_file.exists():
            return self.config.keywords, self.config.escalation_rules

        with open(self.config_file, "r", encoding="utf-8") as f:
            data = json.load(f)

        keywords = [UrgentKeyword.model_validate(k) for k in data.get("keywords", [])]
        rules = [EscalationRule.model_validate(r) for r in data.get("escalation_rules", [])]
        logger.info(
            "Loaded %d keywords and %d rules changed at runtime from %s",
            len(keywords),
            len(rules),
            self.config_file,
        )
        return keywords, rules

    async def aclose(self) -> None:
        """Stop the scheduler loop, drain webhooks and close HTTP clients."""
        self.scheduler.stop()
        await self.notifier.aclose()
        await self.dispatcher.aclose()
