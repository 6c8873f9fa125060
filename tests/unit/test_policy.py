"""Tests for the escalation policy store."""

import pytest
from escalation_config import Channel, EscalationRule
from escalation_core import PolicyNotFoundError, PolicyStore


def rule(name: str, channel: str, wait: int = 10, level: int = 4, **kwargs) -> EscalationRule:
    """Build an escalation rule."""
    return EscalationRule(
        rule_name=name,
        priority_level=level,
        wait_time_minutes=wait,
        escalate_to=channel,
        **kwargs,
    )


class TestRulesFor:
    """Tests for PolicyStore.rules_for."""

    def test_step_order_defines_chain(self):
        """Test rules follow step_order regardless of insertion order."""
        store = PolicyStore(
            [
                rule("Call", "call", wait=5, step_order=2),
                rule("WhatsApp", "whatsapp", wait=10, step_order=0),
                rule("SMS", "sms", wait=15, step_order=1),
            ]
        )

        chain = store.rules_for(4)

        assert [r.escalate_to for r in chain] == [Channel.WHATSAPP, Channel.SMS, Channel.CALL]

    def test_unordered_rules_sorted_by_wait_then_insertion(self):
        """Test rules without step_order follow wait time, then insertion order."""
        store = PolicyStore(
            [
                rule("SMS", "sms", wait=15),
                rule("WhatsApp", "whatsapp", wait=10),
                rule("Call", "call", wait=15),
            ]
        )

        assert [r.rule_name for r in store.rules_for(4)] == ["WhatsApp", "SMS", "Call"]

    def test_ordered_rules_before_unordered(self):
        """Test explicitly ordered rules come first."""
        store = PolicyStore(
            [
                rule("Fallback", "call", wait=1),
                rule("First", "whatsapp", wait=30, step_order=0),
            ]
        )

        assert [r.rule_name for r in store.rules_for(4)] == ["First", "Fallback"]

    def test_inactive_rules_excluded(self):
        """Test soft-disabled rules are not part of the chain."""
        store = PolicyStore(
            [
                rule("WhatsApp", "whatsapp", step_order=0),
                rule("SMS", "sms", step_order=1, is_active=False),
            ]
        )

        assert [r.rule_name for r in store.rules_for(4)] == ["WhatsApp"]

    def test_other_levels_excluded(self):
        """Test only the requested level's rules are returned."""
        store = PolicyStore([rule("P4", "sms", level=4), rule("P5", "call", level=5)])

        assert [r.rule_name for r in store.rules_for(5)] == ["P5"]

    def test_missing_policy_raises(self):
        """Test a level with no active rules raises PolicyNotFoundError."""
        store = PolicyStore([rule("P4", "sms", level=4)])

        with pytest.raises(PolicyNotFoundError) as exc_info:
            store.rules_for(2)

        assert exc_info.value.priority_level == 2

    def test_all_inactive_counts_as_missing(self):
        """Test a level whose rules are all disabled has no policy."""
        store = PolicyStore([rule("P4", "sms", is_active=False)])

        with pytest.raises(PolicyNotFoundError):
            store.rules_for(4)


class TestPolicyAdministration:
    """Tests for runtime rule changes."""

    def test_priorities(self):
        """Test priorities lists levels with active rules, highest first."""
        store = PolicyStore(
            [
                rule("a", "sms", level=3),
                rule("b", "sms", level=5),
                rule("c", "sms", level=1, is_active=False),
            ]
        )

        assert store.priorities() == [5, 3]

    def test_add_rule(self):
        """Test added rules join the chain."""
        store = PolicyStore([rule("WhatsApp", "whatsapp", step_order=0)])

        store.add(rule("SMS", "sms", step_order=1))

        assert len(store.rules_for(4)) == 2

    def test_add_conflicting_step_rejected(self):
        """Test two active rules cannot share a step."""
        store = PolicyStore([rule("WhatsApp", "whatsapp", step_order=0)])

        with pytest.raises(ValueError) as exc_info:
            store.add(rule("SMS", "sms", step_order=0))

        assert "step_order 0" in str(exc_info.value)

    def test_reenable_conflicting_step_rejected(self):
        """Test re-enabling a rule that would collide fails."""
        disabled = rule("Old SMS", "sms", step_order=1, is_active=False)
        store = PolicyStore([disabled, rule("SMS", "sms", step_order=1)])

        with pytest.raises(ValueError):
            store.set_active(disabled.id, True)

    def test_soft_disable(self):
        """Test disabling a rule removes it from the chain but not the store."""
        sms = rule("SMS", "sms", step_order=1)
        store = PolicyStore([rule("WhatsApp", "whatsapp", step_order=0), sms])

        updated = store.set_active(sms.id, False)

        assert updated.is_active is False
        assert len(store.rules_for(4)) == 1
        assert store.get(sms.id) is not None

    def test_set_active_unknown(self):
        """Test updating an unknown rule returns None."""
        assert PolicyStore().set_active("missing", False) is None

    def test_remove(self):
        """Test hard-deleting a rule."""
        sms = rule("SMS", "sms")
        store = PolicyStore([sms])

        assert store.remove(sms.id) is True
        assert store.remove(sms.id) is False
        assert store.list() == []
