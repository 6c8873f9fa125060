"""Tests for configuration loader."""

from pathlib import Path

import pytest
from escalation_config import (
    Channel,
    ConfigurationError,
    EngineConfig,
    EventType,
    SmsProvider,
    load_config_from_dict,
    load_config_from_yaml,
)

PROJECT_ROOT = Path(__file__).resolve().parents[2]


class TestLoadConfigFromYaml:
    """Tests for load_config_from_yaml function."""

    def test_load_valid_config(self, tmp_path):
        """Test loading a valid YAML configuration."""
        config_file = tmp_path / "escalation.yaml"
        config_file.write_text(
            """
keywords:
  - keyword: urgent
    priority_level: 4

escalation_rules:
  - rule_name: WhatsApp first
    priority_level: 4
    escalate_to: whatsapp
    wait_time_minutes: 10
  - rule_name: Then SMS
    priority_level: 4
    escalate_to: sms
    wait_time_minutes: 15

webhooks:
  - name: Ops
    url: https://ops.example.com/hook
    events: [distribution.sent, distribution.failed]
"""
        )

        config = load_config_from_yaml(config_file)

        assert isinstance(config, EngineConfig)
        assert config.keywords[0].keyword == "urgent"
        assert [r.escalate_to for r in config.escalation_rules] == [Channel.WHATSAPP, Channel.SMS]
        assert config.webhooks[0].events == [
            EventType.DISTRIBUTION_SENT,
            EventType.DISTRIBUTION_FAILED,
        ]

    def test_env_placeholders_expanded(self, tmp_path, monkeypatch):
        """Test ${VAR} placeholders are read from the environment."""
        monkeypatch.setenv("TEST_SMS_KEY", "secret-key")
        config_file = tmp_path / "escalation.yaml"
        config_file.write_text(
            """
communication:
  sms:
    provider: ethio_telecom
    api_key: ${TEST_SMS_KEY}
"""
        )

        config = load_config_from_yaml(config_file)

        assert config.communication.sms.api_key == "secret-key"
        assert config.communication.sms.provider == SmsProvider.ETHIO_TELECOM

    def test_missing_env_placeholder(self, tmp_path, monkeypatch):
        """Test an unset placeholder raises ConfigurationError."""
        monkeypatch.delenv("TEST_MISSING_VAR", raising=False)
        config_file = tmp_path / "escalation.yaml"
        config_file.write_text(
            """
communication:
  whatsapp:
    api_endpoint: https://wa.example.com
    api_key: ${TEST_MISSING_VAR}
"""
        )

        with pytest.raises(ConfigurationError) as exc_info:
            load_config_from_yaml(config_file)

        assert "TEST_MISSING_VAR" in str(exc_info.value)

    def test_file_not_found(self, tmp_path):
        """Test loading a missing file."""
        with pytest.raises(FileNotFoundError):
            load_config_from_yaml(tmp_path / "missing.yaml")

    def test_path_is_directory(self, tmp_path):
        """Test loading a directory path."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_config_from_yaml(tmp_path)

        assert "not a file" in str(exc_info.value)

    def test_empty_file(self, tmp_path):
        """Test loading an empty file."""
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config_from_yaml(config_file)

        assert "empty" in str(exc_info.value)

    def test_invalid_yaml(self, tmp_path):
        """Test loading malformed YAML."""
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("keywords: [unclosed")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config_from_yaml(config_file)

        assert "Failed to parse YAML" in str(exc_info.value)

    def test_yaml_not_a_mapping(self, tmp_path):
        """Test loading a YAML list instead of an object."""
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- urgent\n- emergency\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config_from_yaml(config_file)

        assert "YAML object" in str(exc_info.value)

    def test_shipped_config_loads(self, monkeypatch):
        """Test the bundled configuration validates once its secrets are set."""
        for name in (
            "WHATSAPP_PHONE_NUMBER_ID",
            "WHATSAPP_API_KEY",
            "SMS_API_KEY",
            "SMS_USERNAME",
            "FREEPBX_API_KEY",
            "OPS_WEBHOOK_SECRET",
        ):
            monkeypatch.setenv(name, "test-value")
        monkeypatch.setenv("FREEPBX_SERVER_URL", "https://pbx.example.com")

        config = load_config_from_yaml(PROJECT_ROOT / "configs" / "escalation.yaml")

        assert config.communication.configured_channels() == {
            Channel.WHATSAPP,
            Channel.SMS,
            Channel.CALL,
        }
        assert any(k.keyword == "emergency" for k in config.keywords)


class TestLoadConfigFromDict:
    """Tests for load_config_from_dict function."""

    def test_load_valid_dict(self):
        """Test loading from a dictionary."""
        config = load_config_from_dict(
            {"keywords": [{"keyword": "asap", "priority_level": 2, "auto_escalate": False}]}
        )

        assert config.keywords[0].auto_escalate is False

    def test_validation_error_wrapped(self):
        """Test validation errors are raised as ConfigurationError."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_config_from_dict(
                {
                    "escalation_rules": [
                        {"rule_name": "x", "priority_level": 9, "escalate_to": "sms"}
                    ]
                }
            )

        assert "validation failed" in str(exc_info.value)

    def test_nested_placeholders(self, monkeypatch):
        """Test placeholders inside lists and nested mappings are expanded."""
        monkeypatch.setenv("TEST_HOOK_HOST", "hooks.example.com")
        config = load_config_from_dict(
            {
                "webhooks": [
                    {
                        "name": "Ops",
                        "url": "https://${TEST_HOOK_HOST}/escalations",
                        "events": ["escalation.opened"],
                        "headers": {"X-Origin": "${TEST_HOOK_HOST}"},
                    }
                ]
            }
        )

        assert config.webhooks[0].url == "https://hooks.example.com/escalations"
        assert config.webhooks[0].headers["X-Origin"] == "hooks.example.com"
