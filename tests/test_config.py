"""Tests for configuration loading."""

import pytest

from dmrelay.config import DEFAULT_DISCARDED_SUBTYPES, _expand_env_vars, load_config
from dmrelay.errors import ConfigurationError

VALID_YAML = """
slack:
  user_token: ${TEST_SLACK_TOKEN}
whatsapp:
  access_token: ${TEST_WA_TOKEN}
  phone_number_id: "1234567890"
  dest_numbers: ${TEST_DEST_NUMBERS}
relay:
  cooldown_seconds: 60
"""


class TestLoadConfig:
    """Test loading config.yaml."""

    @pytest.fixture(autouse=True)
    def env(self, monkeypatch):
        monkeypatch.setenv("TEST_SLACK_TOKEN", "xoxp-abc")
        monkeypatch.setenv("TEST_WA_TOKEN", "EAAG-secret")
        monkeypatch.setenv("TEST_DEST_NUMBERS", "5511900000001, 5511900000002,")

    def write(self, tmp_path, text):
        path = tmp_path / "config.yaml"
        path.write_text(text)
        return path

    def test_load_valid_config_with_env_expansion(self, tmp_path):
        """Test ${VAR} expansion and comma-separated destinations."""
        config = load_config(self.write(tmp_path, VALID_YAML))

        assert config.slack.user_token.get_secret_value() == "xoxp-abc"
        assert config.whatsapp.access_token.get_secret_value() == "EAAG-secret"
        assert config.whatsapp.dest_numbers == ["5511900000001", "5511900000002"]
        assert config.relay.cooldown_seconds == 60

    def test_defaults(self, tmp_path):
        """Test default values match the documented behavior."""
        config = load_config(self.write(tmp_path, VALID_YAML))

        assert config.whatsapp.template_name == "hello_world"
        assert config.whatsapp.template_lang == "en_US"
        assert config.relay.poll_interval == 5
        assert config.relay.cooldown_summary is True
        assert config.relay.forward_outgoing is False
        assert config.relay.discarded_subtypes == DEFAULT_DISCARDED_SUBTYPES
        assert config.slack.page_size == 200

    def test_missing_file(self, tmp_path):
        """Test a missing file is a configuration error."""
        with pytest.raises(ConfigurationError, match="Config file not found"):
            load_config(tmp_path / "nope.yaml")

    def test_unset_env_var(self, tmp_path, monkeypatch):
        """Test referencing an unset environment variable fails."""
        monkeypatch.delenv("TEST_WA_TOKEN")

        with pytest.raises(ConfigurationError, match="TEST_WA_TOKEN"):
            load_config(self.write(tmp_path, VALID_YAML))

    def test_empty_destination_list(self, tmp_path, monkeypatch):
        """Test at least one destination number is required."""
        monkeypatch.setenv("TEST_DEST_NUMBERS", " , ")

        with pytest.raises(ConfigurationError, match="dest_numbers"):
            load_config(self.write(tmp_path, VALID_YAML))

    def test_rejects_non_user_token(self, tmp_path, monkeypatch):
        """Test bot tokens are rejected."""
        monkeypatch.setenv("TEST_SLACK_TOKEN", "xoxb-bot-token")

        with pytest.raises(ConfigurationError, match="xoxp-"):
            load_config(self.write(tmp_path, VALID_YAML))

    def test_rejects_unknown_timezone(self, tmp_path):
        """Test timezone names are validated."""
        text = VALID_YAML + "  timezone: Mars/Olympus_Mons\n"

        with pytest.raises(ConfigurationError, match="timezone"):
            load_config(self.write(tmp_path, text))

    def test_missing_section(self, tmp_path):
        """Test the whatsapp section is mandatory."""
        text = "slack:\n  user_token: xoxp-abc\n"

        with pytest.raises(ConfigurationError, match="whatsapp"):
            load_config(self.write(tmp_path, text))


class TestExpandEnvVars:
    """Test ${VAR} expansion."""

    def test_expands_nested_values(self, monkeypatch):
        monkeypatch.setenv("TEST_TOKEN", "secret")

        expanded = _expand_env_vars({"a": {"b": ["${TEST_TOKEN}", "plain"]}, "n": 5})

        assert expanded == {"a": {"b": ["secret", "plain"]}, "n": 5}

    def test_partial_reference_left_alone(self, monkeypatch):
        monkeypatch.delenv("TEST_TOKEN", raising=False)

        assert _expand_env_vars("prefix-${TEST_TOKEN}") == "prefix-${TEST_TOKEN}"

    def test_empty_value_is_kept(self, monkeypatch):
        monkeypatch.setenv("TEST_TOKEN", "")

        assert _expand_env_vars("${TEST_TOKEN}") == ""

    def test_unset_variable(self, monkeypatch):
        monkeypatch.delenv("TEST_TOKEN", raising=False)

        with pytest.raises(ConfigurationError, match="TEST_TOKEN"):
            _expand_env_vars(["${TEST_TOKEN}"])
