"""Unit tests for environment-bound settings."""

from agentrunner.config import GovernanceSettings, ModelSettings, Settings, get_settings


GOVERNANCE_ENV = (
    "MAX_STEPS",
    "AGENT_MAX_STEPS",
    "GUARDRAIL_RETRY_BUDGET",
    "GUARDRAIL_RETRIES",
    "TOOL_TIMEOUT_SECONDS",
    "TOOL_TIMEOUT",
    "ISOLATE_TRANSFERS",
)


class TestSettings:
    def test_governance_defaults(self, monkeypatch):
        for name in GOVERNANCE_ENV:
            monkeypatch.delenv(name, raising=False)

        governance = GovernanceSettings(_env_file=None)

        assert governance.max_steps == 50
        assert governance.guardrail_retry_budget == 1
        assert governance.tool_timeout_seconds == 30.0
        assert governance.isolate_transfers is True

    def test_env_aliases(self, monkeypatch):
        for name in GOVERNANCE_ENV + ("AGENT_MODEL",):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("AGENT_MAX_STEPS", "7")
        monkeypatch.setenv("GUARDRAIL_RETRIES", "3")
        monkeypatch.setenv("ISOLATE_TRANSFERS", "false")
        monkeypatch.setenv("MODEL_ID", "gpt-test")

        assert GovernanceSettings(_env_file=None).max_steps == 7
        assert GovernanceSettings(_env_file=None).guardrail_retry_budget == 3
        assert GovernanceSettings(_env_file=None).isolate_transfers is False
        assert ModelSettings(_env_file=None).model_id == "gpt-test"

    def test_explicit_values_win(self, monkeypatch):
        monkeypatch.setenv("MAX_STEPS", "9")
        assert GovernanceSettings(max_steps=3).max_steps == 3

    def test_nested_settings(self, settings):
        assert isinstance(settings, Settings)
        assert settings.governance.tool_timeout_seconds == 5.0
        assert settings.models.model_id == "test-model"

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
