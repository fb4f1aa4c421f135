"""Tests for settings loading and validation"""

import pytest

from mangrat.core.config import ChatSettings, PlanTier, Settings, _substitute_env_vars, load_settings
from mangrat.core.exceptions import ConfigError


class TestEnvSubstitution:
    def test_value_from_environment(self, monkeypatch):
        monkeypatch.setenv("MANGRAT_TEST_ORIGIN", "https://chat.example.org")
        assert _substitute_env_vars("${MANGRAT_TEST_ORIGIN:http://127.0.0.1:5500}") == "https://chat.example.org"

    def test_default_keeps_colons(self, monkeypatch):
        monkeypatch.delenv("MANGRAT_TEST_ORIGIN", raising=False)
        assert _substitute_env_vars("${MANGRAT_TEST_ORIGIN:http://127.0.0.1:5500}") == "http://127.0.0.1:5500"

    def test_missing_without_default_is_empty(self, monkeypatch):
        monkeypatch.delenv("MANGRAT_TEST_TOKEN", raising=False)
        assert _substitute_env_vars("${MANGRAT_TEST_TOKEN}") == ""

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("MANGRAT_TEST_PORT", "8080")
        data = {"server": {"port": "${MANGRAT_TEST_PORT:3000}"}, "origins": ["${MANGRAT_TEST_PORT}"], "n": 5}
        assert _substitute_env_vars(data) == {"server": {"port": "8080"}, "origins": ["8080"], "n": 5}


class TestLoadSettings:
    def test_yaml_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MANGRAT_TEST_TTL", "12")
        path = tmp_path / "settings.yaml"
        path.write_text(
            "auth:\n"
            "  session_ttl_hours: ${MANGRAT_TEST_TTL:24}\n"
            "storage:\n"
            "  backend: memory\n"
            "chat:\n"
            "  require_auth_for_chat: true\n",
            encoding="utf-8",
        )
        settings = load_settings(str(path))
        assert settings.auth.session_ttl_hours == 12
        assert settings.storage.backend == "memory"
        assert settings.chat.require_auth_for_chat is True
        assert settings.chat.basic.max_tokens == 200

    def test_config_path_from_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "alt.yaml"
        path.write_text("server:\n  port: 4000\n", encoding="utf-8")
        monkeypatch.setenv("MANGRAT_CONFIG", str(path))
        assert load_settings().server.port == 4000

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_settings(str(tmp_path / "nope.yaml"))

    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("MANGRAT_CONFIG", raising=False)
        monkeypatch.chdir(tmp_path)
        settings = load_settings()
        assert settings.server.port == 3000
        assert settings.auth.session_ttl_hours == 24
        assert settings.auth.cookie_name == "session_token"
        assert settings.cors.allowed_origins == ["http://127.0.0.1:5500"]

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("auth:\n  session_ttl_hours: 0\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_settings(str(path))

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("auth: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_settings(str(path))


class TestPlanTiers:
    def test_defaults(self):
        chat = ChatSettings()
        assert chat.premium.max_tokens > chat.basic.max_tokens
        assert chat.premium.temperature <= chat.basic.temperature

    def test_premium_must_have_more_tokens(self):
        with pytest.raises(ValueError):
            ChatSettings(
                basic=PlanTier(max_tokens=300, temperature=0.2, memory_window=10),
                premium=PlanTier(max_tokens=300, temperature=0.1, memory_window=20),
            )

    def test_premium_must_not_be_more_random(self):
        with pytest.raises(ValueError):
            ChatSettings(
                basic=PlanTier(max_tokens=200, temperature=0.2, memory_window=10),
                premium=PlanTier(max_tokens=512, temperature=0.7, memory_window=20),
            )

    def test_production_flag(self):
        settings = Settings()
        settings.app.environment = "Production"
        assert settings.app.is_production


class TestTimeouts:
    def test_defaults_keep_chat_lock_above_upstream_bound(self):
        settings = Settings()
        assert settings.llm.total_timeout_seconds == 120
        assert settings.chat.lock_timeout_seconds > (
            settings.llm.total_timeout_seconds
            + settings.llm.connect_timeout_seconds
            + settings.llm.read_timeout_seconds
        )

    def test_lock_shorter_than_upstream_call_rejected(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "chat:\n  lock_timeout_seconds: 150\n"
            "llm:\n  total_timeout_seconds: 120\n  read_timeout_seconds: 60\n",
            encoding="utf-8",
        )
        with pytest.raises(ConfigError):
            load_settings(str(path))
