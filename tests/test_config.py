"""
Configuration Tests

Tests for get_config(), EngineConfig validation and CLI overrides.
"""
import os

import pytest

from turnkeeper.__main__ import apply_cli_overrides
from turnkeeper.config import get_config, EngineConfig, MAX_HUMAN_TURNS, SILENCE_THRESHOLD_MS


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("TURNKEEPER_MAX_HUMAN_TURNS", "TURNKEEPER_SILENCE_THRESHOLD_MS",
                 "TURNKEEPER_SILENCE_ARM_POLICY", "TURNKEEPER_WORKDIR", "GOOGLE_APPLICATION_CREDENTIALS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "test-project")
    return monkeypatch


class TestGetConfig:
    """Test environment-driven configuration."""

    def test_defaults(self, clean_env):
        config = get_config()

        assert config.google_cloud_project == "test-project"
        assert config.max_human_turns == MAX_HUMAN_TURNS
        assert config.silence_threshold_ms == SILENCE_THRESHOLD_MS
        assert config.silence_arm_policy == "immediate"

    def test_environment_overrides(self, clean_env, tmp_path):
        clean_env.setenv("TURNKEEPER_MAX_HUMAN_TURNS", "3")
        clean_env.setenv("TURNKEEPER_SILENCE_THRESHOLD_MS", "1500")
        clean_env.setenv("TURNKEEPER_SILENCE_ARM_POLICY", "on_activity")
        clean_env.setenv("TURNKEEPER_WORKDIR", str(tmp_path))

        config = get_config()

        assert config.max_human_turns == 3
        assert config.silence_threshold_ms == 1500
        assert config.silence_arm_policy == "on_activity"
        assert config.log_file == os.path.join(str(tmp_path), "interview.log")
        assert config.engine_config().silence_threshold_ms == 1500

    def test_placeholder_project_is_rejected(self, clean_env):
        clean_env.delenv("GOOGLE_CLOUD_PROJECT")
        with pytest.raises(ValueError, match="GOOGLE_CLOUD_PROJECT"):
            get_config()

    @pytest.mark.parametrize("name,value", [
        ("TURNKEEPER_MAX_HUMAN_TURNS", "lots"),
        ("TURNKEEPER_MAX_HUMAN_TURNS", "0"),
        ("TURNKEEPER_SILENCE_THRESHOLD_MS", "-5"),
        ("TURNKEEPER_SILENCE_ARM_POLICY", "whenever"),
    ])
    def test_invalid_values_are_rejected(self, clean_env, name, value):
        clean_env.setenv(name, value)
        with pytest.raises(ValueError):
            get_config()


class TestEngineConfig:
    """Test engine tunables validation."""

    @pytest.mark.parametrize("field,value", [
        ("max_human_turns", 0),
        ("silence_threshold_ms", 0),
        ("max_retries_per_state", -1),
        ("fault_backoff_seconds", -0.1),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValueError):
            EngineConfig(**{field: value})


class TestCliOverrides:
    """Test --flag=value handling."""

    def test_flags_override_config(self, clean_env):
        config = apply_cli_overrides(get_config(), [
            "--role=Data Engineer", "--level=Junior", "--type=behavioral",
            "--tech=Spark, SQL", "--name=Sam", "--turns=4", "--silence-ms=1200",
            "--arm-on-activity", "--text",
        ])

        assert config.role == "Data Engineer"
        assert config.level == "Junior"
        assert config.interview_type == "behavioral"
        assert config.tech_stack == ["Spark", "SQL"]
        assert config.candidate_name == "Sam"
        assert config.max_human_turns == 4
        assert config.silence_threshold_ms == 1200
        assert config.silence_arm_policy == "on_activity"
        assert config.enable_tts is False

    def test_bad_number_exits(self, clean_env):
        with pytest.raises(SystemExit):
            apply_cli_overrides(get_config(), ["--turns=many"])
