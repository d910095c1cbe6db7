"""
Tests for settings and logging setup
"""

import json

import pytest
from pydantic import ValidationError

from agentcore.config import AgentCoreSettings
from agentcore.utils.logging import REDACTED, configure_logging, filter_sensitive_data, get_logger


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("AGENTCORE_DEFAULT_MAX_STEPS", raising=False)
    config = AgentCoreSettings(_env_file=None)

    assert config.default_max_steps == 10
    assert config.default_context_limit == 10
    assert config.stream_forward_types == ["tool-call", "tool-result"]


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("AGENTCORE_DEFAULT_MAX_STEPS", "4")
    monkeypatch.setenv("AGENTCORE_LOG_FORMAT", "json")

    config = AgentCoreSettings(_env_file=None)

    assert config.default_max_steps == 4
    assert config.log_format == "json"


def test_settings_validation(monkeypatch):
    monkeypatch.setenv("AGENTCORE_DEFAULT_MAX_STEPS", "0")
    with pytest.raises(ValidationError):
        AgentCoreSettings(_env_file=None)


def test_filter_sensitive_data():
    event = {
        "event": "llm_call",
        "api_key": "sk-123",
        "db_password": "hunter2",
        "prompt_tokens": 12,
        "total_tokens": 20,
    }

    filtered = filter_sensitive_data(None, "info", event)

    assert filtered["api_key"] == REDACTED
    assert filtered["db_password"] == REDACTED
    assert filtered["prompt_tokens"] == 12
    assert filtered["total_tokens"] == 20


def test_json_logging(capsys):
    configure_logging(level="INFO", fmt="json")
    try:
        get_logger("tests").info("agent_started", agent_id="a1", api_key="sk-123")
        line = capsys.readouterr().out.strip().splitlines()[-1]
    finally:
        configure_logging()

    record = json.loads(line)
    assert record["event"] == "agent_started"
    assert record["agent_id"] == "a1"
    assert record["api_key"] == REDACTED
    assert record["level"] == "info"
