"""Tests for app settings: defaults, partial merge, env overrides."""

import json

from taleweave.config import get_config, update_config


def test_get_config_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("TALEWEAVE_LLM_URL", raising=False)
    monkeypatch.delenv("TALEWEAVE_LLM_KEY", raising=False)
    config = get_config(tmp_path)
    assert config["llm"]["provider_format"] == "koboldcpp"
    assert config["llm"]["timeout"] == 120
    assert config["history_limit"] == 20
    assert config["mission_cooldown_turns"] == 3
    assert config["mission_force_turns"] == 10
    assert config["max_cached_sessions"] == 64
    assert config["narrator_prompt"] == ""
    assert config["continue_action"] == "Continue the story."


def test_update_config_merges_llm(tmp_path, monkeypatch):
    monkeypatch.delenv("TALEWEAVE_LLM_URL", raising=False)
    update_config(tmp_path, {"llm": {"provider_url": "http://gpu:5001"}})
    result = update_config(tmp_path, {"llm": {"model": "mistral"}, "mission_force_turns": 6})
    assert result["llm"]["provider_url"] == "http://gpu:5001"
    assert result["llm"]["model"] == "mistral"
    assert result["mission_force_turns"] == 6

    stored = json.loads((tmp_path / "config.json").read_text())
    assert stored["mission_force_turns"] == 6


def test_unknown_keys_ignored(tmp_path):
    result = update_config(tmp_path, {"font_settings": {"size": 18}})
    assert "font_settings" not in result


def test_env_overrides_connection(tmp_path, monkeypatch):
    update_config(tmp_path, {"llm": {"provider_url": "http://stored:5001"}})
    monkeypatch.setenv("TALEWEAVE_LLM_URL", "http://env:5001")
    monkeypatch.setenv("TALEWEAVE_LLM_KEY", "secret")
    config = get_config(tmp_path)
    assert config["llm"]["provider_url"] == "http://env:5001"
    assert config["llm"]["api_key"] == "secret"

    # env values are never written back
    update_config(tmp_path, {"history_limit": 10})
    stored = json.loads((tmp_path / "config.json").read_text())
    assert stored["llm"]["provider_url"] == "http://stored:5001"
    assert stored["llm"]["api_key"] == ""
