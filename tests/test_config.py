"""Tests for environment-backed configuration helpers."""

from __future__ import annotations

import os

import pytest

from brutus import config


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch, tmp_path):
    """Ensure each test starts with a clean configuration environment."""

    env_path = tmp_path / ".env"
    monkeypatch.setattr(config, "_ENV_PATH", env_path)
    monkeypatch.setattr(config, "_settings", None)
    monkeypatch.chdir(tmp_path)

    for key in list(os.environ):
        if key.startswith("BRUTUS_"):
            monkeypatch.delenv(key, raising=False)

    yield

    for key in list(os.environ):
        if key.startswith("BRUTUS_"):
            os.environ.pop(key, None)


def test_list_environment_settings_reflects_defaults():
    entries = {entry.env_name: entry for entry in config.list_environment_settings()}

    assert "BRUTUS_ORACLE_BACKEND" in entries
    assert "BRUTUS_MIN_FEEDBACK_INTERVAL_SECONDS" in entries
    assert "BRUTUS_OPENAI_ORACLE_MODEL" in entries
    assert entries["BRUTUS_MIN_NOTE_INTERVAL_SECONDS"].default == 30.0
    assert str(entries["BRUTUS_DATABASE_PATH"].default) == "brutus.db"


def test_throttle_defaults():
    settings = config.get_settings()

    assert settings.min_feedback_interval_seconds == 20.0
    assert settings.min_note_interval_seconds == 30.0
    assert settings.min_note_transcript_chars == 100
    assert settings.note_context_chars == 500
    assert settings.min_note_chars == 10
    assert settings.min_call_transcript_chars == 50
    assert settings.profile_history_size == 10
    assert settings.chat_history_size == 3


def test_update_environment_setting_persists_and_reloads():
    updated = config.update_environment_setting("min_feedback_interval_seconds", "45")

    assert updated.min_feedback_interval_seconds == 45.0
    assert config.get_settings().min_feedback_interval_seconds == 45.0
    assert os.environ["BRUTUS_MIN_FEEDBACK_INTERVAL_SECONDS"] == "45"

    env_contents = config._ENV_PATH.read_text().strip().splitlines()  # type: ignore[attr-defined]
    assert "BRUTUS_MIN_FEEDBACK_INTERVAL_SECONDS=45" in env_contents


def test_clear_environment_setting_removes_override():
    config.update_environment_setting("oracle_backend", "openai")
    cleared = config.clear_environment_setting("oracle_backend")

    assert cleared.oracle_backend == "dummy"
    assert "BRUTUS_ORACLE_BACKEND" not in os.environ
    assert not config._ENV_PATH.exists()  # type: ignore[attr-defined]


def test_invalid_value_is_rejected_and_rolled_back():
    with pytest.raises(config.EnvironmentSettingError):
        config.update_environment_setting("min_note_chars", "plenty")

    assert "BRUTUS_MIN_NOTE_CHARS" not in os.environ
    assert not config._ENV_PATH.exists()  # type: ignore[attr-defined]


def test_unknown_setting_is_rejected():
    with pytest.raises(config.EnvironmentSettingError):
        config.update_environment_setting("sample_rate", "16000")
