"""Tests for settings loading and API key lookup."""

import json
import subprocess
from unittest.mock import patch

from flowsync.config import Settings, get_api_key, load_settings, save_settings


class TestLoadSettings:
    def test_defaults_when_missing(self, tmp_path):
        settings = load_settings(tmp_path / "nope.json", env={})
        assert settings == Settings()
        assert settings.window_hours == 12
        assert settings.max_items == 5

    def test_file_then_env(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"provider": "claude", "max_items": 3, "window_hours": 6}))

        settings = load_settings(path, env={"FLOWSYNC_MAX_ITEMS": "7", "FLOWSYNC_VOICE_SPEED": "1.0"})

        assert settings.provider == "claude"
        assert settings.window_hours == 6
        assert settings.max_items == 7
        assert settings.voice_speed == 1.0

    def test_unknown_and_invalid_values_ignored(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"colour": "blue", "max_items": "lots"}))

        settings = load_settings(path, env={"OTHER_MAX_ITEMS": "9"})

        assert settings.max_items == 5
        assert not hasattr(settings, "colour")

    def test_malformed_file_falls_back(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        assert load_settings(path, env={}) == Settings()

    def test_save_round_trip(self, tmp_path):
        path = tmp_path / "sub" / "config.json"
        save_settings(Settings(max_items=9, model="gemini-2.5-flash"), path)

        loaded = load_settings(path, env={})
        assert loaded.max_items == 9
        assert loaded.model == "gemini-2.5-flash"


class TestGetApiKey:
    def test_env_wins(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "from-env")
        with patch("flowsync.config.subprocess.run") as run:
            assert get_api_key("GEMINI_API_KEY", "gemini") == "from-env"
        run.assert_not_called()

    def test_keychain(self):
        done = subprocess.CompletedProcess(args=[], returncode=0, stdout="from-keychain\n")
        with patch("flowsync.config.subprocess.run", return_value=done) as run:
            assert get_api_key("GEMINI_API_KEY", "gemini") == "from-keychain"
        cmd = run.call_args[0][0]
        assert cmd[:2] == ["security", "find-generic-password"]
        assert "flowsync" in cmd

    def test_missing_security_binary(self):
        with patch("flowsync.config.subprocess.run", side_effect=FileNotFoundError):
            assert get_api_key("GEMINI_API_KEY", "gemini") is None

    def test_not_in_keychain(self):
        done = subprocess.CompletedProcess(args=[], returncode=44, stdout="")
        with patch("flowsync.config.subprocess.run", return_value=done):
            assert get_api_key("GEMINI_API_KEY", "gemini") is None
