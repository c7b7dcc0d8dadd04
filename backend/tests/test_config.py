"""
Tests for settings loading and user-facing error messages.
"""
import logging

from snowshield.config_loader import load_settings, load_settings_file
from snowshield.errors import (
    NetworkError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
    log_error,
    user_message,
)


class TestSettings:
    """Defaults, YAML file and environment layers."""

    def test_defaults_when_file_missing(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DASHBOARD_FEED_LIMIT", raising=False)
        settings = load_settings(tmp_path / "missing.yaml")
        assert settings.dashboard_feed_limit == 6
        assert settings.max_photos == 5
        assert "image/png" in settings.allowed_photo_types

    def test_yaml_section(self, tmp_path, monkeypatch):
        monkeypatch.delenv("MEDIA_ROOT", raising=False)
        path = tmp_path / "settings.yaml"
        path.write_text("settings:\n  media_root: /srv/media\n  max_photos: 3\n  bogus: 1\n")
        settings = load_settings(path)
        assert settings.media_root == "/srv/media"
        assert settings.max_photos == 3

    def test_env_wins(self, tmp_path, monkeypatch):
        path = tmp_path / "settings.yaml"
        path.write_text("settings:\n  dashboard_feed_limit: 10\n")
        monkeypatch.setenv("DASHBOARD_FEED_LIMIT", "4")
        assert load_settings(path).dashboard_feed_limit == 4

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("settings: [unclosed\n")
        assert load_settings_file(path) == {}


class TestUserMessages:
    """Errors mapped to text safe to show users."""

    def test_validation_keeps_message(self):
        assert user_message(ValidationError("Title is required.")) == "Title is required."

    def test_code_table(self):
        assert user_message(PermissionDeniedError("nope")) == (
            "You don't have permission to perform this action."
        )
        assert user_message(StorageError("db down")) == (
            "The service is temporarily unavailable. Please try again later."
        )

    def test_unknown_code_falls_back_to_message(self):
        assert user_message(NetworkError("weather exploded", code="teapot")) == "weather exploded"

    def test_none(self):
        assert user_message(None) == "An unknown error occurred. Please try again."

    def test_plain_exception(self):
        assert user_message(RuntimeError("boom")) == "An unknown error occurred. Please try again."

    def test_log_error(self, caplog):
        logger = logging.getLogger("snowshield.test")
        with caplog.at_level(logging.ERROR, logger="snowshield.test"):
            log_error(logger, StorageError("db down", context={"id": "x"}), "createIncident")
        assert "createIncident" in caplog.text
        assert "code=unavailable" in caplog.text
