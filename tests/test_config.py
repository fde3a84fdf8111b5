"""Tests for hoyodb.config module."""

from pathlib import Path


class TestSettings:
    def test_default_settings(self):
        """Settings should have sensible defaults."""
        from hoyodb.config import Settings
        s = Settings()
        assert isinstance(s.DATABASE_PATH, Path)
        assert s.HOST == "0.0.0.0"
        assert s.PORT == 3000
        assert s.JWT_ALGORITHM == "HS256"
        assert s.JWT_EXPIRE_DAYS == 7
        assert s.WEBDAV_BASE_PATH == "/hoyodb"
        assert s.MAX_UPLOAD_SIZE == 100 * 1024 * 1024

    def test_allowed_upload_types(self):
        from hoyodb.config import Settings
        s = Settings()
        assert "image/jpeg" in s.ALLOWED_UPLOAD_TYPES
        assert "audio/mpeg" in s.ALLOWED_UPLOAD_TYPES
        assert "video/mp4" in s.ALLOWED_UPLOAD_TYPES
        assert "application/x-msdownload" not in s.ALLOWED_UPLOAD_TYPES

    def test_env_prefix(self):
        """Settings should use HOYODB_ env prefix."""
        from hoyodb.config import Settings
        assert Settings.model_config["env_prefix"] == "HOYODB_"

    def test_env_override(self, monkeypatch):
        from hoyodb.config import Settings
        monkeypatch.setenv("HOYODB_WEBDAV_URL", "http://nas.local:5244/dav")
        monkeypatch.setenv("HOYODB_JWT_EXPIRE_DAYS", "1")
        s = Settings()
        assert s.WEBDAV_URL == "http://nas.local:5244/dav"
        assert s.JWT_EXPIRE_DAYS == 1
