import pytest

from onescheduler.config.settings import Settings, get_settings
from onescheduler.exceptions import ConfigError


@pytest.mark.unit
class TestSettings:
    def test_default_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SECRET_KEY", "test-secret")
        settings = Settings()
        assert settings.debug is False
        assert settings.use_database is False
        assert settings.log_level == "INFO"
        assert settings.session_cookie == "session"
        assert settings.device_cookie == "device_id"
        assert settings.setup_redirect_delay_seconds == 5
        assert "postgresql" in settings.database_url

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://user:pass@db:5432/mydb")
        monkeypatch.setenv("SECRET_KEY", "my-secret")
        monkeypatch.setenv("DEBUG", "true")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("NAME_CHECK_MIN_INTERVAL_SECONDS", "1.5")
        settings = Settings()
        assert settings.debug is True
        assert settings.log_level == "DEBUG"
        assert settings.name_check_min_interval_seconds == 1.5
        assert settings.database_url.endswith("/mydb")

    def test_identity_url_optional(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SECRET_KEY", "test-secret")
        settings = Settings()
        assert settings.identity_url is None
        assert settings.oauth_providers == ["google"]


@pytest.mark.unit
class TestGetSettings:
    @pytest.fixture(autouse=True)
    def _clear_cache(self):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SECRET_KEY", "test-secret")
        assert get_settings() is get_settings()

    def test_insecure_secret_warns(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SECRET_KEY", raising=False)
        with pytest.warns(UserWarning, match="SECRET_KEY"):
            get_settings()

    def test_non_positive_session_age_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SECRET_KEY", "test-secret")
        monkeypatch.setenv("SESSION_MAX_AGE", "0")
        with pytest.raises(ConfigError):
            get_settings()

    def test_password_hash_rounds_bounds(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SECRET_KEY", "test-secret")
        monkeypatch.setenv("PASSWORD_HASH_ROUNDS", "3")
        with pytest.raises(ConfigError, match="PASSWORD_HASH_ROUNDS"):
            get_settings()

    def test_negative_delay_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SECRET_KEY", "test-secret")
        monkeypatch.setenv("SETUP_REDIRECT_DELAY_SECONDS", "-1")
        with pytest.raises(ConfigError):
            get_settings()
