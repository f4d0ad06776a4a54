from app.core.config import Settings


def test_defaults_point_at_local_services(monkeypatch):
    for key in ("DB_URL", "INFERENCE_BASE_URL", "INFERENCE_MODEL", "INFERENCE_TIMEOUT", "API_PREFIX"):
        monkeypatch.delenv(key, raising=False)
    settings = Settings(_env_file=None)
    assert settings.DB_URL == "sqlite:///./chat.db"
    assert settings.INFERENCE_BASE_URL == "http://127.0.0.1:11434"
    assert settings.INFERENCE_MODEL == "gemma3:1b"
    assert settings.INFERENCE_TIMEOUT is None
    assert settings.API_PREFIX == "/api"
    assert settings.TITLE_MAX_LEN == 30
    assert settings.DEFAULT_CHAT_TITLE == "New Chat"


def test_cors_origins_accept_comma_separated_values(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")
    assert Settings(_env_file=None).CORS_ORIGINS == ["http://a.test", "http://b.test"]
    monkeypatch.setenv("CORS_ORIGINS", "*")
    assert Settings(_env_file=None).CORS_ORIGINS == ["*"]


def test_inference_timeout_parses_none_and_numbers(monkeypatch):
    monkeypatch.setenv("INFERENCE_TIMEOUT", "none")
    assert Settings(_env_file=None).INFERENCE_TIMEOUT is None
    monkeypatch.setenv("INFERENCE_TIMEOUT", "120")
    assert Settings(_env_file=None).INFERENCE_TIMEOUT == 120.0
