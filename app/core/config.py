from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PROJECT_NAME = "Local Chat API"
DEFAULT_API_PREFIX = "/api"
DEFAULT_DB_URL = "sqlite:///./chat.db"
DEFAULT_INFERENCE_BASE_URL = "http://127.0.0.1:11434"
DEFAULT_INFERENCE_MODEL = "gemma3:1b"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    PROJECT_NAME: str = DEFAULT_PROJECT_NAME
    API_PREFIX: str = DEFAULT_API_PREFIX
    ENV: str = 'development'
    DEBUG: bool = False

    DB_URL: str = DEFAULT_DB_URL
    LOG_LEVEL: str = 'INFO'
    LOG_JSON: bool = False
    CORS_ORIGINS: list[str] = [
        'http://localhost:3000',
        'http://127.0.0.1:3000',
    ]

    DEFAULT_CHAT_TITLE: str = 'New Chat'
    TITLE_MAX_LEN: int = 30

    INFERENCE_BASE_URL: str = DEFAULT_INFERENCE_BASE_URL
    INFERENCE_MODEL: str = DEFAULT_INFERENCE_MODEL
    # None disables the read timeout; a generation may run until the model finishes.
    INFERENCE_TIMEOUT: Optional[float] = None
    INFERENCE_CONNECT_TIMEOUT: float = 10.0

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, value):  # type: ignore[override]
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return []
            if value == '*':
                return ['*']
            return [item.strip() for item in value.split(',') if item.strip()]
        return value

    @field_validator('INFERENCE_TIMEOUT', mode='before')
    @classmethod
    def parse_inference_timeout(cls, value):  # type: ignore[override]
        if isinstance(value, str) and value.strip().lower() in {'', 'none', 'null'}:
            return None
        return value


settings = Settings()
