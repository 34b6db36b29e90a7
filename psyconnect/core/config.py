import os
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PSYCHIATRISTS_FILE = os.path.join(os.path.dirname(__file__), "..", "data", "psychiatrists.yaml")

class Settings(BaseSettings):
    APP_ENV: str = "dev"
    API_VERSION: str = "v1.3.0"
    DATABASE_URL: str = "sqlite:///./psyconnect.db"
    LOG_LEVEL: str = "INFO"

    # session tokens handed to the chat client; subject is the session id
    SESSION_TOKEN_ISSUER: str = "psyconnect"
    SESSION_TOKEN_AUDIENCE: str = "psyconnect-web"
    SESSION_TOKEN_TTL_SECONDS: int = 4 * 3600
    SESSION_SECRET: str = "change_me_super_secret"

    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_TIMEOUT_SECONDS: int = 25

    CHAT_TEMPERATURE: float = 0.7
    EXTRACTION_TEMPERATURE: float = 0.1
    EXTRACTION_WINDOW_TURNS: int = 6
    HISTORY_WINDOW_TURNS: int = 20

    INTAKE_COMPLETION_THRESHOLD: int = 75
    MATCH_LIMIT: int = 5
    PSYCHIATRISTS_FILE: str = DEFAULT_PSYCHIATRISTS_FILE

    # summaries and bookings are written to the database when enabled
    PERSIST_ARTIFACTS: bool = True

    # Referral email delivery. Without EMAIL_API_URL sends are logged only.
    EMAIL_API_URL: str = ""
    EMAIL_API_KEY: str = ""
    EMAIL_FROM: str = "referrals@psyconnect.local"

    ALLOW_DEV_DEBUG_META: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
