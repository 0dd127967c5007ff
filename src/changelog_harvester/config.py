from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, ValidationError, model_validator
from functools import lru_cache
from typing import List

from .errors import ConfigurationError


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    SLACK_BOT_TOKEN: str = Field(..., description="Slack Bot User OAuth Token")
    SLACK_CHANNEL_ID: str = Field(..., description="Channel ID to harvest releases from")
    LLM_API_KEY: str = Field(..., description="API key for the chat completions endpoint")

    SLACK_SIGNING_SECRET: str = Field("", description="Signing secret for the Events API webhook")
    SLACK_APP_TOKEN: str = Field("", description="App-Level Token (Socket Mode only)")
    SLACK_NOTIFY_CHANNEL_ID: str = Field("", description="Channel that receives new-release announcements")
    APP_URL: str = "https://changenotes.vercel.app"

    LLM_BASE_URL: str = "https://openrouter.ai/api/v1"
    LLM_MODEL: str = "anthropic/claude-sonnet-4"
    LLM_TIMEOUT_SECONDS: float = 60.0
    LLM_HTTP_REFERER: str = "https://changenotes.vercel.app"
    LLM_APP_TITLE: str = "Changelog Harvester"
    CLASSIFY_MAX_TOKENS: int = 1024
    EXTRACT_MAX_TOKENS: int = 4096
    CLASSIFY_PREVIEW_CHARS: int = 300

    # Prompt management
    LANGFUSE_PUBLIC_KEY: str = ""
    LANGFUSE_SECRET_KEY: str = ""
    LANGFUSE_HOST: str = "https://cloud.langfuse.com"
    PROMPT_LABEL: str = "production"
    PROMPTS_DIR: str = "data/prompts"
    EXTRACTION_PROMPT_NAME: str = "release-extraction"
    CLASSIFICATION_PROMPT_NAME: str = "release-classification"

    DB_PATH: str = Field("./db.sqlite", description="Path to SQLite database")
    LOG_LEVEL: str = "INFO"

    # Sender denylist (comma-separated). Names match as case-insensitive substrings.
    EXCLUDED_SENDER_IDS: str = ""
    EXCLUDED_APP_IDS: str = ""
    EXCLUDED_SENDER_NAMES: str = ""

    SYNC_LOOKBACK_HOURS: int = 24
    MANUAL_SYNC_DAYS: int = 7
    NOTIFY_MAX_ITEMS: int = 10
    HYDRATION_WORKERS: int = 8
    CRON_SECRET: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @model_validator(mode="after")
    def check_notify_channel(self) -> "Settings":
        if self.SLACK_NOTIFY_CHANNEL_ID and self.SLACK_NOTIFY_CHANNEL_ID == self.SLACK_CHANNEL_ID:
            raise ValueError("SLACK_NOTIFY_CHANNEL_ID must differ from SLACK_CHANNEL_ID")
        return self

    @property
    def excluded_sender_ids(self) -> List[str]:
        return _split_csv(self.EXCLUDED_SENDER_IDS)

    @property
    def excluded_app_ids(self) -> List[str]:
        return _split_csv(self.EXCLUDED_APP_IDS)

    @property
    def excluded_sender_names(self) -> List[str]:
        return [name.lower() for name in _split_csv(self.EXCLUDED_SENDER_NAMES)]

    @property
    def langfuse_enabled(self) -> bool:
        return bool(self.LANGFUSE_PUBLIC_KEY and self.LANGFUSE_SECRET_KEY)


def load_settings(**overrides) -> Settings:
    """
    Build and validate settings in one go.
    Every missing required key is reported in a single ConfigurationError.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        missing = []
        problems = []
        for err in e.errors():
            field = ".".join(str(part) for part in err["loc"]) or "settings"
            if err["type"] == "missing":
                missing.append(field)
            else:
                problems.append(f"{field}: {err['msg']}")
        parts = []
        if missing:
            parts.append("Missing required configuration: " + ", ".join(missing))
        parts.extend(problems)
        raise ConfigurationError("; ".join(parts), missing=missing) from e


@lru_cache()
def get_settings() -> Settings:
    return load_settings()
