"""Application configuration pulled from environment variables via pydantic."""
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from readme_pulse.data_sources.wakatime_client import TimeRange
from readme_pulse.errors import ConfigError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="config")


class Settings(BaseSettings):
    """Environment-driven configuration for the README updater."""
    model_config = SettingsConfigDict(env_prefix="PULSE_", env_file=".env", extra="ignore")

    readme_path: str = "README.md"
    log_level: str = "INFO"
    max_workers: int = Field(default=4, ge=1)
    cache_ttl_seconds: int = Field(default=300, ge=0)
    api_key: Optional[str] = None  # guards the HTTP trigger

    openweather_api_key: Optional[str] = None
    openweather_units: str = "metric"  # options: metric, imperial, standard
    weather_section_name: str = "weather"
    weather_timeout_seconds: float = 10

    wakatime_api_key: Optional[str] = None
    wakatime_section_name: str = "waka"
    wakatime_time_range: TimeRange = TimeRange.LAST_7_DAYS
    wakatime_timeout_seconds: float = 30
    wakatime_blocks: str = "░▒▓█"
    wakatime_code_lang: str = "txt"
    wakatime_lang_count: int = Field(default=0, ge=0)
    wakatime_show_title: bool = True
    wakatime_show_time: bool = True
    wakatime_show_total: bool = True
    wakatime_show_masked_time: bool = False
    wakatime_stop_at_other: bool = False
    wakatime_ignored_languages: str = ""  # whitespace separated, case-sensitive

    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    telegram_parse_mode: str = "HTML"
    telegram_retry_attempts: int = Field(default=3, ge=0)
    telegram_retry_delay_seconds: float = Field(default=1.0, ge=0)
    telegram_timeout_seconds: float = 10

    @field_validator(
        "api_key",
        "openweather_api_key",
        "wakatime_api_key",
        "telegram_bot_token",
        "telegram_chat_id",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v):
        """Treat empty or whitespace-only secrets as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @field_validator("openweather_units", mode="after")
    @classmethod
    def check_units(cls, v: str) -> str:
        """Only the unit systems OpenWeatherMap understands."""
        lowered = v.lower()
        if lowered not in {"metric", "imperial", "standard"}:
            raise ValueError(f"Unsupported units '{v}'")
        return lowered

    @field_validator("weather_section_name", "wakatime_section_name", mode="after")
    @classmethod
    def check_section_name(cls, v: str) -> str:
        """Section names end up inside HTML comments; keep them simple."""
        v = v.strip()
        if not v or ":" in v or "-->" in v:
            raise ValueError(f"Invalid section name '{v}'")
        return v

    @property
    def ignored_languages(self) -> frozenset[str]:
        return frozenset(self.wakatime_ignored_languages.split())

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)


def load_settings() -> Settings:
    """Build Settings from the environment, mapping validation failures to ConfigError."""
    try:
        return Settings()
    except ValueError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def require_credentials(settings: Settings) -> None:
    """Fail at startup when nothing is configured or a notifier is half configured."""
    if not settings.openweather_api_key and not settings.wakatime_api_key:
        raise ConfigError(
            "No metrics provider configured: set PULSE_OPENWEATHER_API_KEY and/or PULSE_WAKATIME_API_KEY"
        )
    if bool(settings.telegram_bot_token) != bool(settings.telegram_chat_id):
        raise ConfigError("PULSE_TELEGRAM_BOT_TOKEN and PULSE_TELEGRAM_CHAT_ID must be set together")


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, loaded on first use so a bad environment surfaces as ConfigError."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


if __name__ == "__main__":
    logger.setLevel("DEBUG")
    logger.debug(f"Loaded settings: {get_settings().model_dump_json(indent=4, exclude={'api_key', 'openweather_api_key', 'wakatime_api_key', 'telegram_bot_token'})}")
