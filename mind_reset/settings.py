from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = Path(__file__).resolve().parents[1]
ENV_FILES = [PROJECT_ROOT / ".env", ".env"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=ENV_FILES, extra="ignore")

    # DB
    DATABASE_URL: str = "sqlite:///./data/mind_reset.db"

    # App
    TZ: str = "UTC"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # API
    API_KEY: str | None = None

    # Day schedule defaults
    DEFAULT_WAKE_UP: str = "07:00"
    DEFAULT_SLEEP: str = "22:00"
    DEFAULT_PRIORITY_TITLE: str = "What matters most today"

    # Points
    DAILY_COMPLETION_POINT: int = 1
    WEEKLY_STREAK_BONUS: int = 10
    MONTHLY_STREAK_BONUS: int = 50
    YEARLY_STREAK_BONUS: int = 100


settings = Settings()
