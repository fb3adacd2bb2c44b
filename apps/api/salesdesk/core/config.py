from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "SalesDesk API"
    app_env: str = "local"
    app_debug: bool = True
    api_port: int = 8000
    database_url: str = "sqlite+pysqlite:///./salesdesk.db"
    jwt_secret: str = "replace-me"
    jwt_algorithm: str = "HS256"
    # IANA name; its midnight separates "today" from "overdue"
    business_timezone: str = "UTC"
    requirement_window_days: int = 30
    auto_create_stage_tasks: bool = True
    metrics_enabled: bool = False
    otel_enabled: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    @field_validator("business_timezone")
    @classmethod
    def validate_business_timezone(cls, value: str) -> str:
        if value.upper() == "UTC":
            return "UTC"
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown business timezone: {value}") from exc
        return value

    @field_validator("requirement_window_days")
    @classmethod
    def validate_requirement_window(cls, value: int) -> int:
        if value < 1:
            raise ValueError("requirement_window_days must be at least 1")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
