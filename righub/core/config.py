from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


# 프로젝트 루트 기준 BASE_DIR
BASE_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    # 기본 앱 설정
    app_name: str = "RigHub"
    app_env: str = "dev"
    log_level: str = "INFO"

    # 보안 / JWT / DB
    secret_key: str
    algorithm: str = "HS256"
    database_url: str = f"sqlite:///{BASE_DIR / 'righub.db'}"

    # reservation expiry cron
    cron_secret: str | None = None
    default_reservation_hours: int = 72
    reservation_sweep_interval_seconds: int = 0

    # restrict / cascade / soft_delete
    user_delete_policy: Literal["restrict", "cascade", "soft_delete"] = "restrict"

    # media limits
    max_media_per_listing: int = 5
    image_max_bytes: int = 10 * 1024 * 1024
    video_max_bytes: int = 100 * 1024 * 1024
    document_max_bytes: int = 5 * 1024 * 1024

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
