# teamtrack/core/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator

class Settings(BaseSettings):
    """
    Основные переменные окружения и настройки ядра TeamTrack.
    Все значения можно переопределить через .env.
    """
    # Database (документное хранилище и учётные данные)
    DATABASE_URL: str = "sqlite:///./teamtrack.db"

    # JWT / Security
    SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Аватар по умолчанию для нового профиля ({member_id} подставляется)
    AVATAR_URL_TEMPLATE: str = "https://picsum.photos/seed/{member_id}/200/200"

    # Первый Owner (опционально, см. teamtrack/initial_data.py)
    FIRST_OWNER_EMAIL: Optional[str] = None
    FIRST_OWNER_PASSWORD: Optional[str] = None
    FIRST_OWNER_NAME: str = "Workspace Owner"

    # App meta
    ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def upper_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

settings = Settings()
