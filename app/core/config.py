from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Reserva API"
    ENVIRONMENT: str = "development"
    DATABASE_URL: str = "sqlite:///./reserva.db"
    SECRET_KEY: str = "supersecretkey_change_me_in_production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7 # 1 week

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # Notifications
    NOTIFICATION_PAGE_SIZE: int = 50

    # Reservations
    ORPHAN_GRACE_SECONDS: int = 300
    # When true, administrators may set any status regardless of the transition table
    RESERVATION_ADMIN_OVERRIDE: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
