from pydantic_settings import BaseSettings
from pydantic import validator
from typing import Optional


class Settings(BaseSettings):
    # Application settings
    APP_NAME: str = "Academic Records"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Database settings
    DATABASE_URL: str = "sqlite:///./academic_records.db"
    DATABASE_ECHO: bool = False
    # Unset keeps the driver default; "READ COMMITTED" is the practical minimum on PostgreSQL
    DATABASE_ISOLATION_LEVEL: Optional[str] = None

    # Batch consistency
    LOCK_ENROLLMENTS: bool = True
    AUDIT_ENABLED: bool = True

    @validator("DATABASE_URL")
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        return v

    @validator("LOG_LEVEL")
    def normalize_log_level(cls, v):
        return v.upper()

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
