# smartcare/config.py - Environment-driven configuration
from dotenv import load_dotenv

load_dotenv()
from typing import Optional, Union
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Application settings with validation and environment variable support (Pydantic V2 Syntax)"""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Application
    app_name: str = "Smart Care Appointment Service"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    json_logs: bool = Field(default=True, alias="JSON_LOGS")

    # Database
    database_url: str = Field(default="sqlite:///./smartcare.db", alias="DATABASE_URL")

    # Security
    secret_key: str = Field(default="smartcare-development-secret-key-change-me", alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # CORS
    cors_origins: Union[str, list[str]] = Field(default=["http://localhost:3000"], alias="CORS_ORIGINS")

    # Clinic calendar
    clinic_timezone: str = Field(default="UTC", alias="CLINIC_TIMEZONE")

    # Email (SendGrid)
    sendgrid_api_key: Optional[str] = Field(default=None, alias="SENDGRID_API_KEY")
    sender_email: str = Field(default="noreply@smartcare.health", alias="SENDER_EMAIL")

    # Push (Firebase Cloud Messaging)
    firebase_credentials_file: Optional[str] = Field(default=None, alias="FIREBASE_CREDENTIALS_FILE")
    push_icon: str = Field(default="/SmartCare.png", alias="PUSH_ICON")

    # In-app notifications
    recent_notifications_limit: int = Field(default=10, alias="RECENT_NOTIFICATIONS_LIMIT")

    @field_validator("cors_origins", mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            if not v.strip():
                return ["http://localhost:3000"]
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        if not v.startswith(("postgresql://", "postgresql+psycopg2://", "sqlite://")):
            raise ValueError("DATABASE_URL must be a valid PostgreSQL or SQLite URL")
        return v

    @field_validator("secret_key")
    @classmethod
    def validate_key_length(cls, v):
        if not v or len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    @field_validator("recent_notifications_limit")
    @classmethod
    def validate_recent_limit(cls, v):
        if v < 1:
            raise ValueError("RECENT_NOTIFICATIONS_LIMIT must be positive")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def email_enabled(self) -> bool:
        return bool(self.sendgrid_api_key)

    @property
    def push_enabled(self) -> bool:
        return bool(self.firebase_credentials_file)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
