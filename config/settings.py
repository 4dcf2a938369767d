"""Centralized configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_WEBHOOK_URL = "http://localhost:5678/webhook/whatsapp-gateway"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==================== Webhook Relay ====================
    webhook_url: str = Field(
        default=DEFAULT_WEBHOOK_URL,
        validation_alias=AliasChoices("webhook_url", "WEBHOOK_URL", "N8N_WEBHOOK_URL"),
    )
    webhook_timeout: float = 10.0

    # ==================== Session ====================
    session_root: str = "./whatsapp-session"
    session_erase_attempts: int = 5
    session_erase_backoff: float = 1.0
    reconnect_delay: float = 3.0
    erase_session_on_disconnect: bool = True

    # ==================== Messaging ====================
    messaging_driver: str = ""
    reply_segment_interval: float = 1.0
    subscriber_send_timeout: float = 5.0
    max_chats: int = 20

    # ==================== Server ====================
    host: str = "0.0.0.0"
    port: int = 3000
    log_file: str = "server.log"
    log_level: str = "INFO"

    @field_validator(
        "webhook_timeout",
        "session_erase_attempts",
        "session_erase_backoff",
        "reconnect_delay",
        "reply_segment_interval",
        "subscriber_send_timeout",
        "max_chats",
        "port",
        mode="before",
    )
    @classmethod
    def parse_optional_float(cls, v, info):
        if v == "":
            return cls.model_fields[info.field_name].default
        return v

    @field_validator("session_erase_attempts")
    @classmethod
    def positive_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("session_erase_attempts must be >= 1")
        return v

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
