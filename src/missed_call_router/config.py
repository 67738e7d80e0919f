from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, Field

DEFAULT_PROFILES_TABLE = "Electricians List"
DEFAULT_LOG_TABLE = "Missed Calls Log"


def _env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    # --- Airtable (record store) ---
    # AIRTABLE_API_KEY is the legacy name for the personal access token.
    airtable_token: str | None = Field(
        default_factory=lambda: _env("AIRTABLE_TOKEN") or _env("AIRTABLE_API_KEY")
    )
    airtable_base_id: str | None = Field(default_factory=lambda: _env("AIRTABLE_BASE_ID"))
    airtable_profiles_table: str = Field(
        default_factory=lambda: _env("AIRTABLE_ELECTRICIANS_TABLE", DEFAULT_PROFILES_TABLE)
    )
    airtable_log_table: str = Field(
        default_factory=lambda: _env("AIRTABLE_LOG_TABLE", DEFAULT_LOG_TABLE)
    )

    # --- Twilio (messaging gateway) ---
    twilio_account_sid: str | None = Field(default_factory=lambda: _env("TWILIO_ACCOUNT_SID"))
    twilio_auth_token: str | None = Field(default_factory=lambda: _env("TWILIO_AUTH_TOKEN"))
    template_sid: str | None = Field(default_factory=lambda: _env("TEMPLATE_SID"))
    whatsapp_from: str | None = Field(default_factory=lambda: _env("WHATSAPP_FROM"))

    # Public URL Twilio posts to; signatures are computed over it.
    twilio_webhook_url: str | None = Field(default_factory=lambda: _env("TWILIO_WEBHOOK_URL"))
    twilio_validate_signature: bool = Field(
        default_factory=lambda: _env_bool("TWILIO_VALIDATE_SIGNATURE", True)
    )

    admin_token: str | None = Field(default_factory=lambda: _env("ADMIN_TOKEN"))

    http_timeout_seconds: float = Field(
        default_factory=lambda: float(_env("HTTP_TIMEOUT_SECONDS", "15") or 15)
    )
    port: int = Field(default_factory=lambda: int(_env("PORT", "3000") or 3000))
    log_level: str = Field(default_factory=lambda: _env("LOG_LEVEL", "INFO") or "INFO")

    @property
    def airtable_configured(self) -> bool:
        return bool(self.airtable_token and self.airtable_base_id)


@lru_cache
def get_settings() -> Settings:
    return Settings()
