"""Application configuration using Pydantic Settings v2.

Loads configuration from ``MEMCOOKIES_*`` environment variables with .env
file support. Settings are frozen once constructed: the keys and header
names are shared by every request for the lifetime of the process.
"""

from __future__ import annotations

import functools
import json
from typing import Any

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """memcookies settings.

    Configuration is loaded from environment variables prefixed with
    ``MEMCOOKIES_``. A .env file in the project root is also read if present.
    """

    model_config = SettingsConfigDict(
        env_prefix="MEMCOOKIES_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ── Application ──────────────────────────────────────────────
    app_name: str = "memcookies"
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]

    # ── Keys ─────────────────────────────────────────────────────
    encryption_key: str
    encryption_key_previous: str = ""  # Previous key for rotation
    mac_key: str = ""  # Bundle hash key; falls back to encryption_key

    # ── Transport ────────────────────────────────────────────────
    header_name: str = "x-cookies"
    hash_header_name: str = ""  # Defaults to "{header_name}-hash"
    metadata_field: str = "_cookies"

    # ── Policy ───────────────────────────────────────────────────
    max_cookie_age_seconds: int = 20 * 60
    bind_user_agent: bool = True

    @property
    def bundle_hash_key(self) -> str:
        """Key used for the whole-bundle HMAC."""
        return self.mac_key or self.encryption_key

    @field_validator("encryption_key")
    @classmethod
    def require_encryption_key(cls, v: str) -> str:
        if not v:
            raise ValueError("encryption_key must not be empty")
        return v

    @field_validator("header_name", "hash_header_name")
    @classmethod
    def normalize_header(cls, v: str) -> str:
        """Header names are compared lower-case, as ASGI delivers them."""
        return v.strip().lower()

    @field_validator("max_cookie_age_seconds")
    @classmethod
    def positive_age(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("max_cookie_age_seconds must be positive")
        return v

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        """Parse CORS origins from JSON string or list."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return [str(item) for item in parsed]
            except (json.JSONDecodeError, TypeError):
                return [origin.strip() for origin in v.split(",")]
        if isinstance(v, list):
            return [str(item) for item in v]
        return ["http://localhost:3000"]

    @model_validator(mode="after")
    def derive_hash_header(self) -> Settings:
        """Build hash_header_name from header_name if not set."""
        if not self.hash_header_name:
            # frozen models reject attribute assignment
            object.__setattr__(self, "hash_header_name", f"{self.header_name}-hash")
        return self


@functools.lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""
    return Settings()  # type: ignore[call-arg]
