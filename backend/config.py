"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Mod signer dashboard settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    secret_key: str = "change-me-in-production"
    debug: bool = False
    expose_docs: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///data/db/modsigner.db"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # CORS
    cors_origins: list[str] = Field(default_factory=list)

    # Auth
    access_token_expire_minutes: int = Field(default=60, ge=1)
    auth_self_registration: bool = True
    auth_login_max_failures: int = Field(default=5, ge=1)
    auth_rate_limit_window_seconds: int = Field(default=300, ge=1)

    # Admin bootstrap
    admin_email: str = "admin@localhost"
    admin_password: str = "admin"
    admin_nickname: str = "admin"

    # mod.io catalog
    modio_base_url: str = "https://g-5.modapi.io/v1"
    modio_api_key: str | None = None
    modio_oauth_token: str | None = None
    modio_game_id: int = 5
    modio_request_timeout: float = Field(default=10.0, gt=0)
    modio_page_size: int = Field(default=100, ge=1, le=100)

    # Sync scheduling
    sync_enabled: bool = True
    sync_interval_minutes: int = Field(default=30, ge=1)
    sync_startup_delay_seconds: int = Field(default=5, ge=0)

    def validate_runtime_security(self) -> None:
        """Validate security-critical production settings."""
        if self.debug:
            return

        violations: list[str] = []
        if self.secret_key == "change-me-in-production" or len(self.secret_key) < 32:
            violations.append(
                "SECRET_KEY must be overridden with a high-entropy value (>=32 chars)"
            )
        if self.admin_password == "admin" or len(self.admin_password) < 12:
            violations.append("ADMIN_PASSWORD must be overridden with a strong value (>=12 chars)")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Insecure production configuration: {joined}")
