# Application settings.
# Created: 2026-10-06
#
# Loaded from AXIOM_* environment variables and an optional .env file.

from __future__ import annotations

import secrets
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Authorization server settings."""

    model_config = SettingsConfigDict(
        env_prefix="AXIOM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8090, description="Bind port")
    public_url: str = Field(
        default="http://localhost:8090",
        description="Base URL advertised when request headers do not reveal one",
    )
    app_url: str = Field(
        default="http://localhost:3000",
        description="Front-end origin hosting the interactive consent screen",
    )

    # Storage
    data_dir: Path = Field(default=Path.home() / ".axiom", description="State directory")
    storage_backend: Literal["sqlite", "memory"] = Field(default="sqlite")

    # Auth
    auth_token_secret: str | None = Field(
        default=None,
        description="Shared secret mixed with each user's token_key to sign session "
        "tokens. Generated and stored in data_dir when unset.",
    )
    allow_unknown_clients: bool = Field(
        default=True,
        description="Accept client_ids that were never registered (legacy clients)",
    )
    code_ttl_seconds: int = Field(default=600, ge=1)
    access_token_ttl_days: int = Field(default=90, ge=1)

    # Resource-server side validation
    validate_timeout_seconds: float = Field(default=5.0, gt=0)

    # Rate limiting on OAuth endpoints (per client IP)
    auth_rate_per_second: float = Field(default=1.0, gt=0)
    auth_rate_burst: int = Field(default=10, ge=1)
    auth_rate_max_clients: int = Field(default=10_000, ge=1)

    log_level: str = Field(default="INFO")

    @classmethod
    def load(cls) -> Settings:
        return get_settings()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def get_config_dir() -> Path:
    path = get_settings().data_dir
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_auth_token_secret(settings: Settings | None = None) -> str:
    """Return the session-token signing secret, creating one on first use."""
    settings = settings or get_settings()
    if settings.auth_token_secret:
        return settings.auth_token_secret

    path = settings.data_dir / "auth_secret"
    if path.exists():
        return path.read_text().strip()

    secret = secrets.token_urlsafe(32)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(secret)
    try:
        path.chmod(0o600)
    except OSError:
        pass
    return secret
