"""
Application Configuration.

Pydantic Settings model for the identity-link service.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed; the
identity linker never reads process state on its own.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional, Union

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase (remote user store) ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")

    # --- Local SQLite store / cache ---
    SQLITE_PATH: Path = Path("identity_link_local.db")

    # --- GitHub OAuth strategy (handshake is performed by the strategy) ---
    GITHUB_CLIENT_ID: str = ""
    GITHUB_CLIENT_SECRET: SecretStr = SecretStr("")
    GITHUB_CALLBACK_URL: str = ""
    GITHUB_SCOPES: list[str] = Field(default_factory=lambda: ["user:email"])

    # --- Email consent ---
    EMAIL_CONSENT_VERSION: str = "v1"
    EMAIL_CONSENT_SESSION_KEY: str = "emailConsent"

    # --- Request context ---
    FORWARDED_FOR_HEADER: str = "X-Forwarded-For"

    # --- Logging ---
    LOG_FILE: str = "identity_link.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when critical configuration is empty.

        Pydantic silently falls back to defaults when ``.env`` is missing.
        This validator logs a warning so operators know the service is
        running with placeholder values.
        """
        _log = logging.getLogger("identity_link.config")

        if not self.SUPABASE_URL:
            _log.warning(
                "SUPABASE_URL is empty; the local SQLite database is "
                "the authoritative user store."
            )

        if not self.GITHUB_CLIENT_ID or not self.GITHUB_CLIENT_SECRET.get_secret_value():
            _log.warning(
                "GITHUB_CLIENT_ID / GITHUB_CLIENT_SECRET are empty; the "
                "GitHub strategy cannot complete a handshake."
            )

        return self

    def github_strategy_options(self) -> dict[str, Union[str, bool, list[str]]]:
        """Options handed to the external GitHub OAuth strategy.

        ``pass_req_to_callback`` is always on: the verify callback needs
        the request context to evaluate email consent.

        Raises:
            ValueError: If the client credentials or callback URL are missing.
        """
        if not self.GITHUB_CLIENT_ID or not self.GITHUB_CLIENT_SECRET.get_secret_value():
            raise ValueError("GITHUB_CLIENT_ID and GITHUB_CLIENT_SECRET must be set")
        if not self.GITHUB_CALLBACK_URL:
            raise ValueError("GITHUB_CALLBACK_URL must be set")

        return {
            "client_id": self.GITHUB_CLIENT_ID,
            "client_secret": self.GITHUB_CLIENT_SECRET.get_secret_value(),
            "callback_url": self.GITHUB_CALLBACK_URL,
            "scope": list(self.GITHUB_SCOPES),
            "pass_req_to_callback": True,
        }


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    Only composition roots should call this.  Services receive their
    ``AppConfig`` through the constructor.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
