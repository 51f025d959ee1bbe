"""Application configuration via environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

log = logging.getLogger("slotbook.config")


class Settings(BaseSettings):
    # Google Calendar (OAuth web client used for token refresh)
    google_client_id: str = ""
    google_client_secret: str = ""
    google_token_url: str = "https://oauth2.googleapis.com/token"
    calendar_timezone: str = "America/Chicago"

    # Gateway behaviour
    token_refresh_margin_seconds: int = 300
    gateway_timeout_seconds: float = 10.0

    # Reconciliation
    reconcile_lookahead_days: int = 60
    notification_address: str = ""

    # Admin auth (owner actions)
    admin_api_key: str = ""

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []
        _placeholders = {"your-client-id", "your-client-secret", "changeme"}

        if self.gateway_timeout_seconds <= 0:
            raise ValueError("GATEWAY_TIMEOUT_SECONDS must be positive.")
        if self.token_refresh_margin_seconds < 0:
            raise ValueError("TOKEN_REFRESH_MARGIN_SECONDS cannot be negative.")

        # Admin API key: warn if unset
        if not self.admin_api_key:
            if self.debug:
                warnings.append(
                    "ADMIN_API_KEY not set. Owner actions are open (DEBUG=true)."
                )
            else:
                warnings.append(
                    "ADMIN_API_KEY not set. Owner actions are locked in production. "
                    "Set ADMIN_API_KEY in .env to enable approvals."
                )

        if (
            not self.google_client_id
            or self.google_client_id in _placeholders
            or self.google_client_secret in _placeholders
        ):
            warnings.append(
                "GOOGLE_CLIENT_ID/SECRET missing or placeholder: expired calendar "
                "tokens cannot be refreshed."
            )

        if not self.notification_address:
            warnings.append(
                "NOTIFICATION_ADDRESS not set: calendar push channels will not be registered."
            )

        return warnings


settings = Settings()
