"""Tests for owner-endpoint authentication."""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from slotbook.auth import require_admin_token
from slotbook.config import Settings
from slotbook.lifecycle import redact_pii


# ── Fixture: mock settings for auth tests ──────────────────────────

class FakeSettings:
    def __init__(self, admin_api_key="", debug=False):
        self.admin_api_key = admin_api_key
        self.debug = debug


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


# ── Tests: Auth logic ──────────────────────────────────────────────

class TestRequireAdminToken:
    """Test the require_admin_token dependency directly."""

    async def test_rejects_no_token_when_key_set(self, monkeypatch):
        monkeypatch.setattr("slotbook.auth.settings", FakeSettings(admin_api_key="secret"))
        with pytest.raises(HTTPException) as exc_info:
            await require_admin_token(credentials=None)
        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}

    async def test_rejects_wrong_token(self, monkeypatch):
        monkeypatch.setattr("slotbook.auth.settings", FakeSettings(admin_api_key="secret"))
        with pytest.raises(HTTPException) as exc_info:
            await require_admin_token(credentials=bearer("wrong"))
        assert exc_info.value.status_code == 401

    async def test_allows_correct_token(self, monkeypatch):
        monkeypatch.setattr("slotbook.auth.settings", FakeSettings(admin_api_key="secret"))
        # Should not raise
        await require_admin_token(credentials=bearer("secret"))

    async def test_key_set_ignores_debug(self, monkeypatch):
        monkeypatch.setattr(
            "slotbook.auth.settings", FakeSettings(admin_api_key="secret", debug=True)
        )
        with pytest.raises(HTTPException) as exc_info:
            await require_admin_token(credentials=None)
        assert exc_info.value.status_code == 401

    async def test_allows_no_key_debug_mode(self, monkeypatch):
        monkeypatch.setattr("slotbook.auth.settings", FakeSettings(admin_api_key="", debug=True))
        # No key + debug = allow without any credentials
        await require_admin_token(credentials=None)

    async def test_rejects_no_key_production(self, monkeypatch):
        monkeypatch.setattr("slotbook.auth.settings", FakeSettings(admin_api_key="", debug=False))
        with pytest.raises(HTTPException) as exc_info:
            await require_admin_token(credentials=None)
        assert exc_info.value.status_code == 403


# ── Tests: Startup validation ─────────────────────────────────────

class TestStartupValidation:
    def test_warns_without_admin_key(self):
        warnings = Settings(admin_api_key="", debug=False).validate_startup()
        assert any("ADMIN_API_KEY" in w for w in warnings)

    def test_warns_on_placeholder_client(self):
        warnings = Settings(google_client_id="your-client-id").validate_startup()
        assert any("GOOGLE_CLIENT_ID" in w for w in warnings)

    def test_clean_configuration(self):
        warnings = Settings(
            admin_api_key="secret",
            google_client_id="client",
            google_client_secret="shh",
            notification_address="https://example.com/calendar/notifications",
        ).validate_startup()
        assert warnings == []

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            Settings(gateway_timeout_seconds=0).validate_startup()

    def test_rejects_negative_margin(self):
        with pytest.raises(ValueError):
            Settings(token_refresh_margin_seconds=-1).validate_startup()


# ── Tests: PII redaction ──────────────────────────────────────────

class TestPiiRedaction:
    """redact_pii masks sensitive data for logging."""

    def test_redacts_email(self):
        assert redact_pii("user@example.com") == "use***om"

    def test_redacts_short_value(self):
        assert redact_pii("abc") == "***"

    def test_redacts_empty(self):
        assert redact_pii("") == "***"
