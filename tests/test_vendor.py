"""
Vendor Portal Token Tests
"""

from datetime import datetime, timedelta

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from xtmate_auth.errors import register_exception_handlers
from xtmate_auth.models import VendorRecordModel
from xtmate_auth.vendor import (
    MIN_TOKEN_LENGTH,
    SQLAlchemyVendorStore,
    VendorRecord,
    generate_vendor_token,
    get_token_expiration,
    get_vendor_invite_message,
    get_vendor_login_url,
    is_token_valid,
    require_vendor_auth,
)


async def add_vendor(session_factory, vendor_id="vendor-1", is_active=True):
    async with session_factory() as session:
        async with session.begin():
            session.add(VendorRecordModel(id=vendor_id, organization_id="org-a", name="Acme Drywall", is_active=is_active))


class TestTokens:

    def test_token_is_64_hex_chars(self):
        token = generate_vendor_token()
        assert len(token) == 64
        int(token, 16)

    def test_tokens_are_unique(self):
        assert generate_vendor_token() != generate_vendor_token()

    def test_expiration(self):
        now = datetime(2026, 1, 1)
        assert get_token_expiration(30, now=now) == datetime(2026, 1, 31)

    def test_token_validity(self):
        now = datetime(2026, 1, 1)
        vendor = VendorRecord(id="v", organization_id="o", name="n", token_expires_at=datetime(2026, 1, 2))
        assert is_token_valid(vendor, now=now)
        assert not is_token_valid(vendor, now=datetime(2026, 1, 3))
        assert not is_token_valid(VendorRecord(id="v", organization_id="o", name="n"), now=now)


class TestLinks:

    def test_login_url(self, auth_settings):
        assert get_vendor_login_url("abc", auth_settings) == "https://xtmate-v3.vercel.app/vendor/login?token=abc"

    def test_invite_message(self, auth_settings):
        message = get_vendor_invite_message("Acme Drywall", "123 Main St", "abc", auth_settings)
        assert message["subject"] == "Quote Request: 123 Main St"
        assert "Hello Acme Drywall," in message["body"]
        assert "/vendor/login?token=abc" in message["body"]
        assert "expire in 30 days" in message["body"]


class TestVendorStore:

    @pytest.mark.asyncio
    async def test_issue_and_validate(self, session_factory):
        await add_vendor(session_factory)
        store = SQLAlchemyVendorStore(session_factory)

        token, expires_at = await store.issue_token("vendor-1")
        assert expires_at > datetime.utcnow()

        vendor = await store.get_active_vendor_by_token(token)
        assert vendor.id == "vendor-1"
        assert vendor.name == "Acme Drywall"

    @pytest.mark.asyncio
    async def test_token_lifetime_follows_settings(self, session_factory, auth_settings):
        settings = auth_settings.model_copy(update={"vendor_token_ttl_days": 7})
        await add_vendor(session_factory)
        store = SQLAlchemyVendorStore(session_factory, settings)

        before = datetime.utcnow()
        token, expires_at = await store.issue_token("vendor-1")
        assert before + timedelta(days=7) <= expires_at <= datetime.utcnow() + timedelta(days=7)
        assert "expire in 7 days" in get_vendor_invite_message("Acme Drywall", "123 Main St", token, settings)["body"]

        assert await store.get_active_vendor_by_token(token, now=before + timedelta(days=6)) is not None
        assert await store.get_active_vendor_by_token(token, now=before + timedelta(days=8)) is None

    @pytest.mark.asyncio
    async def test_explicit_lifetime_overrides_settings(self, session_factory, auth_settings):
        await add_vendor(session_factory)
        store = SQLAlchemyVendorStore(session_factory, auth_settings)

        before = datetime.utcnow()
        _, expires_at = await store.issue_token("vendor-1", days=1)
        assert expires_at <= datetime.utcnow() + timedelta(days=1)
        assert expires_at >= before + timedelta(days=1)

    @pytest.mark.asyncio
    async def test_short_token_rejected(self, session_factory):
        store = SQLAlchemyVendorStore(session_factory)
        assert await store.get_active_vendor_by_token("a" * (MIN_TOKEN_LENGTH - 1)) is None
        assert await store.get_active_vendor_by_token("") is None

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self, session_factory):
        await add_vendor(session_factory)
        store = SQLAlchemyVendorStore(session_factory)
        token, _ = await store.issue_token("vendor-1", days=1)

        later = datetime.utcnow() + timedelta(days=2)
        assert await store.get_active_vendor_by_token(token, now=later) is None

    @pytest.mark.asyncio
    async def test_invalidated_token_rejected(self, session_factory):
        await add_vendor(session_factory)
        store = SQLAlchemyVendorStore(session_factory)
        token, _ = await store.issue_token("vendor-1")
        await store.invalidate_token("vendor-1")

        assert await store.get_active_vendor_by_token(token) is None

    @pytest.mark.asyncio
    async def test_inactive_vendor_rejected(self, session_factory):
        await add_vendor(session_factory, is_active=False)
        store = SQLAlchemyVendorStore(session_factory)
        token, _ = await store.issue_token("vendor-1")

        assert await store.get_active_vendor_by_token(token) is None


class FakeVendorStore:
    def __init__(self, vendors):
        self.vendors = vendors

    async def get_active_vendor_by_token(self, token):
        return self.vendors.get(token)


class TestRequireVendorAuth:

    @pytest.fixture
    def client(self, auth_settings):
        app = FastAPI()
        app.state.auth_settings = auth_settings
        app.state.vendor_store = FakeVendorStore({
            "t" * 64: VendorRecord(id="vendor-1", organization_id="org-a", name="Acme Drywall"),
            "i" * 64: VendorRecord(id="vendor-2", organization_id="org-a", name="Gone Inc", is_active=False),
        })
        register_exception_handlers(app)

        @app.get("/vendor/quotes")
        async def quotes(vendor: VendorRecord = Depends(require_vendor_auth)):
            return {"vendor": vendor.id}

        return TestClient(app)

    def test_valid_cookie(self, client):
        client.cookies.set("vendor_token", "t" * 64)
        assert client.get("/vendor/quotes").json() == {"vendor": "vendor-1"}

    def test_missing_cookie_redirects_to_login(self, client):
        response = client.get("/vendor/quotes")
        assert response.status_code == 401
        assert response.json()["details"] == {"redirect_to": "/vendor/login"}

    def test_unknown_token(self, client):
        client.cookies.set("vendor_token", "x" * 64)
        assert client.get("/vendor/quotes").status_code == 401

    def test_inactive_vendor(self, client):
        client.cookies.set("vendor_token", "i" * 64)
        response = client.get("/vendor/quotes")
        assert response.status_code == 401
        assert response.json()["details"] == {"redirect_to": "/vendor/login?error=inactive"}
