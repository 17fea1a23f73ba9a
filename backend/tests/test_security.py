"""
Security tests for the vetting API

Covers:
- API key enforcement when API_SECRET_KEY is configured
- Rate limiter table cleanup (idle limiters only)
- Security headers and CORS restrictions
"""

import pytest
from httpx import AsyncClient, ASGITransport

import main
from main import app
from rate_limiter import RollingWindowLimiter


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_rate_limits():
    main._rate_limiters.clear()
    yield
    main._rate_limiters.clear()


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestApiKey:
    @pytest.mark.asyncio
    async def test_missing_key_rejected(self, client, monkeypatch):
        monkeypatch.setattr(main, "_api_secret", "s3cret")
        response = await client.post("/keywords/detect", json={"text": "hello"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_key_rejected(self, client, monkeypatch):
        monkeypatch.setattr(main, "_api_secret", "s3cret")
        response = await client.post("/keywords/detect", json={"text": "hello"}, headers={"X-API-Key": "guess"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_correct_key_accepted(self, client, monkeypatch):
        monkeypatch.setattr(main, "_api_secret", "s3cret")
        response = await client.post("/keywords/detect", json={"text": "hello"}, headers={"X-API-Key": "s3cret"})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_health_is_public(self, client, monkeypatch):
        monkeypatch.setattr(main, "_api_secret", "s3cret")
        response = await client.get("/health")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_auth_disabled_without_secret(self, client, monkeypatch):
        monkeypatch.setattr(main, "_api_secret", "")
        response = await client.get("/capabilities")
        assert response.status_code == 200


class TestRateLimiterCleanup:
    """Idle limiters are dropped once the table grows; active ones survive."""

    @pytest.mark.asyncio
    async def test_cleanup_preserves_active_entries(self, client):
        active = RollingWindowLimiter(5, 60)
        active.try_acquire()
        main._rate_limiters["10.0.0.1:/vet"] = active
        for i in range(250):
            main._rate_limiters[f"10.1.{i // 256}.{i % 256}:/health"] = RollingWindowLimiter(60, 60)

        response = await client.get("/health")

        assert response.status_code == 200
        assert "10.0.0.1:/vet" in main._rate_limiters
        assert len(main._rate_limiters) < 250

    @pytest.mark.asyncio
    async def test_limits_are_per_endpoint(self, client):
        for _ in range(5):
            await client.post("/vet", json={})
        assert (await client.post("/vet", json={})).status_code == 429
        assert (await client.get("/health")).status_code == 200


class TestHeaders:
    @pytest.mark.asyncio
    async def test_security_headers_on_errors(self, client):
        response = await client.post("/vet", json={})
        assert response.status_code == 422
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"

    @pytest.mark.asyncio
    async def test_cors_rejects_unknown_origin(self, client):
        response = await client.get("/health", headers={"Origin": "https://evil.example.com"})
        assert "access-control-allow-origin" not in response.headers

    @pytest.mark.asyncio
    async def test_cors_allows_configured_origin(self, client):
        origin = main._allowed_origins[0]
        response = await client.get("/health", headers={"Origin": origin})
        assert response.headers["access-control-allow-origin"] == origin
