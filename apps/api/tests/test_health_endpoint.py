import httpx
import pytest

from rcn_api.core.settings import settings


def _client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_healthz_reports_environment(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        root = await client.get("/healthz")
        versioned = await client.get("/api/v1/healthz")

    assert root.status_code == 200
    assert root.json()["status"] == "ok"
    assert root.json()["environment"] == settings.environment
    assert versioned.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_readyz_degrades_without_admin_addresses(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "admin_addresses", [])
    monkeypatch.setattr(settings, "chain_balance_backend", "ledger")

    async with _client(app) as client:
        response = await client.get("/api/v1/readyz")

    payload = response.json()
    assert response.status_code == 200
    assert payload["status"] == "degraded"
    assert payload["components"]["database"]["status"] == "ready"
    assert payload["components"]["chain_balance"]["status"] == "disabled"
    assert payload["components"]["admin_addresses"]["status"] == "disabled"


@pytest.mark.asyncio
async def test_readyz_flags_missing_rpc_configuration(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "admin_addresses", ["0x" + "ad" * 20])
    monkeypatch.setattr(settings, "chain_balance_backend", "rpc")
    monkeypatch.setattr(settings, "chain_rpc_url", None)

    async with _client(app) as client:
        response = await client.get("/api/v1/readyz")

    payload = response.json()
    assert payload["status"] == "error"
    assert payload["components"]["chain_balance"]["status"] == "error"
    assert "admin_addresses" not in payload["components"]
