import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from engine.models import Gender
from stats_api import build_app


@pytest_asyncio.fixture
async def api_client(core):
    transport = ASGITransport(app=build_app(core))
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.mark.asyncio
async def test_stats_reports_live_counters(api_client, core, register):
    await register(1, Gender.MALE)
    await register(2, Gender.FEMALE)
    await register(3, Gender.FEMALE, premium_days=7)
    await core.engine.request_match(1)
    await core.engine.request_match(2)
    await core.engine.request_match(3)

    resp = await api_client.get("/stats")
    assert resp.status_code == 200
    data = resp.json()
    assert data["users_total"] == 3
    assert data["premium_active"] == 1
    assert data["active_chats"] == 1
    assert data["waiting"] == 1
    assert data["waiting_by_tier"] == {"premium": 1, "regular": 0}


@pytest.mark.asyncio
async def test_index_and_health(api_client):
    resp = await api_client.get("/")
    assert resp.status_code == 200
    assert "Active chats" in resp.text

    health = await api_client.get("/healthz")
    assert health.json()["ok"] is True
