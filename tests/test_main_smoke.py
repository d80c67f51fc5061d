# tests/test_main_smoke.py
import httpx
import pytest

from retailflow.core.config import AppSettings
from retailflow.main import create_app

pytestmark = pytest.mark.asyncio


async def test_openapi_and_health(client):
    r = await client.get("/openapi.json")
    assert r.status_code == 200
    paths = r.json()["paths"]
    assert "/orders" in paths
    assert "/reports/exports" in paths

    r = await client.get("/health")
    body = r.json()
    assert body["status"] == "ok"
    assert body["orders"] == 0
    assert body["wallet_balance"] == 10_000.0


async def test_metrics_endpoint(client):
    await client.get("/health")
    r = await client.get("/metrics")
    assert r.status_code == 200
    assert "http_requests_total" in r.text


async def test_dev_seed_only_in_dev(client, fake_payments):
    r = await client.post("/dev/seed")
    assert r.status_code == 404

    dev = create_app(
        AppSettings(_env_file=None, ENV="dev", SEED_ORDERS=True, EXPORT_STEP_DELAY_SEC=0.0),
        payments=fake_payments,
    )
    transport = httpx.ASGITransport(app=dev)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        seeded = (await c.get("/orders")).json()
        assert len(seeded) > 0

        await c.delete(f"/orders/{seeded[0]['id']}")
        r = await c.post("/dev/seed")
        assert r.status_code == 200, r.text
        assert r.json()["seeded"] == len(seeded)
        assert len((await c.get("/orders")).json()) == len(seeded)
    await dev.state.container.shutdown()
