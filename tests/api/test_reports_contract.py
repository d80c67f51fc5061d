# tests/api/test_reports_contract.py
from __future__ import annotations

import pytest

from tests._drafts import bank_draft_with_proof
from tests._problem import assert_problem

pytestmark = pytest.mark.asyncio


async def test_payment_verification_report(client):
    await client.post("/orders", json=bank_draft_with_proof())

    r = await client.get("/reports/payment-verification", params={"payment_method": "bank"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["summary"]["total_pending"] == 1
    assert body["metadata"]["filters"] == {"payment_method": "bank"}


async def test_inverted_range_is_rejected(client):
    r = await client.get(
        "/reports/payment-verification",
        params={"start_date": "2024-05-02T00:00:00Z", "end_date": "2024-05-01T00:00:00Z"},
    )
    assert_problem(r, 422, "INVALID_DATE_RANGE")


async def test_export_lifecycle(client):
    r = await client.post("/reports/exports", json={"report_type": "payment_verification", "format": "csv"})
    assert r.status_code == 200, r.text
    result = r.json()
    assert result["record_count"] == 0
    assert result["file_url"].endswith(".csv")

    r = await client.get(f"/reports/exports/{result['export_id']}")
    assert r.json()["status"] == "completed"

    r = await client.post("/reports/exports", json={"report_type": "inventory"})
    assert_problem(r, 422, "UNKNOWN_REPORT_TYPE")

    r = await client.get("/reports/exports/99")
    assert_problem(r, 404, "EXPORT_JOB_NOT_FOUND")


async def test_realtime_and_auto_refresh(client):
    r = await client.get("/reports/realtime")
    assert r.json()["wallet_balance"] == 10_000.0

    r = await client.post("/reports/auto-refresh/payment_verification", json={"interval_seconds": 20})
    assert r.status_code == 200, r.text
    assert r.json()["refresh_key"] == "payment_verification_refresh"

    r = await client.get("/reports/freshness/payment_verification")
    body = r.json()
    assert body["is_auto_refreshing"] is True
    assert body["refresh_interval"] == 20
    assert body["next_refresh"] is not None

    r = await client.delete("/reports/auto-refresh/payment_verification")
    assert r.json() == {"stopped": True, "report_type": "payment_verification"}
    r = await client.delete("/reports/auto-refresh/payment_verification")
    assert r.json()["stopped"] is False


async def test_report_config_crud(client):
    r = await client.post(
        "/reports/configs",
        json={"name": "Payments", "type": "payment_verification", "auto_refresh": True},
    )
    assert r.status_code == 201, r.text
    cfg = r.json()
    assert cfg["refresh_interval"] == 15

    r = await client.get("/reports/freshness/payment_verification")
    assert r.json()["is_auto_refreshing"] is True

    r = await client.patch(f"/reports/configs/{cfg['id']}", json={"auto_refresh": False})
    assert r.json()["auto_refresh"] is False
    r = await client.get("/reports/freshness/payment_verification")
    assert r.json()["is_auto_refreshing"] is False

    r = await client.get("/reports/configs")
    assert [c["id"] for c in r.json()] == [cfg["id"]]

    r = await client.delete(f"/reports/configs/{cfg['id']}")
    assert r.json() == {"success": True, "report_id": cfg["id"]}

    r = await client.get(f"/reports/configs/{cfg['id']}")
    assert_problem(r, 404, "REPORT_NOT_FOUND")
