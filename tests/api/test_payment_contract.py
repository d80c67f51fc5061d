# tests/api/test_payment_contract.py
from __future__ import annotations

import pytest

from tests._drafts import bank_draft_with_proof, cash_draft
from tests._problem import assert_problem

pytestmark = pytest.mark.asyncio


async def _create(client, draft):
    r = await client.post("/orders", json=draft)
    assert r.status_code == 201, r.text
    return r.json()


async def test_verification_flow(client, app):
    order = await _create(client, bank_draft_with_proof())
    assert order["status"] == "payment_pending"

    r = await client.get("/orders/verifications/pending")
    assert [row["order_id"] for row in r.json()] == [order["id"]]

    r = await client.post(f"/orders/{order['id']}/verification", json={"status": "verified"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["payment_status"] == "completed"
    assert body["approval_status"] == "approved"

    await app.state.container.orders.drain_followups()
    r = await client.get(f"/orders/{order['id']}")
    assert r.json()["status"] == "confirmed"

    r = await client.get(f"/orders/{order['id']}/verification")
    assert r.json()["status"] == "verified"

    r = await client.post(f"/orders/{order['id']}/verification", json={"status": "rejected"})
    assert_problem(r, 409, "VERIFICATION_NOT_PENDING")


async def test_invalid_verification_status(client):
    order = await _create(client, bank_draft_with_proof())
    r = await client.post(f"/orders/{order['id']}/verification", json={"status": "approved"})
    assert_problem(r, 422, "INVALID_VERIFICATION_STATUS")


async def test_verification_history_absent_without_proof(client):
    order = await _create(client, cash_draft())
    r = await client.get(f"/orders/{order['id']}/verification")
    assert r.status_code == 200
    assert r.json() is None


async def test_gateway_verification(client, fake_payments):
    order = await _create(client, bank_draft_with_proof())

    r = await client.post(f"/orders/{order['id']}/payment/verify", json={"evidence": {}})
    assert_problem(r, 502, "PAYMENT_VERIFICATION_FAILED")

    fake_payments.verified_ids.add("BNK-1")
    r = await client.post(f"/orders/{order['id']}/payment/verify", json={"evidence": {}})
    assert r.status_code == 200, r.text
    assert r.json()["payment_status"] == "completed"

    r = await client.post(f"/orders/{order['id']}/payment/verify", json={})
    assert_problem(r, 409, "PAYMENT_VERIFICATION_NOT_REQUIRED")


async def test_retry_and_refund(client):
    order = await _create(client, cash_draft())

    r = await client.post(f"/orders/{order['id']}/payment/retry", json={"payment_data": {"channel": "pos"}})
    assert r.status_code == 200
    assert r.json()["payment_retries"] == 1
    assert r.json()["channel"] == "pos"

    r = await client.post(f"/orders/{order['id']}/payment/retry", json={})
    assert_problem(r, 409, "ALREADY_COMPLETED")

    r = await client.post(f"/orders/{order['id']}/refund", json={"amount": 30, "reason": "late"})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "refund_requested"
    assert body["refund"]["amount"] == 30
    assert body["refund"]["reason"] == "late"


async def test_patch_cannot_reopen_verification(client):
    order = await _create(client, bank_draft_with_proof())
    r = await client.post(f"/orders/{order['id']}/verification", json={"status": "rejected"})
    assert r.status_code == 200, r.text

    r = await client.patch(f"/orders/{order['id']}", json={"verification_status": "pending"})
    body = assert_problem(r, 409, "VERIFICATION_NOT_PENDING")
    assert body["next_actions"][0]["action"] == "manual_processing"

    r = await client.get(f"/orders/{order['id']}")
    assert r.json()["verification_status"] == "rejected"
    assert r.json()["status"] == "payment_rejected"
