# tests/services/test_payment_gateway.py
from __future__ import annotations

import pytest

from retailflow.services.payment_gateway import PaymentGatewayError, SimulatedPaymentService

pytestmark = pytest.mark.asyncio


async def test_wallet_charge_reduces_balance():
    svc = SimulatedPaymentService(opening_balance=1000)

    txn = await svc.process_wallet_payment(250, order_id=3)

    assert txn.transaction_id.startswith("WTX")
    assert txn.order_id == 3
    assert txn.balance_after == 750
    assert await svc.get_wallet_balance() == 750


@pytest.mark.parametrize("amount, code", [(0, "INVALID_AMOUNT"), (5000, "INSUFFICIENT_BALANCE")])
async def test_wallet_charge_errors(amount, code):
    svc = SimulatedPaymentService(opening_balance=1000)
    with pytest.raises(PaymentGatewayError) as ei:
        await svc.process_wallet_payment(amount, order_id=1)
    assert ei.value.code == code
    assert await svc.get_wallet_balance() == 1000


async def test_verify_known_and_unknown_transactions():
    svc = SimulatedPaymentService(opening_balance=1000)
    txn = await svc.process_wallet_payment(100, order_id=1)

    known = await svc.verify_payment(txn.transaction_id, {})
    assert known.verified is True
    assert known.transaction.transaction_id == txn.transaction_id

    unknown = await svc.verify_payment("BNK-404", {})
    assert unknown.verified is False
    assert unknown.reason == "transaction not found"

    booked = await svc.verify_payment("BNK-405", {"confirmed": True, "amount": 80})
    assert booked.verified is True
    assert booked.transaction.type == "external_transfer"
    assert svc.snapshot() == {"balance": 900, "transactions": 2}

    with pytest.raises(PaymentGatewayError):
        await svc.verify_payment("", {})


async def test_transactions_newest_first():
    svc = SimulatedPaymentService(opening_balance=1000)
    for i in range(3):
        await svc.process_wallet_payment(10, order_id=i + 1)

    latest = await svc.get_wallet_transactions(2)
    assert [t.order_id for t in latest] == [3, 2]
