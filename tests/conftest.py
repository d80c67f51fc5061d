# tests/conftest.py
from __future__ import annotations

from typing import Any, AsyncGenerator, Dict, List, Mapping, Optional

import httpx
import pytest
import pytest_asyncio

from retailflow.core.config import AppSettings
from retailflow.main import create_app
from retailflow.services.container import ServiceContainer, build_container
from retailflow.services.payment_gateway import (
    PaymentGatewayError,
    Transaction,
    VerificationOutcome,
)


class FakePaymentService:
    """
    可控的支付网关替身：
    - fail_code 非空时 process_wallet_payment 抛 PaymentGatewayError(code=fail_code)
    - verified_ids 内的交易号核验通过，其余返回 verified=False
    - raise_on_verify=True 时 verify_payment 直接抛网关异常
    """

    def __init__(self) -> None:
        self.balance = 10_000.0
        self.fail_code: Optional[str] = None
        self.verified_ids: set[str] = set()
        self.raise_on_verify = False
        self.charges: List[Dict[str, Any]] = []
        self.transactions: List[Transaction] = []

    async def process_wallet_payment(self, amount: float, order_id: int) -> Transaction:
        if self.fail_code:
            raise PaymentGatewayError("wallet declined", code=self.fail_code)
        self.balance -= amount
        txn = Transaction(
            transaction_id=f"FAKE-{len(self.transactions) + 1}",
            type="order_payment",
            amount=amount,
            order_id=order_id,
            balance_after=self.balance,
        )
        self.charges.append({"amount": amount, "order_id": order_id})
        self.transactions.append(txn)
        return txn

    async def verify_payment(self, transaction_id: str, evidence: Mapping[str, Any]) -> VerificationOutcome:
        if self.raise_on_verify:
            raise PaymentGatewayError("gateway timeout", code="GATEWAY_TIMEOUT")
        if transaction_id in self.verified_ids:
            txn = Transaction(transaction_id=transaction_id, type="external_transfer", amount=0.0)
            return VerificationOutcome(verified=True, transaction=txn)
        return VerificationOutcome(verified=False, reason="transaction not found")

    async def get_wallet_balance(self) -> float:
        return self.balance

    async def get_wallet_transactions(self, limit: int = 10) -> List[Transaction]:
        return list(reversed(self.transactions))[:limit]


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        _env_file=None,
        ENV="test",
        STORE_LATENCY_MS=0,
        AUTO_CONFIRM_DELAY_SEC=0.0,
        EXPORT_STEP_DELAY_SEC=0.0,
        SEED_ORDERS=False,
    )


@pytest.fixture
def fake_payments() -> FakePaymentService:
    return FakePaymentService()


@pytest_asyncio.fixture
async def container(settings, fake_payments) -> AsyncGenerator[ServiceContainer, None]:
    c = build_container(settings, payments=fake_payments)
    try:
        yield c
    finally:
        await c.shutdown()


@pytest.fixture
def app(settings, fake_payments):
    return create_app(settings, payments=fake_payments)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    await app.state.container.shutdown()
