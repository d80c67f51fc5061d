# retailflow/services/payment_gateway.py
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from retailflow.utils.time import epoch_millis, utc_now

logger = logging.getLogger("retailflow.payments")


class Transaction(BaseModel):
    model_config = ConfigDict(extra="allow")

    transaction_id: str
    type: str
    amount: float
    order_id: Optional[int] = None
    status: str = "completed"
    timestamp: datetime = Field(default_factory=utc_now)
    balance_after: Optional[float] = None


class VerificationOutcome(BaseModel):
    verified: bool
    transaction: Optional[Transaction] = None
    reason: Optional[str] = None


class PaymentGatewayError(Exception):
    """
    网关 / 钱包侧异常；code 会被上层原样透传为 upstream_code。
    """

    def __init__(self, message: str, code: str = "PAYMENT_GATEWAY_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code


class PaymentService(Protocol):
    async def process_wallet_payment(self, amount: float, order_id: int) -> Transaction: ...

    async def verify_payment(
        self, transaction_id: str, evidence: Mapping[str, Any]
    ) -> VerificationOutcome: ...

    async def get_wallet_balance(self) -> float: ...

    async def get_wallet_transactions(self, limit: int = 10) -> List[Transaction]: ...


class SimulatedPaymentService:
    """
    进程内模拟钱包：

    - 余额不足 → PaymentGatewayError(code=INSUFFICIENT_BALANCE)
    - verify_payment：交易号在流水里 → verified；否则 verified=False + reason
    - 流水按时间倒序返回
    """

    def __init__(self, *, opening_balance: float = 0.0, latency_ms: int = 0) -> None:
        self._balance = float(opening_balance)
        self._transactions: List[Transaction] = []
        self._latency = max(0, int(latency_ms)) / 1000.0

    async def _io(self) -> None:
        await asyncio.sleep(self._latency)

    def _txn_id(self, prefix: str) -> str:
        return f"{prefix}{epoch_millis()}{len(self._transactions) + 1:04d}"

    async def process_wallet_payment(self, amount: float, order_id: int) -> Transaction:
        await self._io()
        amount = float(amount or 0)
        if amount <= 0:
            raise PaymentGatewayError("Invalid payment amount", code="INVALID_AMOUNT")
        if amount > self._balance:
            raise PaymentGatewayError(
                f"Insufficient wallet balance: {self._balance:.2f} < {amount:.2f}",
                code="INSUFFICIENT_BALANCE",
            )

        self._balance -= amount
        txn = Transaction(
            transaction_id=self._txn_id("WTX"),
            type="order_payment",
            amount=amount,
            order_id=order_id,
            balance_after=self._balance,
        )
        self._transactions.append(txn)
        logger.info("wallet payment %s for order #%s: %.2f", txn.transaction_id, order_id, amount)
        return txn.model_copy()

    async def verify_payment(
        self, transaction_id: str, evidence: Mapping[str, Any]
    ) -> VerificationOutcome:
        await self._io()
        if not transaction_id:
            raise PaymentGatewayError("Transaction id is required", code="INVALID_TRANSACTION")

        for txn in self._transactions:
            if txn.transaction_id == transaction_id:
                return VerificationOutcome(verified=True, transaction=txn.model_copy())

        amount = evidence.get("amount") if evidence else None
        if evidence and evidence.get("confirmed") and amount is not None:
            # 线下转账：凭证确认后补记一笔入账流水
            txn = Transaction(
                transaction_id=str(transaction_id),
                type="external_transfer",
                amount=float(amount),
                balance_after=self._balance,
            )
            self._transactions.append(txn)
            return VerificationOutcome(verified=True, transaction=txn.model_copy())

        return VerificationOutcome(verified=False, reason="transaction not found")

    async def get_wallet_balance(self) -> float:
        await self._io()
        return self._balance

    async def get_wallet_transactions(self, limit: int = 10) -> List[Transaction]:
        await self._io()
        # 追加顺序即时间顺序
        newest_first = list(reversed(self._transactions))
        return [t.model_copy() for t in newest_first[: max(0, int(limit))]]

    def snapshot(self) -> Dict[str, Any]:
        return {"balance": self._balance, "transactions": len(self._transactions)}
