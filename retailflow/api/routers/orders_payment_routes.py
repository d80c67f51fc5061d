# retailflow/api/routers/orders_payment_routes.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path

from retailflow.api.deps import get_payment
from retailflow.api.routers.orders_schemas import (
    GatewayVerifyIn,
    PendingVerificationOut,
    RefundIn,
    RetryPaymentIn,
    VerificationHistoryOut,
    VerificationIn,
)
from retailflow.models.order import Order
from retailflow.services.payment_lifecycle import PaymentLifecycle


def register(router: APIRouter) -> None:
    @router.get("/verifications/pending", response_model=List[PendingVerificationOut])
    async def pending_verifications(
        payment: PaymentLifecycle = Depends(get_payment),
    ) -> List[Dict[str, Any]]:
        return await payment.get_pending_verifications()

    @router.get("/{order_id:int}/verification", response_model=Optional[VerificationHistoryOut])
    async def verification_history(
        order_id: int = Path(..., ge=1),
        payment: PaymentLifecycle = Depends(get_payment),
    ) -> Optional[Dict[str, Any]]:
        return await payment.get_verification_history(order_id)

    @router.post("/{order_id:int}/verification", response_model=Order)
    async def update_verification(
        body: VerificationIn,
        order_id: int = Path(..., ge=1),
        payment: PaymentLifecycle = Depends(get_payment),
    ) -> Order:
        """
        人工核验付款凭证：仅 pending（或未提交凭证）可处理。
        通过后订单稍后自动进入 confirmed，响应中 status 仍为 pending。
        """
        return await payment.update_verification_status(order_id, body.status, body.notes)

    @router.post("/{order_id:int}/payment/verify", response_model=Order)
    async def verify_payment_via_gateway(
        body: GatewayVerifyIn,
        order_id: int = Path(..., ge=1),
        payment: PaymentLifecycle = Depends(get_payment),
    ) -> Order:
        return await payment.verify_order_payment(order_id, body.evidence)

    @router.post("/{order_id:int}/payment/retry", response_model=Order)
    async def retry_payment(
        body: RetryPaymentIn,
        order_id: int = Path(..., ge=1),
        payment: PaymentLifecycle = Depends(get_payment),
    ) -> Order:
        return await payment.retry_payment(order_id, body.payment_data)

    @router.post("/{order_id:int}/refund", response_model=Order)
    async def request_refund(
        body: RefundIn,
        order_id: int = Path(..., ge=1),
        payment: PaymentLifecycle = Depends(get_payment),
    ) -> Order:
        return await payment.process_refund(order_id, body.amount, body.reason)
