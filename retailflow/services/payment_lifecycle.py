# retailflow/services/payment_lifecycle.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from retailflow.core.errors import (
    AlreadyCompleted,
    InvalidVerificationStatus,
    PaymentResultMissing,
    PaymentVerificationFailed,
    PaymentVerificationNotRequired,
    TransactionIdMissing,
    VerificationNotPending,
    WalletPaymentFailed,
)
from retailflow.models.enums import (
    ApprovalStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    VerificationStatus,
)
from retailflow.models.order import Order, OrderDraft, PaymentProof, PaymentProofIn, Refund
from retailflow.services.payment_gateway import PaymentService
from retailflow.utils.time import epoch_millis, utc_now

if TYPE_CHECKING:
    from retailflow.services.order_state_machine import OrderStateMachine

logger = logging.getLogger("retailflow.payments")

_IMAGE_DATA_URL = re.compile(r"^data:image/[\w.+-]+;base64,", re.IGNORECASE)


@dataclass(frozen=True)
class PaymentMethodContract:
    """
    单个支付方式的必填字段与流程约束：
    - requires_payment_result : 下单时必须携带 payment_result（{} 也算已携带）
    - requires_transaction_id : payment_result 内必须有 transaction_id
    - initial_status          : 未显式给出 payment_status 时的初始值
    - charges_wallet          : 下单时同步扣钱包
    - accepts_proof           : 可随单提交付款凭证，进入人工核验
    - deferred_verification   : payment_result.requires_verification 时转入待核验
    """

    method: PaymentMethod
    requires_payment_result: bool
    requires_transaction_id: bool
    initial_status: PaymentStatus
    charges_wallet: bool = False
    accepts_proof: bool = False
    deferred_verification: bool = False


PAYMENT_METHOD_CONTRACTS: Dict[PaymentMethod, PaymentMethodContract] = {
    PaymentMethod.CASH: PaymentMethodContract(
        PaymentMethod.CASH,
        requires_payment_result=False,
        requires_transaction_id=False,
        initial_status=PaymentStatus.PENDING,
    ),
    PaymentMethod.WALLET: PaymentMethodContract(
        PaymentMethod.WALLET,
        requires_payment_result=False,
        requires_transaction_id=False,
        initial_status=PaymentStatus.COMPLETED,
        charges_wallet=True,
    ),
    PaymentMethod.BANK: PaymentMethodContract(
        PaymentMethod.BANK,
        requires_payment_result=True,
        requires_transaction_id=False,
        initial_status=PaymentStatus.COMPLETED,
        accepts_proof=True,
        deferred_verification=True,
    ),
    PaymentMethod.JAZZCASH: PaymentMethodContract(
        PaymentMethod.JAZZCASH,
        requires_payment_result=True,
        requires_transaction_id=True,
        initial_status=PaymentStatus.COMPLETED,
        accepts_proof=True,
    ),
    PaymentMethod.EASYPAISA: PaymentMethodContract(
        PaymentMethod.EASYPAISA,
        requires_payment_result=True,
        requires_transaction_id=True,
        initial_status=PaymentStatus.COMPLETED,
        accepts_proof=True,
    ),
    PaymentMethod.OTHER: PaymentMethodContract(
        PaymentMethod.OTHER,
        requires_payment_result=True,
        requires_transaction_id=False,
        initial_status=PaymentStatus.COMPLETED,
    ),
}

_uncovered = set(PaymentMethod) - set(PAYMENT_METHOD_CONTRACTS)
if _uncovered:
    raise RuntimeError(f"payment methods without contract: {sorted(_uncovered)}")


def contract_for(method: PaymentMethod | str) -> PaymentMethodContract:
    return PAYMENT_METHOD_CONTRACTS[PaymentMethod(method)]


def is_image_data_url(value: Optional[str]) -> bool:
    return bool(value) and bool(_IMAGE_DATA_URL.match(value))


def normalize_proof(proof: PaymentProofIn, *, now: datetime) -> PaymentProof:
    """
    规整上传的付款凭证；data_url 格式不对时只告警，仍然入库（validated=False）。
    backup_ref 仅在调用方给出 file_name 时生成。
    """
    validated = is_image_data_url(proof.data_url)
    if proof.data_url and not validated:
        logger.warning("payment proof data_url is not an image data URI, storing as-is")

    return PaymentProof(
        file_name=proof.file_name or "payment_proof.jpg",
        file_size=proof.file_size or 0,
        uploaded_at=proof.uploaded_at or now,
        data_url=proof.data_url or None,
        stored_at=now,
        validated=validated,
        backup_ref=f"/uploads/{proof.file_name}" if proof.file_name else None,
    )


def _result_transaction_id(payment_result: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not payment_result:
        return None
    value = payment_result.get("transaction_id")
    return str(value) if value not in (None, "") else None


class PaymentLifecycle:
    """
    支付 / 凭证核验规则。

    写操作全部经 OrderStateMachine.mutate（同一订单串行）；
    核验通过后的 pending → confirmed 作为后续任务排进同一把订单锁。
    """

    def __init__(
        self,
        orders: "OrderStateMachine",
        payments: PaymentService,
        *,
        auto_confirm_delay: float = 0.1,
    ) -> None:
        self._orders = orders
        self._payments = payments
        self._auto_confirm_delay = auto_confirm_delay

    # ------------------------------------------------------------------ #
    # 下单
    # ------------------------------------------------------------------ #
    async def intake(self, draft: OrderDraft, *, order_id: int, total: float) -> Dict[str, Any]:
        """
        按顺序应用下单支付规则，返回需要写入新订单的支付相关字段。
        这里不扣钱包：钱包扣款由 charge_wallet 在订单快照校验通过后单独执行。
        """
        contract = contract_for(draft.payment_method)
        payment_result = draft.payment_result

        if contract.requires_payment_result and payment_result is None:
            raise PaymentResultMissing(
                "Payment result is required for non-cash payments",
                context={"payment_method": contract.method.value},
            )
        if contract.requires_transaction_id and not _result_transaction_id(payment_result):
            raise TransactionIdMissing(
                "Transaction ID is missing from payment result",
                context={"payment_method": contract.method.value},
            )

        fields: Dict[str, Any] = {
            "payment_method": contract.method,
            "transaction_id": draft.transaction_id or _result_transaction_id(payment_result),
            "payment_status": draft.payment_status or contract.initial_status,
            "payment_result": payment_result,
        }

        if contract.deferred_verification and payment_result and payment_result.get(
            "requires_verification"
        ):
            fields["payment_status"] = PaymentStatus.PENDING_VERIFICATION
            fields["status"] = OrderStatus.PAYMENT_PENDING

        if contract.accepts_proof and draft.payment_proof is not None:
            now = utc_now()
            fields["payment_proof"] = normalize_proof(draft.payment_proof, now=now)
            fields["verification_status"] = VerificationStatus.PENDING
            fields["payment_proof_submitted_at"] = now
        elif draft.payment_proof is not None:
            logger.info(
                "payment proof ignored for %s order #%s", contract.method.value, order_id
            )

        return fields

    async def charge_wallet(
        self, draft: OrderDraft, *, order_id: int, total: float, transaction_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        钱包下单扣款；非钱包支付方式返回空 dict。
        失败统一包成 WalletPaymentFailed，code 沿用网关原始错误码。
        """
        if not contract_for(draft.payment_method).charges_wallet:
            return {}
        try:
            txn = await self._payments.process_wallet_payment(total, order_id)
        except Exception as exc:
            raise WalletPaymentFailed(
                f"Wallet payment failed: {exc}",
                original_error=exc,
                code=getattr(exc, "code", None),
                context={"order_id": order_id, "amount": total},
            ) from exc
        return {
            "payment_result": txn.model_dump(),
            "payment_status": PaymentStatus.COMPLETED,
            "transaction_id": transaction_id or txn.transaction_id,
            "paid_at": txn.timestamp,
        }

    # ------------------------------------------------------------------ #
    # 人工核验
    # ------------------------------------------------------------------ #
    async def update_verification_status(
        self, order_id: int, status: VerificationStatus | str, notes: str = ""
    ) -> Order:
        try:
            target = VerificationStatus(status)
        except ValueError:
            target = None
        if target not in (VerificationStatus.VERIFIED, VerificationStatus.REJECTED):
            raise InvalidVerificationStatus(
                f"Invalid verification status: {status}",
                context={"order_id": order_id, "status": str(status)},
            )

        def compute(order: Order) -> Dict[str, Any]:
            if order.verification_status not in (None, VerificationStatus.PENDING):
                raise VerificationNotPending(
                    "Order verification is not pending",
                    context={
                        "order_id": order.id,
                        "verification_status": order.verification_status.value,
                    },
                )
            now = utc_now()
            patch: Dict[str, Any] = {
                "verification_status": target,
                "verification_notes": notes or "",
                "verified_at": now,
                "verified_by": "admin",
            }
            if target is VerificationStatus.VERIFIED:
                patch.update(
                    payment_status=PaymentStatus.COMPLETED,
                    approval_status=ApprovalStatus.APPROVED,
                    status=OrderStatus.PENDING,
                    payment_verified_at=now,
                )
            else:
                patch.update(
                    payment_status=PaymentStatus.VERIFICATION_FAILED,
                    approval_status=ApprovalStatus.REJECTED,
                    status=OrderStatus.PAYMENT_REJECTED,
                    payment_rejected_at=now,
                )
            return patch

        updated = await self._orders.mutate(order_id, compute, op=f"verification_{target.value}")

        if target is VerificationStatus.VERIFIED:
            self._orders.schedule_followup(
                order_id,
                _confirm_if_still_verified,
                op="auto_confirm",
                delay=self._auto_confirm_delay,
            )
        return updated

    async def verify_order_payment(self, order_id: int, evidence: Mapping[str, Any]) -> Order:
        """
        经支付网关核验待确认的转账；核验不通过或网关出错统一为 PaymentVerificationFailed。
        """

        async def compute(order: Order) -> Dict[str, Any]:
            if order.payment_status is not PaymentStatus.PENDING_VERIFICATION:
                raise PaymentVerificationNotRequired(
                    "Order payment does not require verification",
                    context={"order_id": order.id, "payment_status": order.payment_status.value},
                )
            txn_id = _result_transaction_id(order.payment_result) or order.transaction_id
            if not txn_id:
                raise TransactionIdMissing(
                    "Order missing payment transaction information",
                    context={"order_id": order.id},
                )

            try:
                outcome = await self._payments.verify_payment(txn_id, dict(evidence or {}))
            except Exception as exc:
                raise PaymentVerificationFailed(
                    f"Payment verification error: {exc}",
                    original_error=exc,
                    context={"order_id": order.id, "transaction_id": txn_id},
                ) from exc

            if not outcome.verified:
                raise PaymentVerificationFailed(
                    "Payment verification failed: "
                    + (outcome.reason or "Unknown verification error"),
                    context={"order_id": order.id, "transaction_id": txn_id},
                )

            patch: Dict[str, Any] = {
                "payment_status": PaymentStatus.COMPLETED,
                "paid_at": utc_now(),
            }
            if outcome.transaction is not None:
                patch["payment_result"] = outcome.transaction.model_dump()
            return patch

        return await self._orders.mutate(order_id, compute, op="gateway_verification")

    # ------------------------------------------------------------------ #
    # 重试 / 退款
    # ------------------------------------------------------------------ #
    async def retry_payment(self, order_id: int, payment_data: Mapping[str, Any]) -> Order:
        def compute(order: Order) -> Dict[str, Any]:
            if order.payment_status is PaymentStatus.COMPLETED:
                raise AlreadyCompleted(
                    "Payment already completed",
                    context={"order_id": order.id},
                )
            patch = dict(payment_data or {})
            patch.update(
                payment_retries=order.payment_retries + 1,
                payment_status=PaymentStatus.COMPLETED,
                paid_at=utc_now(),
            )
            return patch

        return await self._orders.mutate(order_id, compute, op="retry_payment")

    async def process_refund(self, order_id: int, amount: float, reason: str = "") -> Order:
        # 退款金额不与订单金额比对（允许人工调整）
        def compute(order: Order) -> Dict[str, Any]:
            now = utc_now()
            refund = Refund(
                id=f"REF{epoch_millis(now)}",
                order_id=order.id,
                amount=float(amount),
                reason=reason or "",
                requested_at=now,
            )
            return {"refund": refund, "status": OrderStatus.REFUND_REQUESTED}

        updated = await self._orders.mutate(order_id, compute, op="refund")
        logger.info("refund %s requested for order #%s", updated.refund.id, order_id)
        return updated

    # ------------------------------------------------------------------ #
    # 只读视图
    # ------------------------------------------------------------------ #
    async def get_pending_verifications(self) -> List[Dict[str, Any]]:
        orders = await self._orders.get_all()
        suffix = str(epoch_millis())[-4:]
        return [
            _pending_row(o, suffix)
            for o in orders
            if _awaits_verification(o)
        ]

    async def get_verification_history(self, order_id: int) -> Optional[Dict[str, Any]]:
        order = await self._orders.get_by_id(order_id)
        if order.payment_proof is None:
            return None
        return {
            "order_id": order.id,
            "submitted_at": order.payment_proof_submitted_at,
            "verified_at": order.verified_at,
            "status": (order.verification_status or VerificationStatus.PENDING).value,
            "notes": order.verification_notes or "",
            "payment_proof": order.payment_proof,
            "payment_proof_file_name": order.payment_proof.file_name or "unknown",
        }


def _confirm_if_still_verified(order: Order) -> Optional[Dict[str, Any]]:
    # 期间订单若已被其它操作推进，则不再覆盖
    if (
        order.verification_status is VerificationStatus.VERIFIED
        and order.status is OrderStatus.PENDING
    ):
        return {"status": OrderStatus.CONFIRMED}
    return None


def _awaits_verification(order: Order) -> bool:
    proof = order.payment_proof
    if proof is None or not proof.file_name:
        return False
    if order.verification_status is VerificationStatus.PENDING:
        return True
    return order.verification_status is None and contract_for(order.payment_method).accepts_proof


def _pending_row(order: Order, suffix: str) -> Dict[str, Any]:
    proof = order.payment_proof
    return {
        "order_id": order.id,
        "transaction_id": order.transaction_id or f"TXN{order.id}{suffix}",
        "customer_name": order.customer_name,
        "amount": order.amount,
        "payment_method": order.payment_method.value,
        "payment_proof": proof.data_url or f"/api/uploads/{proof.file_name or 'default.jpg'}",
        "payment_proof_file_name": proof.file_name or "unknown",
        "submitted_at": proof.uploaded_at or order.payment_proof_submitted_at or order.created_at,
        "verification_status": (order.verification_status or VerificationStatus.PENDING).value,
        "approval_status": order.approval_status.value,
    }
