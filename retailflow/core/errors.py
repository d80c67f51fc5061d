# retailflow/core/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class OrderFlowError(Exception):
    """
    业务异常基类：

    - code    : 机器可读错误码（前端按它分支，不解析 message）
    - status  : 对应 HTTP 状态码
    - kind    : not_found / validation / conflict / upstream
    - context : 附加定位信息（order_id / stage / ...）
    """

    code = "ORDER_FLOW_ERROR"
    status = 400
    kind = "state"
    # 支付类错误：前端可展示“人工处理”兜底
    payment_related = False

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status: int | None = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        if code:
            self.code = code
        if status:
            self.status = status
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})


# ============================== NotFound ==============================


class NotFoundError(OrderFlowError):
    code = "NOT_FOUND"
    status = 404
    kind = "not_found"


class OrderNotFound(NotFoundError):
    code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: int):
        super().__init__(f"Order #{order_id} not found", context={"order_id": order_id})
        self.order_id = order_id


class ReportNotFound(NotFoundError):
    code = "REPORT_NOT_FOUND"

    def __init__(self, report_id: int):
        super().__init__(f"Report #{report_id} not found", context={"report_id": report_id})


class ExportJobNotFound(NotFoundError):
    code = "EXPORT_JOB_NOT_FOUND"

    def __init__(self, export_id: int):
        super().__init__(f"Export job #{export_id} not found", context={"export_id": export_id})


# ============================== Validation ==============================


class ValidationError(OrderFlowError):
    code = "VALIDATION_ERROR"
    status = 422
    kind = "validation"


class PaymentResultMissing(ValidationError):
    code = "PAYMENT_RESULT_MISSING"
    payment_related = True


class TransactionIdMissing(ValidationError):
    code = "TRANSACTION_ID_MISSING"
    payment_related = True


class InvalidStage(ValidationError):
    code = "INVALID_STAGE"


class InvalidVerificationStatus(ValidationError):
    code = "INVALID_VERIFICATION_STATUS"


class InvalidDeliveryStatus(ValidationError):
    code = "INVALID_DELIVERY_STATUS"


class InvalidOrderStatus(ValidationError):
    code = "INVALID_ORDER_STATUS"


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"


class InvalidDateRange(ValidationError):
    code = "INVALID_DATE_RANGE"


class UnknownReportType(ValidationError):
    code = "UNKNOWN_REPORT_TYPE"


# ============================== Conflict ==============================


class ConflictError(OrderFlowError):
    code = "CONFLICT"
    status = 409
    kind = "conflict"


class OrderIdConflict(ConflictError):
    code = "ORDER_ID_CONFLICT"


class VerificationNotPending(ConflictError):
    code = "VERIFICATION_NOT_PENDING"
    payment_related = True


class AlreadyCompleted(ConflictError):
    code = "ALREADY_COMPLETED"
    payment_related = True


class PaymentVerificationNotRequired(ConflictError):
    code = "PAYMENT_VERIFICATION_NOT_REQUIRED"
    payment_related = True


# ============================== Upstream ==============================


class UpstreamFailure(OrderFlowError):
    """
    外部协作方（钱包 / 支付网关）失败：
    - original_error 保留原始异常
    - upstream_code  保留原始异常上的 code（若有）
    """

    code = "UPSTREAM_FAILURE"
    status = 502
    kind = "upstream"
    payment_related = True

    def __init__(
        self,
        message: str,
        *,
        original_error: BaseException | None = None,
        code: str | None = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        upstream_code = getattr(original_error, "code", None) if original_error is not None else None
        ctx = dict(context or {})
        if upstream_code:
            ctx.setdefault("upstream_code", upstream_code)
        super().__init__(message, code=code, context=ctx)
        self.original_error = original_error
        self.upstream_code = upstream_code


class WalletPaymentFailed(UpstreamFailure):
    code = "WALLET_PAYMENT_FAILED"


class PaymentVerificationFailed(UpstreamFailure):
    code = "PAYMENT_VERIFICATION_FAILED"
