# retailflow/models/enums.py
from __future__ import annotations

from enum import StrEnum


class PaymentMethod(StrEnum):
    CASH = "cash"
    WALLET = "wallet"
    BANK = "bank"
    JAZZCASH = "jazzcash"
    EASYPAISA = "easypaisa"
    OTHER = "other"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    PENDING_VERIFICATION = "pending_verification"
    VERIFICATION_FAILED = "verification_failed"


class VerificationStatus(StrEnum):
    """
    凭证核验状态；订单未提交凭证时该字段为 None。
    只允许 PENDING → VERIFIED / REJECTED 一次。
    """

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class ApprovalStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class OrderStatus(StrEnum):
    """
    面向顾客的订单状态。
    由 FulfillmentStage / DeliveryStatus / 核验结果按映射表推导写入。
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PACKED = "packed"
    PAYMENT_PROCESSED = "payment_processed"
    READY_FOR_DELIVERY = "ready_for_delivery"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_REJECTED = "payment_rejected"
    REFUND_REQUESTED = "refund_requested"
    CANCELLED = "cancelled"


class FulfillmentStage(StrEnum):
    """
    供应商侧履约进度（与顾客状态分离）；订单上为 None 表示尚未开始。
    """

    AVAILABILITY_CONFIRMED = "availability_confirmed"
    PACKED = "packed"
    PAYMENT_PROCESSED = "payment_processed"
    ADMIN_PAID = "admin_paid"
    HANDED_OVER = "handed_over"


class DeliveryStatus(StrEnum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"


class ExportStatus(StrEnum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ReportType(StrEnum):
    PAYMENT_VERIFICATION = "payment_verification"
