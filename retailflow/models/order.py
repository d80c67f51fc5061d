# retailflow/models/order.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from retailflow.models.enums import (
    ApprovalStatus,
    DeliveryStatus,
    FulfillmentStage,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    VerificationStatus,
)
from retailflow.utils.time import ensure_utc


# ===== 通用基类：快照不可变、保留调用方附带的扩展字段 =====
class _Snapshot(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)


def _coerce_str(v: Any) -> Any:
    if v is None or isinstance(v, str):
        return v
    return str(v)


class OrderItem(_Snapshot):
    product_id: int
    price: float = 0.0
    quantity: int = 1
    name: str | None = None


class DeliveryAddress(_Snapshot):
    name: str | None = None
    phone: str | None = None
    city: str | None = None
    address: str | None = None


class PaymentProof(_Snapshot):
    """
    入库后的付款凭证：
    - validated  : data_url 是否形如 data:image/...;base64,...
    - backup_ref : 以文件名推导的兜底路径 /uploads/{file_name}
    """

    file_name: str = "payment_proof.jpg"
    file_size: int = 0
    uploaded_at: datetime | None = None
    data_url: str | None = None
    stored_at: datetime | None = None
    validated: bool = False
    backup_ref: str | None = None


class PaymentProofIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    file_name: str | None = None
    file_size: int | None = None
    uploaded_at: datetime | None = None
    data_url: str | None = None


class Refund(_Snapshot):
    id: str
    order_id: int
    amount: float
    reason: str = ""
    status: str = "pending"
    requested_at: datetime


class StatusHistoryEntry(_Snapshot):
    """人工改状态的一条记录；调用方附带的字段原样保留。"""

    status: OrderStatus
    timestamp: datetime
    previous_status: OrderStatus | None = None


class DeliveryAssignment(_Snapshot):
    name: str
    phone: str
    eta: str
    vehicle: str


class VendorAvailability(_Snapshot):
    available: bool
    notes: str = ""
    timestamp: datetime
    vendor_id: int
    product_id: int
    response_deadline: datetime | None = None
    escalation_level: str = "normal"


class Order(_Snapshot):
    """
    订单快照（不可变）。

    五个状态字段各自存储，但只能按 services 中的映射表组合变化：
    - status              : 顾客可见状态
    - payment_status      : 支付状态
    - verification_status : 凭证核验（None = 未提交凭证）
    - fulfillment_stage   : 供应商履约进度（None = 未开始）
    - delivery_status     : 配送状态

    任何写入都由 OrderStore 以新快照整体替换旧快照。
    """

    id: int
    items: List[OrderItem] = Field(default_factory=list)

    # total / total_amount 始终一致（由状态机在每次写入时对齐）
    total: float = 0.0
    total_amount: float = 0.0
    delivery_charge: float = 0.0
    delivery_address: DeliveryAddress | None = None

    # ---- 支付 ----
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_result: Dict[str, Any] | None = None
    transaction_id: str | None = None
    payment_retries: int = 0
    paid_at: datetime | None = None

    # ---- 凭证核验 ----
    payment_proof: PaymentProof | None = None
    payment_proof_submitted_at: datetime | None = None
    verification_status: VerificationStatus | None = None
    verification_notes: str | None = None
    verified_at: datetime | None = None
    verified_by: str | None = None
    payment_verified_at: datetime | None = None
    payment_rejected_at: datetime | None = None
    approval_status: ApprovalStatus = ApprovalStatus.PENDING

    # ---- 履约 / 配送 ----
    status: OrderStatus = OrderStatus.PENDING
    fulfillment_stage: FulfillmentStage | None = None
    order_status_timestamps: Dict[str, datetime] = Field(default_factory=dict)
    status_history: List[StatusHistoryEntry] = Field(default_factory=list)
    vendor_availability: Dict[str, VendorAvailability] = Field(default_factory=dict)
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    delivery_person_id: str | None = None
    assigned_delivery: DeliveryAssignment | None = None
    actual_delivery: datetime | None = None
    handover_signature: str | None = None
    handover_timestamp: datetime | None = None
    handover_vendor_id: int | None = None

    refund: Refund | None = None

    created_at: datetime
    updated_at: datetime

    @field_validator("transaction_id", "delivery_person_id", mode="before")
    @classmethod
    def _coerce_ids(cls, v: Any) -> Any:
        return _coerce_str(v)

    @field_validator("created_at", "updated_at", mode="after")
    @classmethod
    def _as_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def customer_name(self) -> str:
        if self.delivery_address and self.delivery_address.name:
            return self.delivery_address.name
        return "Unknown"

    @property
    def amount(self) -> float:
        return self.total or self.total_amount or 0.0


class OrderDraft(BaseModel):
    """
    创建订单入参：
    - id 可选；显式给出时必须大于现有所有 id
    - payment_proof 为原始上传数据，入库时由 PaymentLifecycle 规整
    - 其余未声明字段原样保留到订单上
    """

    model_config = ConfigDict(extra="allow")

    id: int | None = Field(default=None, ge=1)
    items: List[OrderItem] = Field(default_factory=list)
    total: float | None = None
    total_amount: float | None = None
    delivery_charge: float = 0.0
    delivery_address: DeliveryAddress | None = None

    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_status: PaymentStatus | None = None
    payment_result: Dict[str, Any] | None = None
    transaction_id: str | None = None
    payment_proof: PaymentProofIn | None = None

    verification_status: VerificationStatus | None = None
    approval_status: ApprovalStatus | None = None
    status: OrderStatus | None = None

    @field_validator("transaction_id", mode="before")
    @classmethod
    def _coerce_transaction_id(cls, v: Any) -> Any:
        return _coerce_str(v)
