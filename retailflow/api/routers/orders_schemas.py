# retailflow/api/routers/orders_schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from retailflow.models.enums import DeliveryStatus, FulfillmentStage
from retailflow.models.order import Order, PaymentProof


class OrderPageOut(BaseModel):
    orders: List[Order]
    page: int
    limit: int
    total: int
    has_more: bool
    total_pages: int


class DeleteOut(BaseModel):
    ok: bool = True
    order_id: int


class OrderStatusIn(BaseModel):
    # 保持 str：非法值由服务层给出 INVALID_ORDER_STATUS
    status: str = Field(..., description="pending / confirmed / packed / shipped / delivered / cancelled")
    data: Dict[str, Any] = Field(default_factory=dict, description="写入 status_history 的附加字段")


# ---------------- 支付 / 核验 ----------------


class VerificationIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # 这里保持 str：非法值由服务层给出 INVALID_VERIFICATION_STATUS
    status: str = Field(..., description="verified / rejected")
    notes: str = ""


class GatewayVerifyIn(BaseModel):
    evidence: Dict[str, Any] = Field(default_factory=dict, description="提交给支付网关的核验凭据")


class RetryPaymentIn(BaseModel):
    payment_data: Dict[str, Any] = Field(default_factory=dict)


class RefundIn(BaseModel):
    amount: float = Field(..., description="退款金额（不与订单金额比对）")
    reason: str = ""


class PendingVerificationOut(BaseModel):
    order_id: int
    transaction_id: str
    customer_name: str
    amount: float
    payment_method: str
    payment_proof: str
    payment_proof_file_name: str
    submitted_at: Optional[datetime] = None
    verification_status: str
    approval_status: str


class VerificationHistoryOut(BaseModel):
    order_id: int
    submitted_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    status: str
    notes: str = ""
    payment_proof: Optional[PaymentProof] = None
    payment_proof_file_name: str


# ---------------- 履约 / 配送 ----------------


class FulfillmentStageIn(BaseModel):
    stage: str = Field(..., description=" / ".join(s.value for s in FulfillmentStage))
    data: Dict[str, Any] = Field(default_factory=dict, description="阶段附带数据（packing / payment_amount 等）")


class HandoverIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    signature: Optional[str] = None
    timestamp: Optional[datetime] = None
    vendor_id: Optional[int] = None


class DeliveryStatusIn(BaseModel):
    delivery_status: str = Field(..., description=" / ".join(s.value for s in DeliveryStatus))
    actual_delivery: Optional[datetime] = None


class DeliveryPersonIn(BaseModel):
    delivery_person_id: str = Field(..., min_length=1)


class VendorAvailabilityIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    available: bool
    notes: str = ""
    timestamp: Optional[datetime] = None
    response_deadline: Optional[datetime] = None


class RevenueOut(BaseModel):
    monthly_revenue: float
