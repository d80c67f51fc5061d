# retailflow/api/routers/vendors_schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from retailflow.api.routers.orders_schemas import VendorAvailabilityIn
from retailflow.models.order import Order


class BulkAvailabilityItemIn(BaseModel):
    order_id: int = Field(..., ge=1)
    product_id: int
    availability_data: VendorAvailabilityIn


class BulkAvailabilityIn(BaseModel):
    updates: List[BulkAvailabilityItemIn] = Field(default_factory=list)


class BulkAvailabilityResultOut(BaseModel):
    order_id: int
    success: bool
    data: Optional[Order] = None
    error: Optional[str] = None
    code: Optional[str] = None


class PendingAvailabilityOut(BaseModel):
    """待供应商回复的订单（订单字段 + response_deadline）。"""

    model_config = ConfigDict(extra="allow")

    id: int
    response_deadline: datetime
    items: List[Dict[str, Any]] = Field(default_factory=list)
