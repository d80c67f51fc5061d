# retailflow/api/routers/reports_schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from retailflow.models.report import ReportPriority


class ExportIn(BaseModel):
    report_type: str = Field(..., description="目前仅支持 payment_verification")
    format: str = Field("pdf", description="pdf / csv / xlsx / json")
    filters: Dict[str, Any] = Field(default_factory=dict)


class AutoRefreshIn(BaseModel):
    interval_seconds: Optional[int] = Field(default=None, gt=0)


class AutoRefreshStartOut(BaseModel):
    refresh_key: str
    interval_seconds: int
    started_at: datetime


class AutoRefreshStopOut(BaseModel):
    stopped: bool
    report_type: str


class FreshnessOut(BaseModel):
    is_auto_refreshing: bool
    last_refresh: Optional[datetime] = None
    next_refresh: Optional[datetime] = None
    refresh_interval: Optional[int] = None
    latest: Optional[Dict[str, Any]] = None


class RealtimePaymentOut(BaseModel):
    pending_verifications: int
    wallet_balance: float
    recent_transactions: int
    last_updated: datetime


class ReportConfigIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    description: str = ""
    filters: Dict[str, Any] = Field(default_factory=dict)
    auto_refresh: bool = False
    refresh_interval: Optional[int] = Field(default=None, gt=0)
    priority: ReportPriority = "medium"
    enabled: bool = True


class ReportConfigPatch(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(default=None, min_length=1)
    type: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    filters: Optional[Dict[str, Any]] = None
    auto_refresh: Optional[bool] = None
    refresh_interval: Optional[int] = Field(default=None, gt=0)
    priority: Optional[ReportPriority] = None
    enabled: Optional[bool] = None


class ReportDeleteOut(BaseModel):
    success: bool
    report_id: int
