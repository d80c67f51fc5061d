# retailflow/models/report.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal

from pydantic import BaseModel, ConfigDict, Field

from retailflow.models.enums import ExportStatus

ReportPriority = Literal["low", "medium", "high"]


class ExportJob(BaseModel):
    """
    导出任务：每次导出请求创建一次，终态为 completed / failed，不复用。
    """

    model_config = ConfigDict(validate_assignment=True)

    id: int
    report_type: str
    format: str
    filters: Dict[str, Any] = Field(default_factory=dict)
    status: ExportStatus = ExportStatus.PROCESSING
    progress: int = Field(default=0, ge=0, le=100)
    file_name: str | None = None
    file_url: str | None = None
    file_size: int | None = None
    record_count: int | None = None
    created_at: datetime
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    error: str | None = None


class ExportResult(BaseModel):
    export_id: int
    file_name: str
    file_url: str
    record_count: int
    file_size: int


class ReportConfig(BaseModel):
    """
    报表配置；auto_refresh=True 时持有一个 "{type}_refresh" 轮询 job。
    """

    id: int
    name: str
    type: str
    description: str = ""
    filters: Dict[str, Any] = Field(default_factory=dict)
    auto_refresh: bool = False
    refresh_interval: int = Field(default=15, gt=0)
    priority: ReportPriority = "medium"
    enabled: bool = True
    created_at: datetime
    updated_at: datetime


class ReportFilters(BaseModel):
    """
    核验报表过滤条件；未声明的键原样保留（回显在 metadata.filters 中）。
    """

    model_config = ConfigDict(extra="allow")

    start_date: datetime | None = None
    end_date: datetime | None = None
    vendor: str | None = None
    payment_method: str | None = None
