# retailflow/api/routers/reports_config_routes.py
from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Path, status

from retailflow.api.deps import get_reporting
from retailflow.api.routers.reports_schemas import (
    ReportConfigIn,
    ReportConfigPatch,
    ReportDeleteOut,
)
from retailflow.models.report import ReportConfig
from retailflow.services.reporting_engine import ReportingEngine


def register(router: APIRouter) -> None:
    @router.post("/configs", response_model=ReportConfig, status_code=status.HTTP_201_CREATED)
    async def create_report(
        body: ReportConfigIn,
        reporting: ReportingEngine = Depends(get_reporting),
    ) -> ReportConfig:
        return await reporting.create_report(body.model_dump())

    @router.get("/configs", response_model=List[ReportConfig])
    async def list_reports(reporting: ReportingEngine = Depends(get_reporting)) -> List[ReportConfig]:
        return await reporting.get_all_reports()

    @router.get("/configs/{report_id:int}", response_model=ReportConfig)
    async def get_report(
        report_id: int = Path(..., ge=1),
        reporting: ReportingEngine = Depends(get_reporting),
    ) -> ReportConfig:
        return await reporting.get_report_by_id(report_id)

    @router.patch("/configs/{report_id:int}", response_model=ReportConfig)
    async def update_report(
        body: ReportConfigPatch,
        report_id: int = Path(..., ge=1),
        reporting: ReportingEngine = Depends(get_reporting),
    ) -> ReportConfig:
        """auto_refresh 由 false→true 启动刷新 job，true→false 停止。"""
        return await reporting.update_report(report_id, body.model_dump(exclude_unset=True))

    @router.delete("/configs/{report_id:int}", response_model=ReportDeleteOut)
    async def delete_report(
        report_id: int = Path(..., ge=1),
        reporting: ReportingEngine = Depends(get_reporting),
    ) -> Dict[str, Any]:
        return await reporting.delete_report(report_id)
