# retailflow/api/routers/reports_routes.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Path, Query

from retailflow.api.deps import get_reporting
from retailflow.api.routers.reports_schemas import (
    AutoRefreshIn,
    AutoRefreshStartOut,
    AutoRefreshStopOut,
    ExportIn,
    FreshnessOut,
    RealtimePaymentOut,
)
from retailflow.models.report import ExportJob, ExportResult
from retailflow.services.reporting_engine import ReportingEngine


def register(router: APIRouter) -> None:
    @router.get("/payment-verification")
    async def payment_verification_report(
        start_date: Optional[datetime] = Query(None),
        end_date: Optional[datetime] = Query(None),
        vendor: Optional[str] = Query(None, description="按顾客名做子串匹配（不区分大小写）"),
        payment_method: Optional[str] = Query(None),
        reporting: ReportingEngine = Depends(get_reporting),
    ) -> Dict[str, Any]:
        filters = {
            k: v
            for k, v in {
                "start_date": start_date,
                "end_date": end_date,
                "vendor": vendor,
                "payment_method": payment_method,
            }.items()
            if v is not None
        }
        return await reporting.get_payment_verification_report(filters)

    @router.get("/realtime", response_model=RealtimePaymentOut)
    async def realtime_payment_data(
        reporting: ReportingEngine = Depends(get_reporting),
    ) -> Dict[str, Any]:
        return await reporting.get_realtime_payment_data()

    @router.post("/exports", response_model=ExportResult)
    async def export_report(
        body: ExportIn,
        reporting: ReportingEngine = Depends(get_reporting),
    ) -> ExportResult:
        return await reporting.export_report(body.report_type, body.format, body.filters)

    @router.get("/exports/{export_id:int}", response_model=ExportJob)
    async def export_status(
        export_id: int = Path(..., ge=1),
        reporting: ReportingEngine = Depends(get_reporting),
    ) -> ExportJob:
        return await reporting.get_export_status(export_id)

    @router.post("/auto-refresh/{report_type}", response_model=AutoRefreshStartOut)
    async def start_auto_refresh(
        report_type: str = Path(..., min_length=1),
        body: Optional[AutoRefreshIn] = Body(None),
        reporting: ReportingEngine = Depends(get_reporting),
    ) -> Dict[str, Any]:
        interval = body.interval_seconds if body is not None else None
        return reporting.start_auto_refresh(report_type, interval)

    @router.delete("/auto-refresh/{report_type}", response_model=AutoRefreshStopOut)
    async def stop_auto_refresh(
        report_type: str = Path(..., min_length=1),
        reporting: ReportingEngine = Depends(get_reporting),
    ) -> Dict[str, Any]:
        return reporting.stop_auto_refresh(report_type)

    @router.get("/freshness/{report_type}", response_model=FreshnessOut)
    async def data_freshness(
        report_type: str = Path(..., min_length=1),
        reporting: ReportingEngine = Depends(get_reporting),
    ) -> Dict[str, Any]:
        return reporting.get_data_freshness(report_type)
