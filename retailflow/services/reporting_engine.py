# retailflow/services/reporting_engine.py
from __future__ import annotations

import asyncio
import itertools
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError as PydanticValidationError

from retailflow.core.errors import (
    ExportJobNotFound,
    InvalidDateRange,
    ReportNotFound,
    UnknownReportType,
    ValidationError,
)
from retailflow.models.enums import ExportStatus, ReportType
from retailflow.models.report import ExportJob, ExportResult, ReportConfig, ReportFilters
from retailflow.obs.metrics import export_jobs_total, report_refresh_total
from retailflow.services.order_state_machine import OrderStateMachine
from retailflow.services.payment_gateway import PaymentService
from retailflow.utils.time import ensure_utc, epoch_millis, strictly_after, utc_now

logger = logging.getLogger("retailflow.reports")

BYTES_PER_RECORD = 150
FORMAT_SIZE_MULTIPLIER: Dict[str, float] = {"pdf": 1.5, "csv": 0.8, "xlsx": 1.2, "json": 1.0}
RECENT_WINDOW = timedelta(hours=24)

SchedulerFactory = Callable[[asyncio.AbstractEventLoop], AsyncIOScheduler]


def refresh_key(report_type: str) -> str:
    return f"{report_type}_refresh"


def estimate_file_size(record_count: int, fmt: str) -> int:
    return round(record_count * BYTES_PER_RECORD * FORMAT_SIZE_MULTIPLIER.get(fmt, 1))


def _parse_filters(filters: Optional[Mapping[str, Any]]) -> ReportFilters:
    try:
        parsed = ReportFilters.model_validate(dict(filters or {}))
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid report filters",
            context={
                "errors": exc.errors(include_url=False, include_context=False, include_input=False)
            },
        ) from exc
    start, end = ensure_utc(parsed.start_date), ensure_utc(parsed.end_date)
    if start and end and start > end:
        raise InvalidDateRange(
            "start_date must not be after end_date",
            context={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )
    return parsed.model_copy(update={"start_date": start, "end_date": end})


class ReportingEngine:
    """
    报表 / 导出 / 自动刷新。

    - 只通过 OrderStateMachine 的只读接口和 PaymentService 取数，不参与写路径
    - 自动刷新：每个报表类型至多一个 "{type}_refresh" 调度 job；重复 start 即替换
    - 调度器在第一次需要时于当前事件循环内创建并启动
    """

    def __init__(
        self,
        orders: OrderStateMachine,
        payments: PaymentService,
        *,
        scheduler_factory: SchedulerFactory,
        export_step_delay: float = 0.5,
        storage_host: str = "freshmart.com",
        default_refresh_interval: int = 15,
    ) -> None:
        self._orders = orders
        self._payments = payments
        self._scheduler_factory = scheduler_factory
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._export_step_delay = export_step_delay
        self._storage_host = storage_host
        self._default_interval = default_refresh_interval

        self._reports: Dict[int, ReportConfig] = {}
        self._report_ids = itertools.count(1)
        self._exports: Dict[int, ExportJob] = {}
        self._export_ids = itertools.count(1)

        self._intervals: Dict[str, int] = {}
        self._last_refresh: Dict[str, datetime] = {}
        self._latest: Dict[str, Dict[str, Any]] = {}

    # ------------------------------------------------------------------ #
    # 报表数据
    # ------------------------------------------------------------------ #
    async def get_payment_verification_report(
        self, filters: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        parsed = _parse_filters(filters)
        pending = await self._orders.payment.get_pending_verifications()
        wallet_txns = await self._payments.get_wallet_transactions(100)

        rows = pending
        if parsed.start_date or parsed.end_date:
            rows = [r for r in rows if _within(r["submitted_at"], parsed.start_date, parsed.end_date)]
        if parsed.vendor:
            needle = parsed.vendor.lower()
            rows = [r for r in rows if needle in r["customer_name"].lower()]
        if parsed.payment_method:
            rows = [r for r in rows if r["payment_method"] == parsed.payment_method]

        now = utc_now()
        total_amount = sum(r["amount"] or 0 for r in rows)
        by_method: Dict[str, int] = {}
        for r in rows:
            key = r["payment_method"] or "unknown"
            by_method[key] = by_method.get(key, 0) + 1
        recent = sum(1 for r in rows if ensure_utc(r["submitted_at"]) >= now - RECENT_WINDOW)

        return {
            "data": rows,
            "summary": {
                "total_pending": len(rows),
                "total_amount": total_amount,
                "average_amount": total_amount / len(rows) if rows else 0,
                "recent_activity": recent,
                "by_payment_method": by_method,
            },
            "metadata": {
                "generated_at": now,
                "last_refresh": self._last_refresh.get(ReportType.PAYMENT_VERIFICATION.value, now),
                "filters": dict(filters or {}),
                "total_records": len(pending),
                "filtered_records": len(rows),
                "wallet_transactions": len(wallet_txns),
            },
        }

    async def get_realtime_payment_data(self) -> Dict[str, Any]:
        pending, balance, recent = await asyncio.gather(
            self._orders.payment.get_pending_verifications(),
            self._payments.get_wallet_balance(),
            self._payments.get_wallet_transactions(10),
        )
        return {
            "pending_verifications": len(pending),
            "wallet_balance": balance,
            "recent_transactions": len(recent),
            "last_updated": utc_now(),
        }

    # ------------------------------------------------------------------ #
    # 导出
    # ------------------------------------------------------------------ #
    async def export_report(
        self,
        report_type: str,
        fmt: str = "pdf",
        filters: Optional[Mapping[str, Any]] = None,
    ) -> ExportResult:
        job = ExportJob(
            id=next(self._export_ids),
            report_type=report_type,
            format=fmt,
            filters=dict(filters or {}),
            created_at=utc_now(),
        )
        self._exports[job.id] = job

        try:
            job.progress = 25
            await asyncio.sleep(self._export_step_delay)

            if report_type != ReportType.PAYMENT_VERIFICATION.value:
                raise UnknownReportType(
                    f"Unknown report type: {report_type}",
                    context={"report_type": report_type, "export_id": job.id},
                )
            report = await self.get_payment_verification_report(filters)

            job.progress = 75
            await asyncio.sleep(self._export_step_delay)

            record_count = len(report["data"])
            file_name = f"{report_type}_{epoch_millis()}.{fmt}"
            job.file_name = file_name
            job.file_url = f"https://storage.{self._storage_host}/exports/{file_name}"
            job.file_size = estimate_file_size(record_count, fmt)
            job.record_count = record_count
            job.progress = 100
            job.status = ExportStatus.COMPLETED
            job.completed_at = utc_now()
        except Exception as exc:
            job.status = ExportStatus.FAILED
            job.error = getattr(exc, "message", None) or str(exc)
            job.failed_at = utc_now()
            export_jobs_total.labels(status=ExportStatus.FAILED.value).inc()
            logger.warning("export #%s failed: %s", job.id, job.error)
            raise

        export_jobs_total.labels(status=ExportStatus.COMPLETED.value).inc()
        logger.info("export #%s completed: %s (%d records)", job.id, job.file_name, record_count)
        return ExportResult(
            export_id=job.id,
            file_name=job.file_name,
            file_url=job.file_url,
            record_count=record_count,
            file_size=job.file_size,
        )

    async def get_export_status(self, export_id: int) -> ExportJob:
        job = self._exports.get(int(export_id))
        if job is None:
            raise ExportJobNotFound(export_id)
        return job.model_copy(deep=True)

    # ------------------------------------------------------------------ #
    # 自动刷新
    # ------------------------------------------------------------------ #
    @property
    def scheduler(self) -> Optional[AsyncIOScheduler]:
        return self._scheduler

    def _ensure_scheduler(self) -> AsyncIOScheduler:
        if self._scheduler is None:
            self._scheduler = self._scheduler_factory(asyncio.get_running_loop())
        if not self._scheduler.running:
            self._scheduler.start()
        return self._scheduler

    async def refresh_tick(self, report_type: str) -> Optional[Dict[str, Any]]:
        """单次刷新；失败只记日志，不向调度器抛出。"""
        try:
            payload = await self.get_realtime_payment_data()
        except Exception:
            report_refresh_total.labels(result="failed").inc()
            logger.exception("auto-refresh failed for %s", report_type)
            return None
        self._last_refresh[report_type] = payload["last_updated"]
        self._latest[report_type] = payload
        report_refresh_total.labels(result="ok").inc()
        logger.debug("auto-refresh completed for %s", report_type)
        return payload

    def start_auto_refresh(self, report_type: str, interval_seconds: Optional[int] = None) -> Dict[str, Any]:
        interval = int(interval_seconds or self._default_interval)
        if interval <= 0:
            raise ValidationError(
                "refresh interval must be positive",
                context={"report_type": report_type, "interval_seconds": interval},
            )
        key = refresh_key(report_type)
        scheduler = self._ensure_scheduler()
        scheduler.add_job(
            self.refresh_tick,
            "interval",
            seconds=interval,
            args=[report_type],
            id=key,
            name=key,
            replace_existing=True,
        )
        self._intervals[report_type] = interval
        logger.info("auto-refresh %s every %ss", key, interval)
        return {"refresh_key": key, "interval_seconds": interval, "started_at": utc_now()}

    def stop_auto_refresh(self, report_type: str) -> Dict[str, Any]:
        key = refresh_key(report_type)
        self._intervals.pop(report_type, None)
        if self._scheduler is not None and self._scheduler.get_job(key) is not None:
            self._scheduler.remove_job(key)
            logger.info("auto-refresh %s stopped", key)
            return {"stopped": True, "report_type": report_type}
        return {"stopped": False, "report_type": report_type}

    def is_auto_refreshing(self, report_type: str) -> bool:
        return self._scheduler is not None and self._scheduler.get_job(refresh_key(report_type)) is not None

    def get_data_freshness(self, report_type: str) -> Dict[str, Any]:
        job = self._scheduler.get_job(refresh_key(report_type)) if self._scheduler else None
        return {
            "is_auto_refreshing": job is not None,
            "last_refresh": self._last_refresh.get(report_type),
            "next_refresh": getattr(job, "next_run_time", None) if job else None,
            "refresh_interval": self._intervals.get(report_type) if job else None,
            "latest": self._latest.get(report_type),
        }

    def shutdown(self) -> None:
        for report_type in list(self._intervals):
            self.stop_auto_refresh(report_type)
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None

    # ------------------------------------------------------------------ #
    # 报表配置
    # ------------------------------------------------------------------ #
    async def create_report(self, config: Mapping[str, Any]) -> ReportConfig:
        now = utc_now()
        data = {k: v for k, v in dict(config).items() if v is not None}
        data.pop("id", None)
        data.setdefault("refresh_interval", self._default_interval)
        report = _validate_report({**data, "id": next(self._report_ids), "created_at": now, "updated_at": now})
        self._reports[report.id] = report
        if report.auto_refresh:
            self.start_auto_refresh(report.type, report.refresh_interval)
        return report.model_copy(deep=True)

    async def get_all_reports(self) -> List[ReportConfig]:
        return [self._reports[k].model_copy(deep=True) for k in sorted(self._reports)]

    async def get_report_by_id(self, report_id: int) -> ReportConfig:
        report = self._reports.get(int(report_id))
        if report is None:
            raise ReportNotFound(report_id)
        return report.model_copy(deep=True)

    async def update_report(self, report_id: int, update: Mapping[str, Any]) -> ReportConfig:
        current = self._reports.get(int(report_id))
        if current is None:
            raise ReportNotFound(report_id)

        changes = {k: v for k, v in dict(update).items() if v is not None}
        for k in ("id", "created_at", "updated_at"):
            changes.pop(k, None)
        updated = _validate_report(
            {**current.model_dump(), **changes, "updated_at": strictly_after(current.updated_at)}
        )

        if updated.auto_refresh and not current.auto_refresh:
            self.start_auto_refresh(updated.type, changes.get("refresh_interval") or current.refresh_interval)
        elif current.auto_refresh and not updated.auto_refresh:
            self.stop_auto_refresh(current.type)
        elif updated.auto_refresh and (
            updated.type != current.type or updated.refresh_interval != current.refresh_interval
        ):
            if updated.type != current.type:
                self.stop_auto_refresh(current.type)
            self.start_auto_refresh(updated.type, updated.refresh_interval)

        self._reports[updated.id] = updated
        return updated.model_copy(deep=True)

    async def delete_report(self, report_id: int) -> Dict[str, Any]:
        report = self._reports.pop(int(report_id), None)
        if report is None:
            raise ReportNotFound(report_id)
        if report.auto_refresh:
            self.stop_auto_refresh(report.type)
        return {"success": True, "report_id": report.id}


def _validate_report(data: Mapping[str, Any]) -> ReportConfig:
    try:
        return ReportConfig.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid report configuration",
            context={
                "errors": exc.errors(include_url=False, include_context=False, include_input=False)
            },
        ) from exc


def _within(value: Any, start: Optional[datetime], end: Optional[datetime]) -> bool:
    ts = ensure_utc(value)
    if ts is None:
        return False
    if start and ts < start:
        return False
    if end and ts > end:
        return False
    return True
