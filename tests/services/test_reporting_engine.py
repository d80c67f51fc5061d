# tests/services/test_reporting_engine.py
from __future__ import annotations

from datetime import timedelta

import pytest

from retailflow.core.errors import (
    ExportJobNotFound,
    InvalidDateRange,
    ReportNotFound,
    UnknownReportType,
    ValidationError,
)
from retailflow.models.enums import ExportStatus
from retailflow.services.reporting_engine import estimate_file_size, refresh_key
from retailflow.utils.time import utc_now
from tests._drafts import bank_draft_with_proof, cash_draft

pytestmark = pytest.mark.asyncio

REPORT = "payment_verification"


async def _seed_pending(container):
    await container.orders.create(bank_draft_with_proof())
    await container.orders.create(
        bank_draft_with_proof(
            payment_method="jazzcash",
            delivery_address={"name": "Zara Ali", "city": "Lahore"},
            payment_result={"transaction_id": "JC-9"},
            total=400,
        )
    )
    await container.orders.create(cash_draft())


def test_file_size_estimate():
    assert estimate_file_size(10, "pdf") == 2250
    assert estimate_file_size(10, "csv") == 1200
    assert estimate_file_size(10, "unknown") == 1500
    assert estimate_file_size(0, "pdf") == 0


async def test_report_summary(container, fake_payments):
    await _seed_pending(container)
    await container.orders.create(cash_draft(payment_method="wallet"))

    report = await container.reporting.get_payment_verification_report()

    summary = report["summary"]
    assert summary["total_pending"] == 2
    assert summary["total_amount"] == 650.0
    assert summary["average_amount"] == 325.0
    assert summary["recent_activity"] == 2
    assert summary["by_payment_method"] == {"bank": 1, "jazzcash": 1}
    assert report["metadata"]["total_records"] == 2
    assert report["metadata"]["wallet_transactions"] == 1


async def test_report_filters(container):
    await _seed_pending(container)
    reporting = container.reporting

    by_vendor = await reporting.get_payment_verification_report({"vendor": "zara"})
    assert [r["customer_name"] for r in by_vendor["data"]] == ["Zara Ali"]

    by_method = await reporting.get_payment_verification_report({"payment_method": "bank"})
    assert [r["payment_method"] for r in by_method["data"]] == ["bank"]

    future = await reporting.get_payment_verification_report(
        {"start_date": (utc_now() + timedelta(days=1)).isoformat()}
    )
    assert future["data"] == []
    assert future["summary"]["average_amount"] == 0
    assert future["metadata"]["filtered_records"] == 0
    assert future["metadata"]["total_records"] == 2


async def test_inverted_date_range(container):
    now = utc_now()
    with pytest.raises(InvalidDateRange):
        await container.reporting.get_payment_verification_report(
            {"start_date": now, "end_date": now - timedelta(days=1)}
        )
    with pytest.raises(ValidationError):
        await container.reporting.get_payment_verification_report({"start_date": "not-a-date"})


async def test_export_with_no_pending_verifications(container):
    result = await container.reporting.export_report(REPORT, "pdf")

    assert result.record_count == 0
    assert result.file_url
    assert result.file_url.startswith("https://storage.freshmart.com/exports/payment_verification_")
    assert result.file_url.endswith(".pdf")

    job = await container.reporting.get_export_status(result.export_id)
    assert job.status is ExportStatus.COMPLETED
    assert job.progress == 100
    assert job.completed_at is not None


async def test_export_counts_records(container):
    await _seed_pending(container)
    result = await container.reporting.export_report(REPORT, "csv", {"payment_method": "jazzcash"})
    assert result.record_count == 1
    assert result.file_size == estimate_file_size(1, "csv")


async def test_unknown_report_type_fails_job(container):
    with pytest.raises(UnknownReportType):
        await container.reporting.export_report("sales", "pdf")

    job = await container.reporting.get_export_status(1)
    assert job.status is ExportStatus.FAILED
    assert job.progress == 25
    assert job.failed_at is not None
    assert "Unknown report type" in job.error


async def test_missing_export_job(container):
    with pytest.raises(ExportJobNotFound):
        await container.reporting.get_export_status(123)


async def test_auto_refresh_keeps_one_job_per_type(container):
    reporting = container.reporting

    started = reporting.start_auto_refresh(REPORT, 60)
    assert started["refresh_key"] == refresh_key(REPORT) == "payment_verification_refresh"
    reporting.start_auto_refresh(REPORT, 30)

    jobs = reporting.scheduler.get_jobs()
    assert [j.id for j in jobs] == ["payment_verification_refresh"]
    assert reporting.get_data_freshness(REPORT)["refresh_interval"] == 30

    assert reporting.stop_auto_refresh(REPORT)["stopped"] is True
    assert reporting.stop_auto_refresh(REPORT)["stopped"] is False
    assert reporting.is_auto_refreshing(REPORT) is False


async def test_stop_without_scheduler_is_noop(container):
    assert container.reporting.stop_auto_refresh(REPORT) == {"stopped": False, "report_type": REPORT}


async def test_refresh_tick_updates_freshness(container):
    await _seed_pending(container)
    payload = await container.reporting.refresh_tick(REPORT)

    assert payload["pending_verifications"] == 2
    assert payload["wallet_balance"] == 10_000.0
    freshness = container.reporting.get_data_freshness(REPORT)
    assert freshness["last_refresh"] == payload["last_updated"]
    assert freshness["latest"] == payload
    assert freshness["is_auto_refreshing"] is False


async def test_refresh_tick_failure_is_logged(container, fake_payments, monkeypatch, caplog):
    async def boom():
        raise RuntimeError("wallet offline")

    monkeypatch.setattr(fake_payments, "get_wallet_balance", boom)

    assert await container.reporting.refresh_tick(REPORT) is None
    assert any("auto-refresh failed" in r.getMessage() for r in caplog.records)


async def test_non_positive_interval_rejected(container):
    with pytest.raises(ValidationError):
        container.reporting.start_auto_refresh(REPORT, -5)


async def test_report_config_crud_drives_refresh(container):
    reporting = container.reporting

    cfg = await reporting.create_report(
        {"name": "Payments", "type": REPORT, "auto_refresh": True, "refresh_interval": 45}
    )
    assert cfg.id == 1
    assert cfg.priority == "medium"
    assert reporting.is_auto_refreshing(REPORT)

    off = await reporting.update_report(cfg.id, {"auto_refresh": False, "name": "Renamed"})
    assert off.name == "Renamed"
    assert off.updated_at > cfg.updated_at
    assert not reporting.is_auto_refreshing(REPORT)

    on = await reporting.update_report(cfg.id, {"auto_refresh": True})
    assert on.auto_refresh is True
    assert reporting.get_data_freshness(REPORT)["refresh_interval"] == 45

    assert [r.id for r in await reporting.get_all_reports()] == [cfg.id]
    assert await reporting.delete_report(cfg.id) == {"success": True, "report_id": cfg.id}
    assert not reporting.is_auto_refreshing(REPORT)

    with pytest.raises(ReportNotFound):
        await reporting.get_report_by_id(cfg.id)
    with pytest.raises(ReportNotFound):
        await reporting.delete_report(cfg.id)


async def test_report_config_defaults_and_validation(container):
    cfg = await container.reporting.create_report({"name": "Daily", "type": "sales"})
    assert cfg.refresh_interval == 15
    assert cfg.auto_refresh is False

    with pytest.raises(ValidationError):
        await container.reporting.create_report({"name": "Bad", "type": "x", "priority": "urgent"})
