# retailflow/core/scheduler.py
from __future__ import annotations

import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from retailflow.core.config import AppSettings


def build_scheduler(
    settings: AppSettings, event_loop: asyncio.AbstractEventLoop | None = None
) -> AsyncIOScheduler:
    """
    报表自动刷新用的调度器：
    - 不在这里 start()，由 ReportingEngine 在事件循环内按需创建并启动
    - coalesce：积压的 tick 只补跑一次
    - max_instances=1：同一个 refresh job 不并发
    """
    options = {}
    if event_loop is not None:
        options["event_loop"] = event_loop
    return AsyncIOScheduler(
        timezone=settings.SCHEDULER_TIMEZONE,
        job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 30},
        **options,
    )
