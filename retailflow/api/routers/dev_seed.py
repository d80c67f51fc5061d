# retailflow/api/routers/dev_seed.py
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from retailflow.api.deps import get_container
from retailflow.api.problem import raise_problem
from retailflow.services.container import ServiceContainer

logger = logging.getLogger("retailflow")

router = APIRouter(prefix="/dev", tags=["dev-seed"])


@router.post("/seed")
async def reseed_orders(container: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
    """
    dev 初始化：
    - 先等待仍在排队的后续任务（自动确认）结束
    - 用 fixture 整体替换内存订单，id 计数器跟随最大 id
    """
    await container.orders.drain_followups()
    try:
        count = container.reseed()
    except (OSError, ValueError) as exc:
        raise_problem(
            status_code=500,
            error_code="seed_failed",
            message=f"种子订单加载失败：{exc}",
            context={"path": container.settings.SEED_FIXTURE_PATH},
        )
    logger.info("dev reseed: %d orders", count)
    return {"seeded": count, "next_id": container.store.next_id()}
