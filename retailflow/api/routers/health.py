# retailflow/api/routers/health.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from retailflow.api.deps import get_container
from retailflow.services.container import ServiceContainer

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(container: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
    wallet = await container.payments.get_wallet_balance()
    return {
        "status": "ok",
        "env": container.settings.ENV,
        "orders": len(container.store),
        "pending_followups": container.orders.pending_followups,
        "wallet_balance": wallet,
    }


@router.get("/ping")
async def ping():
    return {"status": "ok"}
