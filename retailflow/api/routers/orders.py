# retailflow/api/routers/orders.py
from __future__ import annotations

from fastapi import APIRouter

from retailflow.api.problem import PROBLEM_RESPONSES
from retailflow.api.routers import orders_fulfillment_routes
from retailflow.api.routers import orders_payment_routes
from retailflow.api.routers import orders_routes
from retailflow.api.routers.orders_schemas import OrderPageOut

router = APIRouter(prefix="/orders", tags=["orders"], responses=PROBLEM_RESPONSES)


def _register_all_routes() -> None:
    orders_routes.register(router)
    orders_payment_routes.register(router)
    orders_fulfillment_routes.register(router)


_register_all_routes()

__all__ = ["router", "OrderPageOut"]
