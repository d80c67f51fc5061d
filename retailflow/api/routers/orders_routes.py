# retailflow/api/routers/orders_routes.py
from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, Path, Query, status

from retailflow.api.deps import get_orders
from retailflow.api.routers.orders_schemas import DeleteOut, OrderPageOut, OrderStatusIn, RevenueOut
from retailflow.models.order import Order, OrderDraft
from retailflow.services.order_state_machine import OrderStateMachine


def register(router: APIRouter) -> None:
    @router.get("", response_model=List[Order])
    async def list_orders(orders: OrderStateMachine = Depends(get_orders)) -> List[Order]:
        return await orders.get_all()

    @router.get("/paginated", response_model=OrderPageOut)
    async def list_orders_paginated(
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=200),
        orders: OrderStateMachine = Depends(get_orders),
    ) -> Dict[str, Any]:
        return await orders.get_all_paginated(page, limit)

    @router.get("/revenue/monthly", response_model=RevenueOut)
    async def monthly_revenue(orders: OrderStateMachine = Depends(get_orders)) -> RevenueOut:
        return RevenueOut(monthly_revenue=await orders.get_monthly_revenue())

    @router.get("/revenue/by-payment-method", response_model=Dict[str, float])
    async def revenue_by_payment_method(
        orders: OrderStateMachine = Depends(get_orders),
    ) -> Dict[str, float]:
        return await orders.get_revenue_by_payment_method()

    @router.post("", response_model=Order, status_code=status.HTTP_201_CREATED)
    async def create_order(
        draft: OrderDraft,
        orders: OrderStateMachine = Depends(get_orders),
    ) -> Order:
        return await orders.create(draft)

    @router.get("/{order_id:int}", response_model=Order)
    async def get_order(
        order_id: int = Path(..., ge=1),
        orders: OrderStateMachine = Depends(get_orders),
    ) -> Order:
        return await orders.get_by_id(order_id)

    @router.patch("/{order_id:int}", response_model=Order)
    async def patch_order(
        order_id: int = Path(..., ge=1),
        patch: Dict[str, Any] = Body(..., description="合并到当前订单上的字段"),
        orders: OrderStateMachine = Depends(get_orders),
    ) -> Order:
        return await orders.update(order_id, patch)

    @router.put("/{order_id:int}/status", response_model=Order)
    async def update_order_status(
        body: OrderStatusIn,
        order_id: int = Path(..., ge=1),
        orders: OrderStateMachine = Depends(get_orders),
    ) -> Order:
        return await orders.update_order_status(order_id, body.status, body.data)

    @router.delete("/{order_id:int}", response_model=DeleteOut)
    async def delete_order(
        order_id: int = Path(..., ge=1),
        orders: OrderStateMachine = Depends(get_orders),
    ) -> DeleteOut:
        await orders.delete(order_id)
        return DeleteOut(order_id=order_id)
