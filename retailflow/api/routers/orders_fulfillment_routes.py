# retailflow/api/routers/orders_fulfillment_routes.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query

from retailflow.api.deps import get_delivery, get_fulfillment
from retailflow.api.routers.orders_schemas import (
    DeliveryPersonIn,
    DeliveryStatusIn,
    FulfillmentStageIn,
    HandoverIn,
    VendorAvailabilityIn,
)
from retailflow.models.order import Order, VendorAvailability
from retailflow.services.delivery_sync import DeliverySync
from retailflow.services.fulfillment_workflow import FulfillmentWorkflow


def register(router: APIRouter) -> None:
    @router.post("/{order_id:int}/fulfillment-stage", response_model=Order)
    async def update_fulfillment_stage(
        body: FulfillmentStageIn,
        order_id: int = Path(..., ge=1),
        fulfillment: FulfillmentWorkflow = Depends(get_fulfillment),
    ) -> Order:
        return await fulfillment.update_fulfillment_stage(order_id, body.stage, body.data)

    @router.post("/{order_id:int}/handover", response_model=Order)
    async def confirm_handover(
        body: HandoverIn,
        order_id: int = Path(..., ge=1),
        fulfillment: FulfillmentWorkflow = Depends(get_fulfillment),
    ) -> Order:
        return await fulfillment.confirm_handover(order_id, body.model_dump())

    @router.get(
        "/{order_id:int}/vendor-availability",
        response_model=Dict[str, VendorAvailability],
    )
    async def vendor_availability_status(
        order_id: int = Path(..., ge=1),
        fulfillment: FulfillmentWorkflow = Depends(get_fulfillment),
    ) -> Dict[str, VendorAvailability]:
        return await fulfillment.get_vendor_availability_status(order_id)

    @router.put(
        "/{order_id:int}/vendor-availability/{vendor_id:int}/{product_id:int}",
        response_model=Order,
    )
    async def update_vendor_availability(
        body: VendorAvailabilityIn,
        order_id: int = Path(..., ge=1),
        vendor_id: int = Path(..., ge=1),
        product_id: int = Path(...),
        fulfillment: FulfillmentWorkflow = Depends(get_fulfillment),
    ) -> Order:
        return await fulfillment.update_vendor_availability(
            order_id, vendor_id, product_id, body.model_dump(exclude_none=True)
        )

    @router.get("/{order_id:int}/vendors/{vendor_id:int}/items")
    async def vendor_items(
        order_id: int = Path(..., ge=1),
        vendor_id: int = Path(..., ge=1),
        fulfillment: FulfillmentWorkflow = Depends(get_fulfillment),
    ) -> Dict[str, Any]:
        return await fulfillment.get_vendor_items(order_id, vendor_id)

    @router.get("/{order_id:int}/price-summary")
    async def price_summary(
        order_id: int = Path(..., ge=1),
        role: str = Query("customer", pattern="^(customer|vendor|admin)$"),
        vendor_id: Optional[int] = Query(None, ge=1),
        include_categories: bool = Query(True),
        fulfillment: FulfillmentWorkflow = Depends(get_fulfillment),
    ) -> Dict[str, Any]:
        return await fulfillment.get_price_summary(
            order_id,
            user_role=role,
            vendor_id=vendor_id,
            include_categories=include_categories,
        )

    @router.post("/{order_id:int}/delivery-status", response_model=Order)
    async def update_delivery_status(
        body: DeliveryStatusIn,
        order_id: int = Path(..., ge=1),
        delivery: DeliverySync = Depends(get_delivery),
    ) -> Order:
        return await delivery.update_delivery_status(
            order_id, body.delivery_status, body.actual_delivery
        )

    @router.post("/{order_id:int}/delivery-person", response_model=Order)
    async def assign_delivery_person(
        body: DeliveryPersonIn,
        order_id: int = Path(..., ge=1),
        delivery: DeliverySync = Depends(get_delivery),
    ) -> Order:
        return await delivery.assign_delivery_personnel(order_id, body.delivery_person_id)
