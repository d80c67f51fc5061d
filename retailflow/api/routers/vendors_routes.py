# retailflow/api/routers/vendors_routes.py
from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Path

from retailflow.api.deps import get_fulfillment
from retailflow.api.routers.vendors_schemas import (
    BulkAvailabilityIn,
    BulkAvailabilityResultOut,
    PendingAvailabilityOut,
)
from retailflow.models.order import Order
from retailflow.services.fulfillment_workflow import FulfillmentWorkflow


def register(router: APIRouter) -> None:
    @router.get("/availability-requests/pending", response_model=List[PendingAvailabilityOut])
    async def pending_availability_requests(
        fulfillment: FulfillmentWorkflow = Depends(get_fulfillment),
    ) -> List[Dict[str, Any]]:
        return await fulfillment.get_pending_availability_requests()

    @router.get("/{vendor_id:int}/orders", response_model=List[Order])
    async def vendor_orders(
        vendor_id: int = Path(..., ge=1),
        fulfillment: FulfillmentWorkflow = Depends(get_fulfillment),
    ) -> List[Order]:
        return await fulfillment.get_vendor_orders(vendor_id)

    @router.get("/{vendor_id:int}/fulfillment-orders", response_model=List[Order])
    async def vendor_fulfillment_orders(
        vendor_id: int = Path(..., ge=1),
        fulfillment: FulfillmentWorkflow = Depends(get_fulfillment),
    ) -> List[Order]:
        return await fulfillment.get_fulfillment_orders(vendor_id)

    @router.post(
        "/{vendor_id:int}/availability/bulk",
        response_model=List[BulkAvailabilityResultOut],
    )
    async def bulk_update_availability(
        body: BulkAvailabilityIn,
        vendor_id: int = Path(..., ge=1),
        fulfillment: FulfillmentWorkflow = Depends(get_fulfillment),
    ) -> List[Dict[str, Any]]:
        updates = [
            {
                "order_id": u.order_id,
                "product_id": u.product_id,
                "availability_data": u.availability_data.model_dump(exclude_none=True),
            }
            for u in body.updates
        ]
        return await fulfillment.update_vendor_availability_bulk(vendor_id, updates)
