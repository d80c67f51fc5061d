# retailflow/services/delivery_sync.py
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from retailflow.core.errors import InvalidDeliveryStatus
from retailflow.models.enums import DeliveryStatus, OrderStatus
from retailflow.models.order import Order
from retailflow.utils.time import ensure_utc

if TYPE_CHECKING:
    from retailflow.services.order_state_machine import OrderStateMachine

# 配送状态 → 顾客可见状态；有映射时以配送侧为准覆盖 status
# 注意 picked_up → packed：骑手取货时顾客侧仍显示“已打包”
DELIVERY_TO_ORDER_STATUS: Dict[DeliveryStatus, OrderStatus] = {
    DeliveryStatus.PENDING: OrderStatus.PENDING,
    DeliveryStatus.ASSIGNED: OrderStatus.CONFIRMED,
    DeliveryStatus.PICKED_UP: OrderStatus.PACKED,
    DeliveryStatus.IN_TRANSIT: OrderStatus.SHIPPED,
    DeliveryStatus.DELIVERED: OrderStatus.DELIVERED,
    DeliveryStatus.FAILED: OrderStatus.CANCELLED,
}


def parse_delivery_status(value: DeliveryStatus | str) -> DeliveryStatus:
    try:
        return DeliveryStatus(value)
    except ValueError:
        raise InvalidDeliveryStatus(
            f"Invalid delivery status: {value}",
            context={"delivery_status": str(value)},
        ) from None


def delivery_patch(status: DeliveryStatus) -> Dict[str, Any]:
    patch: Dict[str, Any] = {"delivery_status": status}
    mapped = DELIVERY_TO_ORDER_STATUS.get(status)
    if mapped is not None:
        patch["status"] = mapped
    return patch


class DeliverySync:
    def __init__(self, orders: "OrderStateMachine") -> None:
        self._orders = orders

    async def update_delivery_status(
        self,
        order_id: int,
        delivery_status: DeliveryStatus | str,
        actual_delivery: Optional[datetime] = None,
    ) -> Order:
        status = parse_delivery_status(delivery_status)

        def compute(order: Order) -> Dict[str, Any]:
            patch = delivery_patch(status)
            if actual_delivery is not None:
                patch["actual_delivery"] = ensure_utc(actual_delivery)
            return patch

        return await self._orders.mutate(order_id, compute, op=f"delivery_{status.value}")

    async def assign_delivery_personnel(self, order_id: int, delivery_person_id: str | int) -> Order:
        """指派配送员：delivery_status=assigned，status 按映射表同步。"""

        def compute(order: Order) -> Dict[str, Any]:
            patch = delivery_patch(DeliveryStatus.ASSIGNED)
            patch["delivery_person_id"] = str(delivery_person_id)
            return patch

        return await self._orders.mutate(order_id, compute, op="delivery_assign")
