# retailflow/services/fulfillment_workflow.py
from __future__ import annotations

import logging
import math
import random
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from retailflow.core.errors import InvalidStage, OrderFlowError
from retailflow.models.enums import DeliveryStatus, FulfillmentStage, OrderStatus
from retailflow.models.order import (
    DeliveryAssignment,
    Order,
    OrderItem,
    VendorAvailability,
)
from retailflow.utils.time import ensure_utc, utc_now

if TYPE_CHECKING:
    from retailflow.services.order_state_machine import OrderStateMachine

logger = logging.getLogger("retailflow.fulfillment")

STAGE_TO_STATUS: Dict[FulfillmentStage, OrderStatus] = {
    FulfillmentStage.AVAILABILITY_CONFIRMED: OrderStatus.CONFIRMED,
    FulfillmentStage.PACKED: OrderStatus.PACKED,
    FulfillmentStage.PAYMENT_PROCESSED: OrderStatus.PAYMENT_PROCESSED,
    FulfillmentStage.ADMIN_PAID: OrderStatus.READY_FOR_DELIVERY,
    FulfillmentStage.HANDED_OVER: OrderStatus.SHIPPED,
}

# 固定配送员名单；按收货城市取人，未知城市归 Lahore
DELIVERY_ROSTER: Sequence[DeliveryAssignment] = (
    DeliveryAssignment(name="Ali Raza", phone="+923001234567", eta="13:30-14:00", vehicle="Bike-15"),
    DeliveryAssignment(name="Hassan Ahmed", phone="+923009876543", eta="14:00-14:30", vehicle="Car-08"),
    DeliveryAssignment(name="Usman Khan", phone="+923005555666", eta="12:45-13:15", vehicle="Bike-22"),
)
CITY_TO_ROSTER_INDEX: Dict[str, int] = {"Lahore": 0, "Karachi": 1, "Islamabad": 2}
DEFAULT_CITY = "Lahore"

VENDOR_NAMES: Dict[int, str] = {1: "Fresh Foods Co.", 2: "Premium Grocers", 3: "Organic Market"}
QUALITY_GRADES = ("Premium", "Standard", "Economy")

RESPONSE_WINDOW = timedelta(hours=2)
AMOUNT_TOLERANCE = 0.01

# 价格汇总：成本价按售价 65%~80% 模拟；只有 admin / vendor 看得到成本与毛利
COST_RATIO_RANGE: Tuple[float, float] = (0.65, 0.80)
COST_VISIBLE_ROLES: FrozenSet[str] = frozenset({"admin", "vendor"})
CATEGORY_KEYWORDS: Sequence[Tuple[str, Tuple[str, ...]]] = (
    ("Grains & Cereals", ("rice", "flour", "wheat")),
    ("Meat & Poultry", ("meat", "chicken", "mutton", "beef")),
    ("Fruits", ("apple", "mango", "banana", "orange", "fruit")),
    ("Vegetables", ("tomato", "potato", "onion", "vegetable")),
    ("Dairy Products", ("milk", "cheese", "yogurt", "dairy")),
)
DEFAULT_CATEGORY = "Other Items"


def vendor_for_product(product_id: int) -> int:
    # 占位分配规则，不做真实的供应商匹配
    return int(product_id) % 3 + 1


def item_category(name: Optional[str]) -> str:
    lowered = (name or "").lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(k in lowered for k in keywords):
            return category
    return DEFAULT_CATEGORY


def availability_key(product_id: int, vendor_id: int) -> str:
    return f"{int(product_id)}_{int(vendor_id)}"


def vendor_name(vendor_id: int) -> str:
    return VENDOR_NAMES.get(int(vendor_id), "Unknown Vendor")


def parse_stage(value: FulfillmentStage | str) -> FulfillmentStage:
    try:
        return FulfillmentStage(value)
    except ValueError:
        raise InvalidStage(
            f"Invalid fulfillment stage: {value}",
            context={"stage": str(value), "allowed": [s.value for s in FulfillmentStage]},
        ) from None


def auto_assign_delivery_personnel(order: Order) -> DeliveryAssignment:
    city = (order.delivery_address.city if order.delivery_address else None) or DEFAULT_CITY
    return DELIVERY_ROSTER[CITY_TO_ROSTER_INDEX.get(city, 0)]


def response_deadline(created_at: datetime) -> datetime:
    return ensure_utc(created_at) + RESPONSE_WINDOW


def escalation_level(created_at: datetime, now: Optional[datetime] = None) -> str:
    hours = ((now or utc_now()) - ensure_utc(created_at)).total_seconds() / 3600
    if hours > 2:
        return "overdue"
    if hours > 1.5:
        return "urgent"
    if hours > 1:
        return "high"
    return "normal"


def amount_matches(total: float, paid: Any) -> bool:
    if not paid or not total:
        return False
    return abs(float(paid) - float(total)) <= AMOUNT_TOLERANCE


def all_items_confirmed(order: Order, availability: Mapping[str, VendorAvailability]) -> bool:
    if not order.items:
        return False
    for item in order.items:
        entry = availability.get(availability_key(item.product_id, vendor_for_product(item.product_id)))
        if entry is None or entry.available is not True:
            return False
    return True


def has_vendor_products(order: Order, vendor_id: int) -> bool:
    return any(vendor_for_product(i.product_id) == int(vendor_id) for i in order.items)


def _stamp(order: Order, *keys: str, now: datetime) -> Dict[str, datetime]:
    stamps = dict(order.order_status_timestamps)
    for k in keys:
        stamps[k] = now
    return stamps


class FulfillmentWorkflow:
    """
    供应商侧履约：

    - 阶段推进（stage → status 映射表）
    - 首次进入 packed 时自动指派配送员
    - 供应商按 (product_id, vendor_id) 回复可供货；全部确认后进入 availability_confirmed
    - 交接确认（不校验前置阶段，只告警）
    """

    def __init__(self, orders: "OrderStateMachine", *, rng: Optional[random.Random] = None) -> None:
        self._orders = orders
        self._rng = rng or random.Random()

    async def update_fulfillment_stage(
        self,
        order_id: int,
        stage: FulfillmentStage | str,
        data: Optional[Mapping[str, Any]] = None,
    ) -> Order:
        target = parse_stage(stage)
        extra = dict(data or {})

        def compute(order: Order) -> Dict[str, Any]:
            now = utc_now()
            status = STAGE_TO_STATUS[target]
            patch: Dict[str, Any] = {
                "fulfillment_stage": target,
                "status": status,
                "order_status_timestamps": _stamp(order, target.value, status.value, now=now),
            }

            if target is FulfillmentStage.PACKED:
                if order.assigned_delivery is None:
                    patch["assigned_delivery"] = auto_assign_delivery_personnel(order)
                    logger.info(
                        "order #%s auto-assigned to %s",
                        order.id,
                        patch["assigned_delivery"].name,
                    )
                patch["packing_info"] = {
                    **extra,
                    "completed_at": now,
                    "quality_verified": bool(extra.get("quality_checked", False)),
                    "packed_by": extra.get("vendor_id") or "vendor",
                }
            elif target is FulfillmentStage.PAYMENT_PROCESSED:
                patch["payment_processed_by"] = extra.get("vendor_id") or "vendor"
                patch["payment_processed_at"] = now
            elif target is FulfillmentStage.ADMIN_PAID:
                matched = amount_matches(order.amount, extra.get("payment_amount"))
                patch["admin_payment_proof"] = extra.get("proof_data")
                patch["admin_paid_at"] = now
                patch["amount_matched"] = matched
                patch["vendor_confirmed"] = matched
            return patch

        return await self._orders.mutate(order_id, compute, op=f"stage_{target.value}")

    async def update_vendor_availability(
        self,
        order_id: int,
        vendor_id: int,
        product_id: int,
        data: Mapping[str, Any],
    ) -> Order:
        vendor_id, product_id = int(vendor_id), int(product_id)

        def compute(order: Order) -> Dict[str, Any]:
            now = utc_now()
            entry = VendorAvailability(
                available=bool(data.get("available", False)),
                notes=data.get("notes") or "",
                timestamp=data.get("timestamp") or now,
                vendor_id=vendor_id,
                product_id=product_id,
                response_deadline=data.get("response_deadline") or response_deadline(order.created_at),
                escalation_level=escalation_level(order.created_at, now),
            )
            availability = dict(order.vendor_availability)
            availability[availability_key(product_id, vendor_id)] = entry
            patch: Dict[str, Any] = {"vendor_availability": availability}

            if order.fulfillment_stage is None and all_items_confirmed(order, availability):
                stage = FulfillmentStage.AVAILABILITY_CONFIRMED
                status = STAGE_TO_STATUS[stage]
                patch.update(
                    fulfillment_stage=stage,
                    status=status,
                    order_status_timestamps=_stamp(order, stage.value, status.value, now=now),
                )
                logger.info("order #%s: all items confirmed by vendors", order.id)
            return patch

        return await self._orders.mutate(order_id, compute, op="vendor_availability")

    async def update_vendor_availability_bulk(
        self, vendor_id: int, updates: Sequence[Mapping[str, Any]]
    ) -> List[Dict[str, Any]]:
        """逐条写入；单条失败不影响其它条目，结果里带 success / error。"""
        results: List[Dict[str, Any]] = []
        for u in updates:
            order_id = u.get("order_id")
            try:
                order = await self.update_vendor_availability(
                    order_id, vendor_id, u.get("product_id"), u.get("availability_data") or {}
                )
            except OrderFlowError as exc:
                results.append(
                    {"order_id": order_id, "success": False, "error": exc.message, "code": exc.code}
                )
            else:
                results.append({"order_id": order_id, "success": True, "data": order})
        return results

    async def confirm_handover(self, order_id: int, data: Mapping[str, Any]) -> Order:
        def compute(order: Order) -> Dict[str, Any]:
            if order.fulfillment_stage is not FulfillmentStage.ADMIN_PAID:
                logger.warning(
                    "order #%s handed over from stage %s",
                    order.id,
                    order.fulfillment_stage.value if order.fulfillment_stage else None,
                )
            now = utc_now()
            stage = FulfillmentStage.HANDED_OVER
            status = STAGE_TO_STATUS[stage]
            vendor_id = data.get("vendor_id")
            return {
                "fulfillment_stage": stage,
                "status": status,
                "delivery_status": DeliveryStatus.PICKED_UP,
                "handover_signature": data.get("signature"),
                "handover_timestamp": data.get("timestamp") or now,
                "handover_vendor_id": int(vendor_id) if vendor_id is not None else None,
                "order_status_timestamps": _stamp(order, stage.value, status.value, now=now),
            }

        return await self._orders.mutate(order_id, compute, op="handover")

    # ------------------------------------------------------------------ #
    # 供应商视图
    # ------------------------------------------------------------------ #
    async def get_vendor_orders(self, vendor_id: int) -> List[Order]:
        return [o for o in await self._orders.get_all() if has_vendor_products(o, vendor_id)]

    async def get_fulfillment_orders(self, vendor_id: int) -> List[Order]:
        vendor_id = int(vendor_id)
        out: List[Order] = []
        for o in await self._orders.get_all():
            if not has_vendor_products(o, vendor_id):
                continue
            if any(a.vendor_id == vendor_id and a.available for a in o.vendor_availability.values()):
                out.append(o)
        return out

    async def get_pending_availability_requests(self) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for o in await self._orders.get_all():
            if o.fulfillment_stage is not None or not o.items:
                continue
            missing = any(
                availability_key(i.product_id, vendor_for_product(i.product_id))
                not in o.vendor_availability
                for i in o.items
            )
            if missing:
                row = o.model_dump()
                row["response_deadline"] = response_deadline(o.created_at)
                out.append(row)
        return out

    async def get_vendor_availability_status(self, order_id: int) -> Dict[str, VendorAvailability]:
        order = await self._orders.get_by_id(order_id)
        return dict(order.vendor_availability)

    async def get_vendor_items(self, order_id: int, vendor_id: int) -> Dict[str, Any]:
        vendor_id = int(vendor_id)
        order = await self._orders.get_by_id(order_id)
        now = utc_now()
        name = vendor_name(vendor_id)

        items = [
            _vendor_item(order, item, vendor_id, name, now)
            for item in order.items
            if vendor_for_product(item.product_id) == vendor_id
        ]
        return {
            "vendor": name,
            "vendor_id": vendor_id,
            "items": items,
            "total_items": len(items),
            "vendor_total": sum(i["price"] * i["quantity"] for i in items),
            "last_updated": now,
        }

    async def get_price_summary(
        self,
        order_id: int,
        *,
        user_role: str = "customer",
        vendor_id: Optional[int] = None,
        include_categories: bool = True,
    ) -> Dict[str, Any]:
        """
        订单价格汇总。

        - customer：只有售价；成本 / 毛利相关字段一律为 None
        - vendor：带 vendor_id 时只看自己供货的明细
        - admin：全部明细 + 成本 / 毛利
        - include_categories：按品类分组，组内再按供应商汇总
        """
        role = (user_role or "customer").lower()
        can_view_cost = role in COST_VISIBLE_ROLES
        order = await self._orders.get_by_id(order_id)

        rows = [self._price_row(item, can_view_cost) for item in order.items]
        if role == "vendor" and vendor_id is not None:
            rows = [r for r in rows if r["vendor_id"] == int(vendor_id)]

        total_selling = round(sum(r["total_selling"] for r in rows), 2)
        total_cost = total_profit = average_margin = None
        if can_view_cost:
            total_cost = round(sum(r["total_cost"] for r in rows), 2)
            total_profit = round(sum(r["total_profit"] for r in rows), 2)
            if total_cost > 0:
                average_margin = round(total_profit / total_cost * 100, 1)

        logger.debug(
            "price summary for order #%s (role=%s, items=%d)", order.id, role, len(rows)
        )
        return {
            "order_id": order.id,
            "order_status": order.status.value,
            "payment_status": order.payment_status.value,
            "user_role": role,
            "can_view_cost_prices": can_view_cost,
            "total_cost": total_cost,
            "total_selling": total_selling,
            "total_profit": total_profit,
            "total_items": len(rows),
            "average_margin": average_margin,
            "delivery_charge": order.delivery_charge,
            "grand_total": round(total_selling + order.delivery_charge, 2),
            "categories": group_by_category(rows) if include_categories else {},
            "items": rows,
            "generated_at": utc_now(),
        }

    def _price_row(self, item: OrderItem, can_view_cost: bool) -> Dict[str, Any]:
        vendor_id = vendor_for_product(item.product_id)
        row: Dict[str, Any] = {
            **item.model_dump(),
            "selling_price": item.price,
            "total_selling": round(item.price * item.quantity, 2),
            "vendor_id": vendor_id,
            "vendor": vendor_name(vendor_id),
            "category": item_category(item.name),
            "cost_price": None,
            "margin": None,
            "margin_percentage": None,
            "profit_per_unit": None,
            "total_cost": None,
            "total_profit": None,
        }
        if can_view_cost:
            cost = round(item.price * self._rng.uniform(*COST_RATIO_RANGE), 2)
            margin = round(item.price - cost, 2)
            row.update(
                cost_price=cost,
                margin=margin,
                margin_percentage=round(margin / cost * 100, 1) if cost > 0 else None,
                profit_per_unit=margin,
                total_cost=round(cost * item.quantity, 2),
                total_profit=round(margin * item.quantity, 2),
            )
        return row


def _vendor_item(
    order: Order, item: OrderItem, vendor_id: int, name: str, now: datetime
) -> Dict[str, Any]:
    entry = order.vendor_availability.get(availability_key(item.product_id, vendor_id))
    if entry is None:
        status = "pending"
    else:
        status = "available" if entry.available else "unavailable"
    prep_minutes = 15 + math.ceil(item.quantity / 5) * 5
    return {
        **item.model_dump(),
        "vendor_id": vendor_id,
        "vendor": name,
        "status": status,
        "estimated_preparation_time": f"{prep_minutes} mins",
        "quality_grade": QUALITY_GRADES[item.product_id % 3],
        "last_updated": now,
    }


def group_by_category(rows: Sequence[Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """品类 → {合计, vendor_data: 供应商名 → {合计, items}}；成本类缺失按 0 计。"""
    grouped: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        cat = grouped.setdefault(
            row["category"],
            {"total_cost": 0.0, "total_selling": 0.0, "total_profit": 0.0, "total_items": 0, "vendor_data": {}},
        )
        vendor = cat["vendor_data"].setdefault(
            row["vendor"],
            {
                "vendor_id": row["vendor_id"],
                "total_cost": 0.0,
                "total_selling": 0.0,
                "total_profit": 0.0,
                "items": [],
            },
        )
        vendor["items"].append(row)
        for bucket in (cat, vendor):
            bucket["total_cost"] += row["total_cost"] or 0.0
            bucket["total_selling"] += row["total_selling"]
            bucket["total_profit"] += row["total_profit"] or 0.0
        cat["total_items"] += 1
    return grouped
