# retailflow/services/order_state_machine.py
from __future__ import annotations

import asyncio
import inspect
import logging
import math
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Union

from retailflow.core.errors import (
    InvalidAmount,
    InvalidOrderStatus,
    OrderFlowError,
    OrderNotFound,
    VerificationNotPending,
)
from retailflow.models.enums import OrderStatus, VerificationStatus
from retailflow.models.order import Order, OrderDraft
from retailflow.obs.metrics import order_errors_total, order_transitions_total
from retailflow.services.delivery_sync import DeliverySync
from retailflow.services.fulfillment_workflow import FulfillmentWorkflow, auto_assign_delivery_personnel
from retailflow.services.order_store import OrderStore
from retailflow.services.payment_gateway import PaymentService
from retailflow.services.payment_lifecycle import PaymentLifecycle
from retailflow.utils.time import utc_now

logger = logging.getLogger("retailflow.orders")

Patch = Mapping[str, Any]
ComputePatch = Callable[[Order], Union[Optional[Patch], Awaitable[Optional[Patch]]]]

# 人工改状态只允许这几个；其余状态由履约 / 配送 / 核验流程推导
MANUAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
        OrderStatus.PACKED,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    }
)

RESOLVED_VERIFICATION: FrozenSet[VerificationStatus] = frozenset(
    {VerificationStatus.VERIFIED, VerificationStatus.REJECTED}
)


def _num(v: Any) -> float:
    try:
        return float(v or 0)
    except (TypeError, ValueError):
        return 0.0


def parse_amount(value: Any, field: str) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        out = math.nan
    if not math.isfinite(out):
        raise InvalidAmount(
            f"Invalid amount for {field}: {value!r}",
            context={"field": field, "value": str(value)},
        )
    return out


def parse_manual_status(value: OrderStatus | str) -> OrderStatus:
    try:
        status = OrderStatus(value)
    except ValueError:
        status = None
    if status not in MANUAL_STATUSES:
        allowed = sorted(s.value for s in MANUAL_STATUSES)
        raise InvalidOrderStatus(
            f"Status '{value}' is not valid. Valid statuses: {', '.join(allowed)}",
            context={"status": str(value), "allowed": allowed},
        )
    return status


def derive_total(data: Mapping[str, Any]) -> float:
    """
    订单金额：total 优先，其次 total_amount；都不是正数时按明细重算
    Σ(price × quantity) + delivery_charge。
    """
    for key in ("total", "total_amount"):
        v = _num(data.get(key))
        if v > 0:
            return v
    subtotal = 0.0
    for item in data.get("items") or []:
        row = item if isinstance(item, Mapping) else item.model_dump()
        subtotal += _num(row.get("price")) * int(_num(row.get("quantity")))
    return subtotal + _num(data.get("delivery_charge"))


def reconcile_totals(patch: Patch) -> Dict[str, Any]:
    """
    patch 动到任一金额字段时两者一并写入；同时给出且不一致时以 total 为准。
    金额无法转成有限数字时抛 InvalidAmount，不会把订单金额清零。
    """
    out = dict(patch)
    if "total" in out or "total_amount" in out:
        field = "total" if out.get("total") is not None else "total_amount"
        out["total"] = out["total_amount"] = parse_amount(out.get(field), field)
    return out


class OrderStateMachine:
    """
    订单写入的唯一入口：

    - mutate()：同一订单持锁完成“读快照 → 计算 patch → 整体替换”
    - create()：全局建单锁；订单快照先校验，通过后才扣钱包，再入库
    - schedule_followup()：延迟任务同样进入订单锁，按顺序生效
    - 每次写入对齐 total / total_amount，并为新的 status 打时间戳
    """

    def __init__(
        self,
        store: OrderStore,
        payments: PaymentService,
        *,
        auto_confirm_delay: float = 0.1,
    ) -> None:
        self._store = store
        self._locks: Dict[int, asyncio.Lock] = {}
        self._create_lock = asyncio.Lock()
        self._followups: Set[asyncio.Task] = set()

        self.payment = PaymentLifecycle(self, payments, auto_confirm_delay=auto_confirm_delay)
        self.fulfillment = FulfillmentWorkflow(self)
        self.delivery = DeliverySync(self)

    @property
    def store(self) -> OrderStore:
        return self._store

    def _lock_for(self, order_id: int) -> asyncio.Lock:
        # 只为已存在的订单建锁；未知 id 直接 404
        lock = self._locks.get(order_id)
        if lock is None:
            if order_id not in self._store:
                raise OrderNotFound(order_id)
            lock = self._locks[order_id] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------ #
    # 写入
    # ------------------------------------------------------------------ #
    async def create(self, draft: OrderDraft | Mapping[str, Any]) -> Order:
        if not isinstance(draft, OrderDraft):
            draft = OrderDraft.model_validate(draft)

        try:
            async with self._create_lock:
                data = draft.model_dump(exclude_none=True, exclude={"payment_proof"})
                total = derive_total(data)
                order_id = self._store.resolve_id(draft.id)

                data.update(await self.payment.intake(draft, order_id=order_id, total=total))
                data.update(id=order_id, total=total, total_amount=total)
                status = data.setdefault("status", OrderStatus.PENDING)
                data["order_status_timestamps"] = {str(status): utc_now()}

                # 快照不合法时在这里抛出，钱包不会被扣
                self._store.build(data)
                data.update(
                    await self.payment.charge_wallet(
                        draft, order_id=order_id, total=total, transaction_id=data.get("transaction_id")
                    )
                )

                order = await self._store.create(data)
        except OrderFlowError as exc:
            order_errors_total.labels(code=exc.code).inc()
            raise

        order_transitions_total.labels(op="create").inc()
        logger.info(
            "order #%s created (%s, %s, total=%.2f)",
            order.id,
            order.payment_method.value,
            order.payment_status.value,
            order.total,
        )
        return order

    async def mutate(self, order_id: int, compute: ComputePatch, *, op: str) -> Order:
        order_id = int(order_id)
        try:
            async with self._lock_for(order_id):
                current = await self._store.get_by_id(order_id)
                patch = compute(current)
                if inspect.isawaitable(patch):
                    patch = await patch
                updated = await self._store.update(order_id, self._finalize(current, patch or {}))
        except OrderFlowError as exc:
            order_errors_total.labels(code=exc.code).inc()
            raise

        order_transitions_total.labels(op=op).inc()
        logger.debug("order #%s %s -> status=%s", order_id, op, updated.status.value)
        return updated

    async def update(self, order_id: int, patch: Patch) -> Order:
        """
        通用 patch：合并到当前快照上，updated_at 严格递增。
        已核验 / 已驳回的 verification_status 不能被 patch 改回或改成其它值。
        """
        patch = dict(patch)

        def compute(order: Order) -> Dict[str, Any]:
            if (
                "verification_status" in patch
                and order.verification_status in RESOLVED_VERIFICATION
                and patch["verification_status"] != order.verification_status
            ):
                raise VerificationNotPending(
                    "Order verification is already resolved",
                    context={
                        "order_id": order.id,
                        "verification_status": order.verification_status.value,
                    },
                )
            return patch

        return await self.mutate(order_id, compute, op="update")

    async def update_order_status(
        self,
        order_id: int,
        new_status: OrderStatus | str,
        additional_data: Optional[Mapping[str, Any]] = None,
    ) -> Order:
        """
        人工改单状态：

        - 只接受 MANUAL_STATUSES，其它值抛 InvalidOrderStatus
        - 每次追加一条 status_history（previous_status + 调用方附带字段）
        - 进入 confirmed 且尚未指派配送员时，按收货城市自动指派
        """
        target = parse_manual_status(new_status)
        extra = dict(additional_data or {})

        def compute(order: Order) -> Dict[str, Any]:
            entry = {
                **extra,
                "status": target,
                "timestamp": utc_now(),
                "previous_status": order.status,
            }
            patch: Dict[str, Any] = {
                "status": target,
                "status_history": [*order.status_history, entry],
            }
            if target is OrderStatus.CONFIRMED and order.assigned_delivery is None:
                patch["assigned_delivery"] = auto_assign_delivery_personnel(order)
                logger.info(
                    "order #%s auto-assigned to %s on confirm",
                    order.id,
                    patch["assigned_delivery"].name,
                )
            return patch

        updated = await self.mutate(order_id, compute, op="status_update")
        previous = updated.status_history[-1].previous_status
        logger.info(
            "order #%s status %s -> %s",
            updated.id,
            previous.value if previous else None,
            target.value,
        )
        return updated

    async def delete(self, order_id: int) -> bool:
        order_id = int(order_id)
        try:
            async with self._lock_for(order_id):
                deleted = await self._store.delete(order_id)
        except OrderFlowError as exc:
            order_errors_total.labels(code=exc.code).inc()
            raise
        self._locks.pop(order_id, None)
        order_transitions_total.labels(op="delete").inc()
        return deleted

    def _finalize(self, current: Order, patch: Patch) -> Dict[str, Any]:
        out = reconcile_totals(patch)
        status = out.get("status")
        if status is not None and status != current.status and "order_status_timestamps" not in out:
            stamps = dict(current.order_status_timestamps)
            stamps[str(status)] = utc_now()
            out["order_status_timestamps"] = stamps
        return out

    # ------------------------------------------------------------------ #
    # 后续任务（核验通过后的自动确认等）
    # ------------------------------------------------------------------ #
    def schedule_followup(
        self,
        order_id: int,
        compute: Callable[[Order], Optional[Patch]],
        *,
        op: str,
        delay: float = 0.0,
    ) -> asyncio.Task:
        task = asyncio.create_task(self._run_followup(int(order_id), compute, op, delay))
        self._followups.add(task)
        task.add_done_callback(self._followups.discard)
        return task

    async def _run_followup(
        self,
        order_id: int,
        compute: Callable[[Order], Optional[Patch]],
        op: str,
        delay: float,
    ) -> None:
        await asyncio.sleep(delay)
        try:
            async with self._lock_for(order_id):
                current = await self._store.get_by_id(order_id)
                patch = compute(current)
                if not patch:
                    logger.info("follow-up %s skipped for order #%s", op, order_id)
                    return
                await self._store.update(order_id, self._finalize(current, patch))
        except OrderNotFound:
            logger.info("follow-up %s dropped: order #%s no longer exists", op, order_id)
            return
        except Exception:
            # 后续任务失败不回传给原调用方
            logger.exception("follow-up %s failed for order #%s", op, order_id)
            return
        order_transitions_total.labels(op=op).inc()

    async def drain_followups(self) -> None:
        while self._followups:
            await asyncio.gather(*list(self._followups), return_exceptions=True)

    @property
    def pending_followups(self) -> int:
        return len(self._followups)

    # ------------------------------------------------------------------ #
    # 读取
    # ------------------------------------------------------------------ #
    async def get_all(self) -> List[Order]:
        return await self._store.get_all()

    async def get_by_id(self, order_id: int) -> Order:
        return await self._store.get_by_id(order_id)

    async def get_all_paginated(self, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        page, limit = max(1, int(page)), max(1, int(limit))
        orders = sorted(await self._store.get_all(), key=lambda o: (o.created_at, o.id), reverse=True)
        start = (page - 1) * limit
        end = start + limit
        total = len(orders)
        return {
            "orders": orders[start:end],
            "page": page,
            "limit": limit,
            "total": total,
            "has_more": end < total,
            "total_pages": math.ceil(total / limit),
        }

    async def get_monthly_revenue(self) -> float:
        now = utc_now()
        return sum(
            o.amount
            for o in await self._store.get_all()
            if o.created_at.year == now.year and o.created_at.month == now.month
        )

    async def get_revenue_by_payment_method(self) -> Dict[str, float]:
        out: Dict[str, float] = {}
        for o in await self._store.get_all():
            key = o.payment_method.value
            out[key] = out.get(key, 0.0) + o.amount
        return out

    def seed(self, rows: Iterable[Mapping[str, Any]]) -> int:
        """重新灌入种子订单（金额按 derive_total 对齐）。"""
        normalized = []
        for row in rows:
            data = dict(row)
            total = derive_total(data)
            data["total"] = data["total_amount"] = total
            normalized.append(data)
        self._locks.clear()
        return self._store.reseed(normalized)
