# retailflow/services/order_store.py
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

from retailflow.core.errors import OrderIdConflict, OrderNotFound
from retailflow.models.order import Order
from retailflow.utils.time import strictly_after, utc_now

logger = logging.getLogger("retailflow.orders")

_DEFAULT_FIXTURE = Path(__file__).resolve().parent.parent / "fixtures" / "orders.json"


def load_seed_orders(path: str | Path | None = None) -> List[Dict[str, Any]]:
    """
    读取订单种子 JSON（列表）；path 为空时使用包内 fixtures/orders.json。
    """
    p = Path(path) if path else _DEFAULT_FIXTURE
    with p.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, list):
        raise ValueError(f"seed fixture must be a JSON list: {p}")
    return data


class OrderStore:
    """
    进程内订单集合（id → 不可变快照）。

    约定：
    - 所有读写都返回深拷贝，调用方拿不到仓内引用
    - update 以“旧快照 + patch”生成新快照整体替换，updated_at 严格递增
    - 每次读写前 await 一次模拟延迟（latency_ms），这是唯一的挂起点
    - 本类不做并发串行化；同一订单的读-改-写由 OrderStateMachine 持锁完成
    """

    def __init__(self, *, latency_ms: int = 0, seed: Iterable[Mapping[str, Any]] = ()) -> None:
        self._orders: Dict[int, Order] = {}
        self._latency = max(0, int(latency_ms)) / 1000.0
        self.reseed(seed)

    async def _io(self) -> None:
        await asyncio.sleep(self._latency)

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._orders

    def next_id(self) -> int:
        return max(self._orders, default=0) + 1

    def resolve_id(self, explicit: int | None = None) -> int:
        """
        新订单 id：未指定时取 max(现有) + 1；显式 id 必须大于现有所有 id。
        """
        next_id = self.next_id()
        if explicit is None:
            return next_id
        if int(explicit) < next_id:
            raise OrderIdConflict(
                f"Order id {explicit} must be greater than every existing id",
                context={"order_id": int(explicit), "next_id": next_id},
            )
        return int(explicit)

    def reseed(self, rows: Iterable[Mapping[str, Any]]) -> int:
        """清空并灌入种子订单；返回灌入条数。"""
        self._orders.clear()
        now = utc_now()
        for row in rows:
            data = dict(row)
            data.setdefault("created_at", now)
            data.setdefault("updated_at", data["created_at"])
            order = Order.model_validate(data)
            self._orders[order.id] = order
        if self._orders:
            logger.info("order store seeded with %d orders", len(self._orders))
        return len(self._orders)

    async def get_all(self) -> List[Order]:
        await self._io()
        return [self._orders[k].model_copy(deep=True) for k in sorted(self._orders)]

    async def get_by_id(self, order_id: int) -> Order:
        await self._io()
        order = self._orders.get(int(order_id))
        if order is None:
            raise OrderNotFound(order_id)
        return order.model_copy(deep=True)

    def build(self, draft: Mapping[str, Any]) -> Order:
        """
        按新建规则生成订单快照但不入库（id 分配、created_at / updated_at 补齐、模型校验）。
        下单时先用它预检，通过后才扣钱包。
        """
        data = dict(draft)
        data["id"] = self.resolve_id(data.get("id"))

        now = utc_now()
        data.setdefault("created_at", now)
        data["updated_at"] = now
        return Order.model_validate(data)

    async def create(self, draft: Mapping[str, Any]) -> Order:
        await self._io()
        order = self.build(draft)
        self._orders[order.id] = order
        return order.model_copy(deep=True)

    async def update(self, order_id: int, patch: Mapping[str, Any]) -> Order:
        await self._io()
        current = self._orders.get(int(order_id))
        if current is None:
            raise OrderNotFound(order_id)

        data = current.model_dump()
        data.update(patch)
        # id / created_at 不可被 patch 改写
        data["id"] = current.id
        data["created_at"] = current.created_at
        data["updated_at"] = strictly_after(current.updated_at)

        order = Order.model_validate(data)
        self._orders[order.id] = order
        return order.model_copy(deep=True)

    async def delete(self, order_id: int) -> bool:
        await self._io()
        if self._orders.pop(int(order_id), None) is None:
            raise OrderNotFound(order_id)
        return True
