# tests/services/test_order_store.py
from __future__ import annotations

import pytest

from retailflow.core.errors import OrderIdConflict, OrderNotFound
from retailflow.services.order_store import OrderStore, load_seed_orders

pytestmark = pytest.mark.asyncio


def _row(order_id: int, **kw):
    row = {"id": order_id, "items": [{"product_id": 1, "price": 10.0, "quantity": 1}]}
    row.update(kw)
    return row


async def test_next_id_is_max_plus_one_not_a_counter():
    store = OrderStore(seed=[_row(1), _row(2), _row(5)])
    assert store.next_id() == 6

    await store.delete(5)
    # 删除最大 id 后重新按现存内容计算
    assert store.next_id() == 3

    created = await store.create({"items": []})
    assert created.id == 3


async def test_explicit_id_must_exceed_existing():
    store = OrderStore(seed=[_row(4)])

    with pytest.raises(OrderIdConflict) as ei:
        await store.create({"id": 2})
    assert ei.value.context["next_id"] == 5

    order = await store.create({"id": 10})
    assert order.id == 10
    assert store.next_id() == 11


async def test_reads_return_copies():
    store = OrderStore(seed=[_row(1)])
    a = await store.get_by_id(1)
    b = await store.get_by_id(1)
    assert a == b
    assert a is not b
    assert a.items[0] is not b.items[0]


async def test_update_merges_patch_and_bumps_updated_at():
    store = OrderStore(seed=[_row(1, delivery_charge=5.0)])
    before = await store.get_by_id(1)

    after = await store.update(1, {"delivery_charge": 9.0, "note": "leave at gate"})

    assert after.delivery_charge == 9.0
    assert after.items == before.items
    assert after.model_extra["note"] == "leave at gate"
    assert after.created_at == before.created_at
    assert after.updated_at > before.updated_at


async def test_update_cannot_rewrite_id_or_created_at():
    store = OrderStore(seed=[_row(1)])
    before = await store.get_by_id(1)
    after = await store.update(1, {"id": 99, "created_at": "2000-01-01T00:00:00Z"})
    assert after.id == 1
    assert after.created_at == before.created_at


async def test_missing_order_raises_not_found():
    store = OrderStore()
    with pytest.raises(OrderNotFound):
        await store.get_by_id(1)
    with pytest.raises(OrderNotFound):
        await store.update(1, {})
    with pytest.raises(OrderNotFound):
        await store.delete(1)


async def test_get_all_sorted_by_id():
    store = OrderStore(seed=[_row(3), _row(1), _row(2)])
    assert [o.id for o in await store.get_all()] == [1, 2, 3]


def test_bundled_fixture_loads():
    rows = load_seed_orders()
    store = OrderStore(seed=rows)
    assert len(store) == len(rows) > 0
    assert store.next_id() == max(r["id"] for r in rows) + 1


def test_fixture_must_be_a_list(tmp_path):
    p = tmp_path / "orders.json"
    p.write_text('{"id": 1}', encoding="utf-8")
    with pytest.raises(ValueError):
        load_seed_orders(p)
