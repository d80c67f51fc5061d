# tests/services/test_order_state_machine.py
from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from retailflow.core.errors import InvalidAmount, InvalidOrderStatus, OrderNotFound
from retailflow.models.enums import OrderStatus, PaymentStatus
from retailflow.services.fulfillment_workflow import DELIVERY_ROSTER
from retailflow.services.order_state_machine import derive_total, reconcile_totals
from retailflow.utils.time import utc_now
from tests._drafts import bank_draft_with_proof, cash_draft

pytestmark = pytest.mark.asyncio


async def test_create_assigns_increasing_ids(container):
    orders = container.orders
    a = await orders.create(cash_draft())
    b = await orders.create(cash_draft())
    assert b.id > a.id
    assert (await orders.get_by_id(b.id)).id == b.id


async def test_cash_order_with_explicit_id_and_total(container):
    order = await container.orders.create({"id": 7, "total": 500, "payment_method": "cash"})

    assert order.id == 7
    assert order.payment_status is PaymentStatus.PENDING
    assert order.status is OrderStatus.PENDING
    assert order.total == order.total_amount == 500
    assert "pending" in order.order_status_timestamps


async def test_total_derived_from_items_when_absent(container):
    order = await container.orders.create(cash_draft())
    # 2 × 100 + 50
    assert order.total == 250.0
    assert order.total_amount == 250.0


def test_derive_total_prefers_total_over_total_amount():
    assert derive_total({"total": 10, "total_amount": 99}) == 10
    assert derive_total({"total": 0, "total_amount": 99}) == 99
    assert derive_total({"items": [{"price": 2.5, "quantity": 4}], "delivery_charge": 1}) == 11


def test_reconcile_totals_keeps_both_fields_equal():
    assert reconcile_totals({"total_amount": 40}) == {"total": 40.0, "total_amount": 40.0}
    assert reconcile_totals({"total": 30, "total_amount": 40}) == {"total": 30.0, "total_amount": 30.0}
    assert reconcile_totals({"status": "packed"}) == {"status": "packed"}


async def test_update_round_trip(container):
    orders = container.orders
    created = await orders.create(cash_draft())

    updated = await orders.update(created.id, {"total_amount": 999, "gift_wrap": True})
    fetched = await orders.get_by_id(created.id)

    assert fetched == updated
    assert fetched.total == fetched.total_amount == 999
    assert fetched.model_extra["gift_wrap"] is True
    assert fetched.items == created.items
    assert fetched.updated_at > created.updated_at


async def test_status_change_is_timestamped(container):
    orders = container.orders
    created = await orders.create(cash_draft())
    updated = await orders.update(created.id, {"status": "cancelled"})
    assert "cancelled" in updated.order_status_timestamps
    assert updated.order_status_timestamps["pending"] == created.order_status_timestamps["pending"]


async def test_concurrent_updates_on_one_order_are_serialized(container):
    orders = container.orders
    created = await orders.create(cash_draft())

    async def bump(i: int):
        def compute(order):
            notes = list(order.model_extra.get("notes", []))
            notes.append(i)
            return {"notes": notes}

        await orders.mutate(created.id, compute, op="note")

    await asyncio.gather(*(bump(i) for i in range(20)))
    final = await orders.get_by_id(created.id)
    assert sorted(final.model_extra["notes"]) == list(range(20))


async def test_delete_then_next_id_follows_content(container):
    orders = container.orders
    a = await orders.create(cash_draft())
    b = await orders.create(cash_draft())
    assert await orders.delete(b.id) is True

    c = await orders.create(cash_draft())
    assert c.id == b.id
    assert c.id > a.id


async def test_paginated_is_newest_first(container):
    orders = container.orders
    for _ in range(5):
        await orders.create(cash_draft())

    page = await orders.get_all_paginated(page=2, limit=2)
    assert page["total"] == 5
    assert page["total_pages"] == 3
    assert page["has_more"] is True
    assert [o.id for o in page["orders"]] == [3, 2]

    last = await orders.get_all_paginated(page=3, limit=2)
    assert last["has_more"] is False
    assert [o.id for o in last["orders"]] == [1]


async def test_revenue_views(container):
    orders = container.orders
    await orders.create(cash_draft(total=100))
    await orders.create(cash_draft(total=50))
    old = utc_now() - timedelta(days=400)
    container.orders.seed(
        [o.model_dump() for o in await orders.get_all()]
        + [{"id": 3, "total": 70, "payment_method": "other", "created_at": old, "updated_at": old}]
    )

    assert await orders.get_monthly_revenue() == 150
    assert await orders.get_revenue_by_payment_method() == {"cash": 150, "other": 70}


def test_reconcile_totals_rejects_non_numeric_amounts():
    for bad in ("abc", None, float("nan")):
        with pytest.raises(InvalidAmount):
            reconcile_totals({"total": bad, "total_amount": bad})
    with pytest.raises(InvalidAmount):
        reconcile_totals({"total_amount": "12x"})


async def test_non_numeric_total_patch_keeps_stored_total(container):
    orders = container.orders
    order = await orders.create(cash_draft())

    with pytest.raises(InvalidAmount):
        await orders.update(order.id, {"total": "abc"})

    fetched = await orders.get_by_id(order.id)
    assert fetched.total == fetched.total_amount == 250.0
    assert fetched.updated_at == order.updated_at


async def test_update_order_status_records_history(container):
    orders = container.orders
    order = await orders.create(cash_draft())

    packed = await orders.update_order_status(order.id, "packed", {"note": "boxed", "by": "ops"})
    shipped = await orders.update_order_status(order.id, OrderStatus.SHIPPED)

    assert packed.status is OrderStatus.PACKED
    assert shipped.status is OrderStatus.SHIPPED
    assert [(h.status, h.previous_status) for h in shipped.status_history] == [
        (OrderStatus.PACKED, OrderStatus.PENDING),
        (OrderStatus.SHIPPED, OrderStatus.PACKED),
    ]
    assert shipped.status_history[0].model_extra == {"note": "boxed", "by": "ops"}
    assert "shipped" in shipped.order_status_timestamps


async def test_confirm_status_auto_assigns_courier_once(container):
    orders = container.orders
    order = await orders.create(cash_draft())

    confirmed = await orders.update_order_status(order.id, "confirmed")
    # Karachi
    assert confirmed.assigned_delivery == DELIVERY_ROSTER[1]

    await orders.update(order.id, {"assigned_delivery": DELIVERY_ROSTER[2]})
    again = await orders.update_order_status(order.id, "confirmed")
    assert again.assigned_delivery == DELIVERY_ROSTER[2]


@pytest.mark.parametrize("status", ["payment_processed", "refund_requested", "bogus"])
async def test_update_order_status_rejects_non_manual_values(container, status):
    order = await container.orders.create(cash_draft())

    with pytest.raises(InvalidOrderStatus):
        await container.orders.update_order_status(order.id, status)

    assert (await container.orders.get_by_id(order.id)).status_history == []


async def test_unknown_ids_leave_no_lock_entries(container):
    orders = container.orders

    with pytest.raises(OrderNotFound):
        await orders.update(999, {"x": 1})
    with pytest.raises(OrderNotFound):
        await orders.delete(999)
    with pytest.raises(OrderNotFound):
        await orders.update_order_status(999, "confirmed")

    assert 999 not in orders._locks


async def test_followup_after_delete_leaves_no_lock_entry(container):
    orders = container.orders
    order = await orders.create(bank_draft_with_proof())

    await container.payment.update_verification_status(order.id, "verified")
    await orders.delete(order.id)
    await orders.drain_followups()

    assert order.id not in orders._locks
    assert len(container.store) == 0
