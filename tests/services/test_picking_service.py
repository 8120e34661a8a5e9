# tests/services/test_picking_service.py
from __future__ import annotations

import pytest
from sqlalchemy import select

from stockline.models.enums import EventAction, PickingListStatus, PickingTaskStatus, ReservationStatus
from stockline.models.event_log import EventLog
from stockline.services.errors import (
    InsufficientStock,
    NoListSelected,
    NoMatchingTask,
    NotFound,
    QuantityExceeded,
    UnknownBarcode,
    ValidationFailed,
)
from stockline.services.picking_service import PickingService, TaskSpec
from stockline.services.reservation_service import ReservationService, sum_active_reserved, sum_on_hand
from tests.helpers.seed import seed_barcode, seed_order, seed_stock

pytestmark = pytest.mark.asyncio


async def test_three_scans_complete_task_and_commit_quantity(session):
    await seed_stock(session, "A101", 10)
    await seed_barcode(session, "4006381333931", "A101")
    order = await seed_order(session, "N-1", [{"sku": "A101", "quantity": 3}])
    await ReservationService(session).reserve(order.id, "A101", 3)
    await session.commit()

    svc = PickingService(session)
    plist = await svc.create_list("wave-1", [TaskSpec(sku="a101", required_quantity=3, order_id=order.id)])
    assert [t.sku for t in plist.tasks] == ["A101"]

    first = await svc.scan(plist.id, "4006381333931", operator="amy")
    assert (first.task.picked_quantity, first.task_completed, first.list_done) == (1, False, False)
    assert await sum_on_hand(session, "A101") == 10

    await svc.scan(plist.id, "4006381333931")
    last = await svc.scan(plist.id, "4006381333931")
    assert last.task.picked_quantity == 3
    assert last.task.status == PickingTaskStatus.COMPLETED
    assert last.task_completed is True
    assert last.list_done is True

    assert await sum_on_hand(session, "A101") == 7
    [res] = await ReservationService(session).list_for_order(order.id)
    assert res.status == ReservationStatus.CLEARED
    assert res.clear_reason == "picked"

    plist = await svc.get_list(plist.id)
    assert plist.status == PickingListStatus.COMPLETED
    assert await svc.is_done(plist.id) is True

    with pytest.raises(QuantityExceeded) as exc:
        await svc.scan(plist.id, "4006381333931")
    assert exc.value.details[0]["picked_qty"] == 3

    picks = (
        await session.execute(select(EventLog).where(EventLog.action == EventAction.PICK_ITEM.value))
    ).scalars().all()
    assert len(picks) == 3


async def test_scan_without_list_is_rejected(session):
    with pytest.raises(NoListSelected) as exc:
        await PickingService(session).scan(None, "4006381333931")
    assert exc.value.error_code == "no_list_selected"


async def test_unknown_barcode_and_unrelated_sku(session):
    await seed_stock(session, "A101", 5)
    await seed_stock(session, "B202", 5)
    svc = PickingService(session)
    plist = await svc.create_list("wave-2", [TaskSpec(sku="A101", required_quantity=1)])

    with pytest.raises(UnknownBarcode):
        await svc.scan(plist.id, "does-not-exist")
    with pytest.raises(NoMatchingTask):
        await svc.scan(plist.id, "b202")

    plist = await svc.get_list(plist.id)
    assert plist.tasks[0].picked_quantity == 0


async def test_sku_typed_as_barcode_is_accepted(session):
    await seed_stock(session, "A101", 5)
    svc = PickingService(session)
    plist = await svc.create_list("wave-3", [TaskSpec(sku="A101", required_quantity=2)])

    out = await svc.scan(plist.id, " a101 ")
    assert out.task.picked_quantity == 1


async def test_duplicate_sku_rows_fill_in_creation_order(session):
    await seed_stock(session, "A101", 5)
    svc = PickingService(session)
    plist = await svc.create_list(
        "wave-4",
        [TaskSpec(sku="A101", required_quantity=1), TaskSpec(sku="A101", required_quantity=1)],
    )
    first_id, second_id = [t.id for t in plist.tasks]

    a = await svc.scan(plist.id, "A101")
    b = await svc.scan(plist.id, "A101")
    assert (a.task.id, b.task.id) == (first_id, second_id)
    assert b.list_done is True

    with pytest.raises(QuantityExceeded):
        await svc.scan(plist.id, "A101")
    assert await sum_on_hand(session, "A101") == 3


async def test_manual_collect_uses_same_guard(session):
    await seed_stock(session, "A101", 5)
    svc = PickingService(session)
    plist = await svc.create_list("wave-5", [TaskSpec(sku="A101", required_quantity=1)])
    task_id = plist.tasks[0].id

    out = await svc.manual_collect(task_id, operator="bob")
    assert out.task_completed is True

    with pytest.raises(QuantityExceeded):
        await svc.manual_collect(task_id)
    with pytest.raises(NotFound):
        await svc.manual_collect(999999)

    manual = (
        await session.execute(select(EventLog).where(EventLog.action == EventAction.PICK_ITEM_MANUAL.value))
    ).scalars().all()
    assert [e.operator for e in manual] == ["bob"]


async def test_create_list_validates_before_writing(session):
    svc = PickingService(session)
    with pytest.raises(ValidationFailed):
        await svc.create_list("bad", [TaskSpec(sku="A101", required_quantity=1), TaskSpec(sku="", required_quantity=1)])
    with pytest.raises(ValidationFailed):
        await svc.create_list("bad", [TaskSpec(sku="A101", required_quantity=0)])
    assert await svc.list_lists() == []


async def test_delete_list_removes_tasks(session):
    svc = PickingService(session)
    plist = await svc.create_list("wave-6", [TaskSpec(sku="A101", required_quantity=2)])

    await svc.delete_list(plist.id, operator="amy")
    with pytest.raises(NotFound):
        await svc.get_list(plist.id)
    with pytest.raises(NotFound):
        await svc.manual_collect(plist.tasks[0].id)


async def test_completion_cannot_eat_stock_reserved_by_other_orders(session):
    await seed_stock(session, "A101", 2)
    order = await seed_order(session, "N-9", [{"sku": "A101", "quantity": 2}])
    await ReservationService(session).reserve(order.id, "A101", 2)
    await session.commit()

    svc = PickingService(session)
    plist = await svc.create_list("walk-in", [TaskSpec(sku="A101", required_quantity=2)])
    task_id = plist.tasks[0].id

    await svc.scan(plist.id, "A101")
    with pytest.raises(InsufficientStock) as exc:
        await svc.scan(plist.id, "A101")
    assert exc.value.details[0]["short_qty"] == 2

    # 整次扫码撤销：计数、状态、库存、占用都不变
    assert await sum_on_hand(session, "A101") == 2
    assert await sum_active_reserved(session, "A101") == 2
    [task] = (await svc.get_list(plist.id)).tasks
    assert task.id == task_id
    assert task.picked_quantity == 1
    assert task.status == PickingTaskStatus.PENDING
