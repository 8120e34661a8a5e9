# tests/services/test_inventory_service.py
from __future__ import annotations

import pytest
from sqlalchemy import select

from stockline.models.enums import EventAction
from stockline.models.event_log import EventLog
from stockline.models.inventory import PendingPlacement
from stockline.services.errors import Conflict, NotFound, ValidationFailed
from stockline.services.inventory_service import InventoryService
from stockline.services.reservation_service import sum_on_hand
from tests.helpers.seed import seed_stock

pytestmark = pytest.mark.asyncio


async def test_stock_in_is_not_on_hand_until_placed(session):
    svc = InventoryService(session)
    pending = await svc.stock_in("PAL-1", "a101", "A-01", 5, operator="amy")
    await session.commit()
    assert pending.sku == "A101"
    assert await sum_on_hand(session, "A101") == 0

    rec = await svc.confirm_placement("PAL-1", "B-02", operator="amy")
    await session.commit()
    assert (rec.location, rec.on_hand_quantity) == ("B-02", 5)
    assert (await session.execute(select(PendingPlacement))).scalars().all() == []

    actions = [
        e.action for e in (await session.execute(select(EventLog).order_by(EventLog.id))).scalars()
    ]
    assert actions == [EventAction.STOCK_IN.value, EventAction.PLACEMENT.value]


async def test_placement_defaults_to_target_location(session):
    svc = InventoryService(session)
    await svc.stock_in("PAL-2", "A101", "A-07", 2)
    rec = await svc.confirm_placement("PAL-2")
    assert rec.location == "A-07"

    with pytest.raises(NotFound):
        await svc.confirm_placement("PAL-2")


async def test_duplicate_pending_barcode(session):
    svc = InventoryService(session)
    await svc.stock_in("PAL-3", "A101", "A-01", 1)
    await session.commit()

    with pytest.raises(Conflict) as exc:
        await svc.stock_in("PAL-3", "B202", "A-02", 1)
    assert exc.value.error_code == "duplicate_barcode"
    with pytest.raises(ValidationFailed):
        await svc.stock_in("PAL-4", "A101", "A-01", 0)


async def test_adjust_never_goes_negative(session):
    await seed_stock(session, "A101", 3)
    svc = InventoryService(session)

    rec = await svc.adjust("A101", "A-01", -2)
    assert rec.on_hand_quantity == 1
    with pytest.raises(ValidationFailed):
        await svc.adjust("A101", "A-01", -2)


async def test_deduct_walks_locations_and_floors_at_zero(session):
    await seed_stock(session, "A101", 2, location="A-01")
    await seed_stock(session, "A101", 3, location="A-02")
    svc = InventoryService(session)

    assert await svc.deduct("A101", 4) == 4
    assert await sum_on_hand(session, "A101") == 1
    assert await svc.deduct("A101", 5) == 1
    assert await sum_on_hand(session, "A101") == 0
