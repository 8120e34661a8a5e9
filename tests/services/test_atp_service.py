# tests/services/test_atp_service.py
from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.services.atp_service import AtpService, effective_atp
from stockline.services.reservation_service import ReservationService
from tests.helpers.seed import seed_account, seed_buffer, seed_order, seed_stock

pytestmark = pytest.mark.asyncio


async def test_effective_subtracts_reserved_and_channel_buffer(session: AsyncSession):
    await seed_stock(session, "A101", 7, "A-01")
    await seed_stock(session, "A101", 3, "B-02")
    await seed_account(session, "ebay-1")
    await seed_buffer(session, "ebay-1", "A101", 2)
    order = await seed_order(session, "N-1")

    await ReservationService(session).reserve(order.id, "A101", 4)
    await session.commit()

    r = await AtpService(session).compute_atp("A101", "ebay-1")
    assert (r.on_hand, r.reserved, r.buffer, r.effective) == (10, 4, 2, 4)


async def test_effective_never_negative(session: AsyncSession):
    await seed_stock(session, "A101", 3)
    await seed_account(session, "ebay-1")
    await seed_buffer(session, "ebay-1", "A101", 20)

    r = await AtpService(session).compute_atp("A101", "ebay-1")
    assert r.effective == 0
    assert effective_atp(1, 5, 0) == 0


async def test_default_buffer_applies_only_with_channel(session: AsyncSession):
    await seed_stock(session, "A101", 10)
    await seed_account(session, "ebay-1")

    svc = AtpService(session, default_buffer=3)
    assert (await svc.compute_atp("A101", "ebay-1")).buffer == 3
    assert (await svc.compute_atp("A101", "ebay-1")).effective == 7
    # 不指定渠道：不扣缓冲
    assert (await svc.compute_atp("A101")).effective == 10


async def test_reserved_is_counted_across_all_channels(session: AsyncSession):
    await seed_stock(session, "A101", 10)
    await seed_account(session, "ebay-1")
    await seed_account(session, "ebay-2")
    o1 = await seed_order(session, "N-1")
    o2 = await seed_order(session, "N-2")

    res = ReservationService(session)
    await res.reserve(o1.id, "A101", 2)
    await res.reserve(o2.id, "A101", 3)
    await session.commit()

    for acc in ("ebay-1", "ebay-2"):
        r = await AtpService(session).compute_atp("A101", acc)
        assert r.reserved == 5
        assert r.effective == 5


async def test_unknown_sku_is_all_zeros(session: AsyncSession):
    r = await AtpService(session).compute_atp("NOPE")
    assert (r.on_hand, r.reserved, r.buffer, r.effective) == (0, 0, 0, 0)


async def test_list_atp_covers_every_known_sku(session: AsyncSession):
    await seed_stock(session, "A101", 5)
    await seed_stock(session, "B202", 1)
    order = await seed_order(session, "N-1")
    await ReservationService(session).reserve(order.id, "B202", 1)
    await session.commit()

    rows = {r.sku: r for r in await AtpService(session).list_atp()}
    assert set(rows) == {"A101", "B202"}
    assert rows["A101"].effective == 5
    assert rows["B202"].reserved == 1
    assert rows["B202"].effective == 0
