# tests/services/test_inventory_pull.py
from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from stockline.adapters.base import ExternalCatalogItem
from stockline.core.clock import as_utc
from stockline.core.config import SyncConfig
from stockline.models.channel import ChannelAccount
from stockline.models.enums import ImportRunStatus
from stockline.models.external_index import ExternalInventoryIndex
from stockline.services.inventory_pull import run_inventory_pull
from stockline.services.inventory_push import run_inventory_push
from tests.helpers.seed import seed_account, seed_stock

pytestmark = pytest.mark.asyncio

RUN_AT = datetime(2024, 6, 1, 8, 30, tzinfo=timezone.utc)


async def test_pull_maps_external_items_to_local_skus(session, fake_channel, fake_credentials):
    await seed_account(session, "ebay-1")
    await seed_stock(session, "A101", 4)
    fake_channel.catalog = [
        ExternalCatalogItem(external_id="X-1", sku="a101", quantity=9, name="Mug"),
        ExternalCatalogItem(external_id="X-2", sku="ZZZ", quantity=1),
    ]

    result = await run_inventory_pull(
        session, "ebay-1", SyncConfig(), credentials=fake_credentials, client_factory=fake_channel.factory, now=RUN_AT
    )
    assert (result.created, result.skipped, result.errors) == (2, 0, 0)
    assert result.status == ImportRunStatus.SUCCESS

    rows = {
        r.external_id: r.sku
        for r in (await session.execute(select(ExternalInventoryIndex))).scalars()
    }
    assert rows == {"X-1": "A101", "X-2": "ZZZ"}

    acc = await session.get(ChannelAccount, "ebay-1", populate_existing=True)
    assert as_utc(acc.last_inventory_since) == RUN_AT


async def test_pull_twice_skips_known_items(session, fake_channel, fake_credentials):
    await seed_account(session, "ebay-1")
    fake_channel.catalog = [ExternalCatalogItem(external_id="X-1", sku="A101")]
    cfg = SyncConfig()

    await run_inventory_pull(session, "ebay-1", cfg, credentials=fake_credentials, client_factory=fake_channel.factory)
    again = await run_inventory_pull(
        session, "ebay-1", cfg, credentials=fake_credentials, client_factory=fake_channel.factory
    )
    assert (again.created, again.skipped) == (0, 1)


async def test_item_without_id_is_a_row_error(session, fake_channel, fake_credentials):
    await seed_account(session, "ebay-1")
    fake_channel.catalog = [
        ExternalCatalogItem(external_id="", sku="A101"),
        ExternalCatalogItem(external_id="X-9", sku="B202"),
    ]

    result = await run_inventory_pull(
        session, "ebay-1", SyncConfig(), credentials=fake_credentials, client_factory=fake_channel.factory
    )
    assert (result.created, result.errors) == (1, 1)
    assert result.status == ImportRunStatus.WARNING


async def test_item_pulled_before_stock_arrives_is_pushed_later(session, fake_channel, fake_credentials):
    await seed_account(session, "ebay-1")
    fake_channel.catalog = [
        ExternalCatalogItem(external_id="X-1", sku="b202", quantity=3),
        ExternalCatalogItem(external_id="X-2", sku=None, name="no sku"),
    ]
    cfg = SyncConfig(live_push=False)

    first = await run_inventory_pull(
        session, "ebay-1", cfg, credentials=fake_credentials, client_factory=fake_channel.factory
    )
    assert first.created == 2

    await seed_stock(session, "B202", 5)
    again = await run_inventory_pull(
        session, "ebay-1", cfg, credentials=fake_credentials, client_factory=fake_channel.factory
    )
    assert (again.created, again.skipped) == (0, 2)

    pushed = await run_inventory_push(
        session, "ebay-1", cfg, credentials=fake_credentials, client_factory=fake_channel.factory
    )
    assert pushed.updated == 1
    assert [(r.sku, r.effective) for r in pushed.rows] == [("B202", 5)]
