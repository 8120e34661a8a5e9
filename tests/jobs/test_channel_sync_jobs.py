# tests/jobs/test_channel_sync_jobs.py
from __future__ import annotations

import pytest
from sqlalchemy import select, update

from stockline.adapters import registry
from stockline.adapters.base import ExternalLine, ExternalOrder
from stockline.core.config import SyncConfig
from stockline.models.channel import ChannelAccount
from stockline.models.enums import ImportRunStatus, SyncKind
from stockline.models.import_run import ImportRun
from stockline.services.sync_lock import SyncLockService
from stockline.jobs.channel_sync import (
    inventory_account_ids,
    order_account_ids,
    run_inventory_push_all,
    run_order_pull_all,
)
from tests.helpers.seed import seed_account, seed_mapping, seed_stock

pytestmark = pytest.mark.asyncio


async def _accounts(session):
    await seed_account(session, "ebay-a")
    await seed_account(session, "ebay-b", use_inventory=False)
    await seed_account(session, "ebay-c", use_orders=False)
    await seed_account(session, "ebay-off", enabled=False)


async def test_account_selection_respects_flags_and_allow_list(session):
    await _accounts(session)

    assert await order_account_ids(session) == ["ebay-a", "ebay-b"]
    assert await inventory_account_ids(session, SyncConfig()) == ["ebay-a", "ebay-c"]
    only_c = SyncConfig(inventory_sync_accounts=frozenset({"ebay-c", "ebay-b"}))
    assert await inventory_account_ids(session, only_c) == ["ebay-c"]


async def test_order_pull_all_skips_locked_accounts(session, fake_channel, fake_credentials):
    await _accounts(session)
    await seed_stock(session, "A101", 5)
    fake_channel.orders = [ExternalOrder(external_id="E-1", order_number="E-1", items=[ExternalLine(sku="A101", quantity=1)])]
    await SyncLockService(session).acquire("ebay-b", SyncKind.ORDERS, SyncConfig().lock_timeout)

    results = await run_order_pull_all(
        session, SyncConfig(), credentials=fake_credentials, client_factory=fake_channel.factory
    )
    assert [r.account_id for r in results] == ["ebay-a"]
    assert results[0].created == 1


async def test_push_all_only_touches_allowed_accounts(session, fake_channel, fake_credentials):
    await _accounts(session)
    await seed_stock(session, "A101", 5)
    await seed_mapping(session, "ebay-a", "X-1", "A101")
    await seed_mapping(session, "ebay-c", "X-1", "A101")

    cfg = SyncConfig(live_push=True, inventory_sync_accounts=frozenset({"ebay-c"}))
    results = await run_inventory_push_all(
        session, cfg, credentials=fake_credentials, client_factory=fake_channel.factory
    )
    assert [r.account_id for r in results] == ["ebay-c"]
    assert fake_channel.factory_calls == ["ebay-c"]
    assert fake_channel.pushes == [("A101", 5)]

    runs = (await session.execute(select(ImportRun))).scalars().all()
    assert [r.source_ref for r in runs] == ["ebay-c"]


async def test_unexpected_error_on_one_account_does_not_stop_the_rest(session, fake_channel, fake_credentials):
    await _accounts(session)
    await seed_stock(session, "A101", 5)
    fake_channel.orders = [ExternalOrder(external_id="E-1", order_number="E-1", items=[ExternalLine(sku="A101", quantity=1)])]
    fake_credentials.crashing.add("ebay-a")

    results = await run_order_pull_all(
        session, SyncConfig(), credentials=fake_credentials, client_factory=fake_channel.factory
    )
    assert fake_credentials.calls == ["ebay-a", "ebay-b"]
    assert [r.account_id for r in results] == ["ebay-b"]
    assert results[0].created == 1

    # 崩掉的那次运行也释放了锁，下一轮照常能跑
    assert await SyncLockService(session).status("ebay-a", SyncKind.ORDERS) == "IDLE"


async def test_pipelines_pick_client_by_account_platform(session, fake_channel, fake_credentials, monkeypatch):
    await _accounts(session)
    await seed_stock(session, "A101", 5)
    fake_channel.orders = [ExternalOrder(external_id="E-1", order_number="E-1", items=[ExternalLine(sku="A101", quantity=1)])]
    monkeypatch.setitem(registry._FACTORIES, "ebay", fake_channel.factory)
    await session.execute(
        update(ChannelAccount).where(ChannelAccount.id == "ebay-b").values(platform="amazon")
    )
    await session.commit()

    results = await run_order_pull_all(session, SyncConfig(), credentials=fake_credentials)
    by_account = {r.account_id: r for r in results}

    assert fake_channel.factory_calls == ["ebay-a"]
    assert by_account["ebay-a"].created == 1
    assert by_account["ebay-b"].status == ImportRunStatus.ERROR
    assert "unsupported channel platform" in by_account["ebay-b"].error_details[0]["message"]
