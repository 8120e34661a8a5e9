# stockline/services/inventory_pull.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.adapters.base import ExternalCatalogItem
from stockline.adapters.registry import ChannelClientFactory, get_client_factory
from stockline.core.clock import as_utc, utcnow
from stockline.core.config import SyncConfig
from stockline.models.channel import ChannelAccount
from stockline.models.enums import SyncKind
from stockline.models.external_index import ExternalInventoryIndex
from stockline.models.inventory import InventoryRecord
from stockline.services.credentials import CredentialProvider
from stockline.services.errors import UpstreamFailure
from stockline.services.import_run_service import RunCounters
from stockline.services.sync_common import fail_run, finish_run, load_account
from stockline.services.sync_lock import SyncLockService
from stockline.services.sync_types import SyncRunResult

log = logging.getLogger("stockline.sync.inventory")


async def _index_exists(session: AsyncSession, account_id: str, external_id: str) -> bool:
    v = (
        await session.execute(
            select(ExternalInventoryIndex.id).where(
                ExternalInventoryIndex.account_id == account_id,
                ExternalInventoryIndex.external_id == external_id,
            )
        )
    ).scalar_one_or_none()
    return v is not None


def external_sku(item: ExternalCatalogItem) -> Optional[str]:
    """平台 SKU 统一大写；平台没给 SKU 返回 None。"""
    sku = (item.sku or "").strip().upper()
    return sku or None


async def has_local_stock(session: AsyncSession, sku: str) -> bool:
    hit = (
        await session.execute(select(InventoryRecord.id).where(InventoryRecord.sku == sku).limit(1))
    ).scalar_one_or_none()
    return hit is not None


async def run_inventory_pull(
    session: AsyncSession,
    account_id: str,
    config: SyncConfig,
    *,
    credentials: CredentialProvider,
    client_factory: Optional[ChannelClientFactory] = None,
    now: Optional[datetime] = None,
) -> SyncRunResult:
    """
    商品目录增量拉取，建立 外部商品 → 本地 SKU 映射：

    - 索引已存在 → skipped
    - 否则写索引 → created。索引记平台 SKU（大写），不要求本地已有库存：
      库存后到时推送按同一 SKU 算可售量，不必重新拉取
    - 游标 last_inventory_since 推进到本次运行开始时刻
    """
    account = await load_account(session, account_id)
    platform = account.platform
    since = as_utc(account.last_inventory_since)

    lock = SyncLockService(session)
    held = await lock.acquire(account_id, SyncKind.INVENTORY, config.lock_timeout)
    try:
        started = now or utcnow()

        try:
            token = await credentials.get_valid_token(account_id)
        except UpstreamFailure as exc:
            return await fail_run(session, account_id=account_id, kind=SyncKind.INVENTORY, message=exc.message)

        try:
            factory = client_factory or get_client_factory(platform)
            client = factory(account_id, token.token, config)
            items = list(await client.pull_inventory(since))
        except Exception as exc:
            log.exception("inventory pull fetch failed: account=%s", account_id)
            return await fail_run(
                session, account_id=account_id, kind=SyncKind.INVENTORY, message=f"fetch failed: {exc}"
            )

        counters = RunCounters()
        for item in items:
            counters.rows_total += 1
            ext_id = item.external_id
            if not ext_id:
                counters.add_error(None, "catalog item without id")
                continue
            try:
                if await _index_exists(session, account_id, ext_id):
                    counters.skipped += 1
                    continue
                sku = external_sku(item)
                session.add(
                    ExternalInventoryIndex(
                        account_id=account_id,
                        external_id=ext_id,
                        sku=sku,
                        name=item.name,
                    )
                )
                await session.commit()
                counters.created += 1
                if sku is None:
                    log.info("external item without sku: account=%s ext=%s", account_id, ext_id)
                elif not await has_local_stock(session, sku):
                    log.info("no local stock yet for sku=%s: account=%s ext=%s", sku, account_id, ext_id)
            except IntegrityError as exc:
                await session.rollback()
                if await _index_exists(session, account_id, ext_id):
                    counters.skipped += 1
                else:
                    counters.add_error(ext_id, f"integrity error: {exc.orig}")
            except Exception as exc:
                await session.rollback()
                log.warning("catalog import failed: account=%s ext=%s err=%s", account_id, ext_id, exc)
                counters.add_error(ext_id, str(exc))

        await session.execute(
            update(ChannelAccount)
            .where(ChannelAccount.id == account_id)
            .values(last_inventory_since=started)
            .execution_options(synchronize_session=False)
        )
        await session.commit()

        return await finish_run(session, account_id=account_id, kind=SyncKind.INVENTORY, counters=counters)
    finally:
        await lock.release(account_id, SyncKind.INVENTORY, held)
