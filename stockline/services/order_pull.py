# stockline/services/order_pull.py
from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.adapters.base import ExternalLine, ExternalOrder
from stockline.adapters.registry import ChannelClientFactory, get_client_factory
from stockline.core.clock import as_utc, utcnow
from stockline.core.config import SyncConfig
from stockline.models.channel import ChannelAccount
from stockline.models.enums import OrderStatus, SyncKind
from stockline.models.external_index import ExternalOrderIndex
from stockline.models.order import Order
from stockline.services.credentials import CredentialProvider
from stockline.services.errors import UpstreamFailure
from stockline.services.import_run_service import RunCounters
from stockline.services.reservation_service import ReservationService
from stockline.services.sync_common import fail_run, finish_run, load_account
from stockline.services.sync_lock import SyncLockService
from stockline.services.sync_types import SyncRunResult

log = logging.getLogger("stockline.sync.orders")


def aggregate_lines(lines: Iterable[ExternalLine]) -> Dict[str, int]:
    """同一 SKU 多行合并；数量缺失 / 非正的行按 1 计。保持首次出现顺序。"""
    out: Dict[str, int] = OrderedDict()
    for ln in lines:
        sku = (ln.sku or "").strip().upper()
        if not sku:
            continue
        qty = int(ln.quantity or 0)
        out[sku] = out.get(sku, 0) + max(1, qty)
    return out


def order_items_payload(lines: Iterable[ExternalLine]) -> List[dict]:
    items: List[dict] = []
    for ln in lines:
        item = {"sku": (ln.sku or "").strip().upper(), "quantity": max(1, int(ln.quantity or 0))}
        if ln.barcode:
            item["barcode"] = ln.barcode
        if ln.item_name:
            item["itemName"] = ln.item_name
        items.append(item)
    return items


async def _index_exists(session: AsyncSession, account_id: str, external_id: str) -> bool:
    v = (
        await session.execute(
            select(ExternalOrderIndex.id).where(
                ExternalOrderIndex.account_id == account_id,
                ExternalOrderIndex.external_id == external_id,
            )
        )
    ).scalar_one_or_none()
    return v is not None


async def import_external_order(
    session: AsyncSession, account_id: str, platform: Optional[str], ext: ExternalOrder
) -> Optional[Order]:
    """
    单张外部订单入库（不提交）：已有索引 → None；否则建单 + 占用 + 索引。
    """
    if await _index_exists(session, account_id, ext.external_id):
        return None

    order = Order(
        order_number=ext.order_number or ext.external_id,
        status=OrderStatus.PENDING.value,
        platform=platform,
        account_id=account_id,
        buyer_username=ext.buyer_username,
        buyer_name=ext.buyer_name,
        postal_code=ext.postal_code,
        order_date=ext.order_date,
        items=order_items_payload(ext.items),
    )
    session.add(order)
    await session.flush()

    reservations = ReservationService(session)
    for sku, qty in aggregate_lines(ext.items).items():
        await reservations.reserve(order.id, sku, qty)

    session.add(ExternalOrderIndex(account_id=account_id, external_id=ext.external_id, order_id=order.id))
    await session.flush()
    return order


async def run_order_pull(
    session: AsyncSession,
    account_id: str,
    config: SyncConfig,
    *,
    credentials: CredentialProvider,
    client_factory: Optional[ChannelClientFactory] = None,
    now: Optional[datetime] = None,
) -> SyncRunResult:
    """
    订单增量拉取：

    1) 账号不存在 → NotFound；同账号 ORDERS 正在跑 → SyncAlreadyRunning
    2) 取 token / 拉取失败 → 一条 ERROR ImportRun（零行），游标不动
    3) 每单一个事务：索引已存在 → skipped；否则建单 + 每 SKU 一条占用 + 索引 → created
       单张失败只回滚本单、计 errors
    4) 无论单张成败，游标推进到本次运行开始时刻
    """
    account = await load_account(session, account_id)
    platform = account.platform
    since = as_utc(account.last_orders_since)

    lock = SyncLockService(session)
    held = await lock.acquire(account_id, SyncKind.ORDERS, config.lock_timeout)
    try:
        started = now or utcnow()

        try:
            token = await credentials.get_valid_token(account_id)
        except UpstreamFailure as exc:
            return await fail_run(session, account_id=account_id, kind=SyncKind.ORDERS, message=exc.message)

        try:
            factory = client_factory or get_client_factory(platform)
            client = factory(account_id, token.token, config)
            orders = list(await client.pull_orders(since))
        except Exception as exc:
            log.exception("order pull fetch failed: account=%s", account_id)
            return await fail_run(
                session, account_id=account_id, kind=SyncKind.ORDERS, message=f"fetch failed: {exc}"
            )

        counters = RunCounters()
        for ext in orders:
            counters.rows_total += 1
            ext_id = ext.external_id
            if not ext_id:
                counters.add_error(None, "external order without id")
                continue
            try:
                created = await import_external_order(session, account_id, platform, ext)
                if created is None:
                    counters.skipped += 1
                    continue
                await session.commit()
                counters.created += 1
            except IntegrityError as exc:
                await session.rollback()
                # 并发拉取抢先写了同一索引：按重复处理
                if await _index_exists(session, account_id, ext_id):
                    counters.skipped += 1
                else:
                    counters.add_error(ext_id, f"integrity error: {exc.orig}")
            except Exception as exc:
                await session.rollback()
                log.warning("order import failed: account=%s ext=%s err=%s", account_id, ext_id, exc)
                counters.add_error(ext_id, str(exc))

        await session.execute(
            update(ChannelAccount)
            .where(ChannelAccount.id == account_id)
            .values(last_orders_since=started)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        log.debug("orders cursor advanced: account=%s platform=%s since=%s", account_id, platform, started)

        return await finish_run(session, account_id=account_id, kind=SyncKind.ORDERS, counters=counters)
    finally:
        await lock.release(account_id, SyncKind.ORDERS, held)
