# stockline/services/inventory_push.py
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.adapters.base import ChannelClient
from stockline.adapters.registry import ChannelClientFactory, get_client_factory
from stockline.core.config import SyncConfig
from stockline.models.enums import SyncKind
from stockline.models.external_index import ExternalInventoryIndex
from stockline.services.atp_service import AtpService
from stockline.services.credentials import CredentialProvider
from stockline.services.errors import UpstreamFailure
from stockline.services.import_run_service import RunCounters
from stockline.services.sync_common import fail_run, finish_run, load_account
from stockline.services.sync_lock import SyncLockService
from stockline.services.sync_types import PushRowLog, SyncRunResult

log = logging.getLogger("stockline.sync.push")


async def mapped_skus(session: AsyncSession, account_id: str) -> List[str]:
    rows = (
        await session.execute(
            select(ExternalInventoryIndex.sku)
            .where(
                ExternalInventoryIndex.account_id == account_id,
                ExternalInventoryIndex.sku.is_not(None),
            )
            .distinct()
            .order_by(ExternalInventoryIndex.sku)
        )
    ).scalars()
    return [str(s) for s in rows]


async def run_inventory_push(
    session: AsyncSession,
    account_id: str,
    config: SyncConfig,
    *,
    credentials: CredentialProvider,
    client_factory: Optional[ChannelClientFactory] = None,
) -> SyncRunResult:
    """
    可售量推送（账号已映射的 SKU）：

    - effective <= 0 → skipped（不推 0）
    - live_push=False → dry-run：逐行记日志、updated+1、不发任何请求
    - live_push=True  → push_quantity，单行失败只记该行
    token 在 dry-run 下也会校验；取不到 → 一条 ERROR ImportRun（零行）。
    """
    platform = (await load_account(session, account_id)).platform

    lock = SyncLockService(session)
    held = await lock.acquire(account_id, SyncKind.PUSH, config.lock_timeout)
    try:
        try:
            token = await credentials.get_valid_token(account_id)
        except UpstreamFailure as exc:
            result = await fail_run(session, account_id=account_id, kind=SyncKind.PUSH, message=exc.message)
            result.dry_run = not config.live_push
            return result

        client: Optional[ChannelClient] = None
        if config.live_push:
            try:
                factory = client_factory or get_client_factory(platform)
            except KeyError as exc:
                return await fail_run(session, account_id=account_id, kind=SyncKind.PUSH, message=exc.args[0])
            client = factory(account_id, token.token, config)

        atp = AtpService(session, default_buffer=config.default_buffer)
        counters = RunCounters()
        rows: List[PushRowLog] = []

        for sku in await mapped_skus(session, account_id):
            counters.rows_total += 1
            try:
                effective = (await atp.compute_atp(sku, account_id)).effective
            except Exception as exc:
                log.warning("atp failed: account=%s sku=%s err=%s", account_id, sku, exc)
                counters.add_error(sku, f"atp failed: {exc}")
                rows.append(PushRowLog(sku=sku, effective=0, ok=False, message=f"atp failed: {exc}"))
                continue

            if effective <= 0:
                counters.skipped += 1
                continue

            if client is None:
                log.info("dry-run push: account=%s sku=%s qty=%d", account_id, sku, effective)
                counters.updated += 1
                rows.append(PushRowLog(sku=sku, effective=effective, ok=True, message="dry-run"))
                continue

            try:
                res = await client.push_quantity(sku, effective)
            except Exception as exc:
                log.warning("push failed: account=%s sku=%s err=%s", account_id, sku, exc)
                counters.add_error(sku, str(exc) or exc.__class__.__name__)
                rows.append(PushRowLog(sku=sku, effective=effective, ok=False, message=str(exc)))
                continue

            if res.ok:
                counters.updated += 1
            else:
                counters.add_error(sku, f"HTTP {res.status}: {res.message or ''}")
            rows.append(
                PushRowLog(sku=sku, effective=effective, ok=res.ok, status=res.status, message=res.message)
            )

        result = await finish_run(session, account_id=account_id, kind=SyncKind.PUSH, counters=counters)
        result.rows = rows
        result.dry_run = client is None
        return result
    finally:
        await lock.release(account_id, SyncKind.PUSH, held)
