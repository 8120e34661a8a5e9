# stockline/jobs/channel_sync.py
from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.adapters.registry import ChannelClientFactory
from stockline.core.config import SyncConfig, get_settings
from stockline.core.logging import setup_logging
from stockline.db.session import AsyncSessionLocal
from stockline.models.channel import ChannelAccount
from stockline.services.credentials import CredentialProvider, StoredTokenProvider
from stockline.services.errors import ServiceError, SyncAlreadyRunning
from stockline.services.inventory_pull import run_inventory_pull
from stockline.services.inventory_push import run_inventory_push
from stockline.services.order_pull import run_order_pull
from stockline.services.sync_types import SyncRunResult

log = logging.getLogger("stockline.jobs.channel_sync")

Runner = Callable[..., Awaitable[SyncRunResult]]


async def order_account_ids(session: AsyncSession) -> List[str]:
    rows = (
        await session.execute(
            select(ChannelAccount.id)
            .where(ChannelAccount.enabled.is_(True), ChannelAccount.use_orders.is_(True))
            .order_by(ChannelAccount.id)
        )
    ).scalars()
    return [str(r) for r in rows]


async def inventory_account_ids(session: AsyncSession, config: SyncConfig) -> List[str]:
    """启用 + use_inventory，再按白名单过滤（白名单为空表示不限制）。"""
    rows = (
        await session.execute(
            select(ChannelAccount.id)
            .where(ChannelAccount.enabled.is_(True), ChannelAccount.use_inventory.is_(True))
            .order_by(ChannelAccount.id)
        )
    ).scalars()
    return [str(r) for r in rows if config.allows_inventory_sync(str(r))]


async def _run_each(
    session: AsyncSession,
    account_ids: List[str],
    runner: Runner,
    config: SyncConfig,
    credentials: CredentialProvider,
    client_factory: Optional[ChannelClientFactory],
) -> List[SyncRunResult]:
    results: List[SyncRunResult] = []
    for account_id in account_ids:
        try:
            results.append(
                await runner(
                    session,
                    account_id,
                    config,
                    credentials=credentials,
                    client_factory=client_factory,
                )
            )
        except SyncAlreadyRunning as exc:
            log.info("skip account=%s: %s", account_id, exc.message)
        except ServiceError as exc:
            await session.rollback()
            log.warning("sync failed for account=%s: [%s] %s", account_id, exc.error_code, exc.message)
        except Exception:
            # 意外错误只记在该账号上，其余账号照常继续
            await session.rollback()
            log.exception("sync crashed for account=%s", account_id)
    return results


async def run_order_pull_all(
    session: AsyncSession,
    config: SyncConfig,
    *,
    credentials: Optional[CredentialProvider] = None,
    client_factory: Optional[ChannelClientFactory] = None,
) -> List[SyncRunResult]:
    ids = await order_account_ids(session)
    return await _run_each(
        session, ids, run_order_pull, config, credentials or StoredTokenProvider(session), client_factory
    )


async def run_inventory_pull_all(
    session: AsyncSession,
    config: SyncConfig,
    *,
    credentials: Optional[CredentialProvider] = None,
    client_factory: Optional[ChannelClientFactory] = None,
) -> List[SyncRunResult]:
    ids = await inventory_account_ids(session, config)
    return await _run_each(
        session, ids, run_inventory_pull, config, credentials or StoredTokenProvider(session), client_factory
    )


async def run_inventory_push_all(
    session: AsyncSession,
    config: SyncConfig,
    *,
    credentials: Optional[CredentialProvider] = None,
    client_factory: Optional[ChannelClientFactory] = None,
) -> List[SyncRunResult]:
    ids = await inventory_account_ids(session, config)
    return await _run_each(
        session, ids, run_inventory_push, config, credentials or StoredTokenProvider(session), client_factory
    )


RUNNERS = {
    "orders": run_order_pull_all,
    "inventory": run_inventory_pull_all,
    "push": run_inventory_push_all,
}


async def run_once(kind: str) -> List[SyncRunResult]:
    """调度器 / CLI 入口：每次新开一个 session。"""
    config = get_settings().sync_config()
    async with AsyncSessionLocal() as session:
        return await RUNNERS[kind](session, config)


async def main(kind: str) -> None:
    results = await run_once(kind)
    for r in results:
        print(
            f"[channel_sync:{kind}] account={r.account_id} status={r.status.value} "
            f"created={r.created} updated={r.updated} skipped={r.skipped} errors={r.errors}"
        )
    if not results:
        print(f"[channel_sync:{kind}] no eligible accounts")


def run_cli(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="channel sync (order pull / inventory pull / inventory push)")
    parser.add_argument("kind", choices=sorted(RUNNERS))
    args = parser.parse_args(argv)
    setup_logging(get_settings().LOG_LEVEL)
    asyncio.run(main(args.kind))


if __name__ == "__main__":
    run_cli()
