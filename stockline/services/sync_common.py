# stockline/services/sync_common.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from stockline.metrics import observe_sync_run
from stockline.models.channel import ChannelAccount
from stockline.models.enums import ImportRunStatus, ImportSourceType, SyncKind
from stockline.services.errors import NotFound
from stockline.services.import_run_service import ImportRunService, RunCounters
from stockline.services.sync_types import SyncRunResult

log = logging.getLogger("stockline.sync")

SOURCE_TYPES = {
    SyncKind.ORDERS: ImportSourceType.EBAY_ORDERS,
    SyncKind.INVENTORY: ImportSourceType.EBAY_INVENTORY,
    SyncKind.PUSH: ImportSourceType.EBAY_INVENTORY_PUSH,
}


async def load_account(session: AsyncSession, account_id: str) -> ChannelAccount:
    acc = await session.get(ChannelAccount, account_id, populate_existing=True)
    if acc is None:
        raise NotFound(f"channel account {account_id} not found", error_code="account_not_found")
    return acc


async def finish_run(
    session: AsyncSession,
    *,
    account_id: str,
    kind: SyncKind,
    counters: RunCounters,
    status: Optional[ImportRunStatus] = None,
) -> SyncRunResult:
    """落一条 ImportRun + 打点，返回汇总。"""
    final = status or counters.status
    run = await ImportRunService(session).record(
        source_type=SOURCE_TYPES[kind],
        source_ref=account_id,
        counters=counters,
        status=final,
    )
    observe_sync_run(
        kind.value,
        final.value,
        created=counters.created,
        updated=counters.updated,
        skipped=counters.skipped,
        errors=counters.errors,
    )
    log.info(
        "sync %s account=%s status=%s total=%d created=%d updated=%d skipped=%d errors=%d",
        kind.value,
        account_id,
        final.value,
        counters.rows_total,
        counters.created,
        counters.updated,
        counters.skipped,
        counters.errors,
    )
    return SyncRunResult(
        account_id=account_id,
        kind=kind,
        status=final,
        import_run_id=run.id,
        rows_total=counters.rows_total,
        created=counters.created,
        updated=counters.updated,
        skipped=counters.skipped,
        errors=counters.errors,
        error_details=list(counters.error_details),
    )


async def fail_run(
    session: AsyncSession, *, account_id: str, kind: SyncKind, message: str
) -> SyncRunResult:
    """运行级失败（取 token / 拉取失败）：零行 + ERROR。"""
    counters = RunCounters()
    counters.error_details.append({"ref": None, "message": message[:500]})
    log.warning("sync %s account=%s failed: %s", kind.value, account_id, message)
    return await finish_run(
        session, account_id=account_id, kind=kind, counters=counters, status=ImportRunStatus.ERROR
    )
