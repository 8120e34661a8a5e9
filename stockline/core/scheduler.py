# stockline/core/scheduler.py
from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from stockline.core.config import get_settings

log = logging.getLogger("stockline.scheduler")

_scheduler: Optional[AsyncIOScheduler] = None


async def _job(kind: str) -> None:
    # 延迟导入：避免应用启动时就拉起整条同步链
    from stockline.jobs.channel_sync import run_once

    results = await run_once(kind)
    log.info("scheduled %s sync finished: %d accounts", kind, len(results))


def init_scheduler() -> Optional[AsyncIOScheduler]:
    """
    STOCKLINE_ENABLE_SYNC_SCHEDULER=true 时按间隔跑三条同步；
    max_instances=1 + 运行锁，同一种同步不会叠跑。
    """
    global _scheduler
    settings = get_settings()
    if not settings.ENABLE_SYNC_SCHEDULER or _scheduler is not None:
        return _scheduler

    minutes = settings.SYNC_INTERVAL_MINUTES
    _scheduler = AsyncIOScheduler(timezone="UTC")
    for kind in ("orders", "inventory", "push"):
        _scheduler.add_job(
            _job,
            "interval",
            minutes=minutes,
            args=[kind],
            id=f"channel_sync_{kind}",
            max_instances=1,
            coalesce=True,
        )
    _scheduler.start()
    log.info("sync scheduler started: every %d minutes", minutes)
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
