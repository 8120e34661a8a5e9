# stockline/services/sync_lock.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.core.clock import as_utc, utcnow
from stockline.models.channel import SyncLock
from stockline.models.enums import SyncKind, SyncLockStatus
from stockline.services.errors import SyncAlreadyRunning

log = logging.getLogger("stockline.sync.lock")


class SyncLockService:
    """
    (account, kind) 级别的运行互斥：

    - acquire: 条件 UPDATE（IDLE 或 RUNNING 已超时）→ RUNNING，并立即提交；
               抢不到 → SyncAlreadyRunning（不排队）
    - acquire 返回本次写入的 started_at，作为持有凭证
    - release: → IDLE，并立即提交；调用方必须放在 finally 里。
               带凭证时只释放自己持有的那一次，被超时接管后不会误放别人的锁

    锁行独立于业务事务提交，业务回滚不影响锁状态。
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _ensure_row(self, account_id: str, kind: SyncKind) -> None:
        exists = (
            await self.session.execute(
                select(SyncLock.account_id).where(
                    SyncLock.account_id == account_id, SyncLock.kind == kind.value
                )
            )
        ).scalar_one_or_none()
        if exists is not None:
            return
        self.session.add(SyncLock(account_id=account_id, kind=kind.value, status=SyncLockStatus.IDLE.value))
        try:
            await self.session.commit()
        except IntegrityError:
            # 另一个进程刚插入了同一行
            await self.session.rollback()

    async def acquire(self, account_id: str, kind: SyncKind, timeout: timedelta) -> datetime:
        await self._ensure_row(account_id, kind)

        now = utcnow()
        stale_before = now - timeout
        res = await self.session.execute(
            update(SyncLock)
            .where(
                SyncLock.account_id == account_id,
                SyncLock.kind == kind.value,
                or_(
                    SyncLock.status == SyncLockStatus.IDLE.value,
                    SyncLock.started_at.is_(None),
                    SyncLock.started_at < stale_before,
                ),
            )
            .values(status=SyncLockStatus.RUNNING.value, started_at=now, finished_at=None)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

        if (res.rowcount or 0) == 0:
            started = await self.started_at(account_id, kind)
            raise SyncAlreadyRunning(
                f"{kind.value} sync for account {account_id} is already running",
                details=[{"type": "state", "reason": f"started_at={started.isoformat() if started else None}"}],
            )
        log.info("sync lock acquired: account=%s kind=%s", account_id, kind.value)
        return now

    async def release(
        self, account_id: str, kind: SyncKind, started_at: Optional[datetime] = None
    ) -> bool:
        conds = [SyncLock.account_id == account_id, SyncLock.kind == kind.value]
        if started_at is not None:
            conds.append(SyncLock.started_at == started_at)
        res = await self.session.execute(
            update(SyncLock)
            .where(*conds)
            .values(status=SyncLockStatus.IDLE.value, finished_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

        released = (res.rowcount or 0) > 0
        if released:
            log.info("sync lock released: account=%s kind=%s", account_id, kind.value)
        else:
            log.warning(
                "sync lock no longer held, left untouched: account=%s kind=%s", account_id, kind.value
            )
        return released

    async def started_at(self, account_id: str, kind: SyncKind):
        v = (
            await self.session.execute(
                select(SyncLock.started_at).where(
                    SyncLock.account_id == account_id, SyncLock.kind == kind.value
                )
            )
        ).scalar_one_or_none()
        return as_utc(v)

    async def status(self, account_id: str, kind: SyncKind) -> Optional[str]:
        return (
            await self.session.execute(
                select(SyncLock.status).where(SyncLock.account_id == account_id, SyncLock.kind == kind.value)
            )
        ).scalar_one_or_none()
