# stockline/services/event_log.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from stockline.models.enums import EventAction
from stockline.models.event_log import EventLog

logger = logging.getLogger("stockline.events")


class EventLogWriter:
    """
    作业员操作日志写入器：只往 event_logs 加一行，不提交事务。

    和业务写入同一个事务提交：业务回滚时日志一起回滚。
    """

    @staticmethod
    def write(
        session: AsyncSession,
        *,
        action: EventAction,
        operator: Optional[str] = None,
        ref: Optional[str] = None,
        sku: Optional[str] = None,
        quantity: Optional[int] = None,
        details: str = "",
    ) -> EventLog:
        row = EventLog(
            action=action.value,
            operator=operator,
            ref=ref,
            sku=sku,
            quantity=quantity,
            details=details,
        )
        session.add(row)
        logger.debug("event %s ref=%s sku=%s qty=%s by=%s", action.value, ref, sku, quantity, operator)
        return row
