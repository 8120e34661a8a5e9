# stockline/models/packing.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from stockline.core.clock import utcnow
from stockline.db.base import Base
from stockline.models.enums import PackingState


class PackingSession(Base):
    """
    一张订单的打包扫描进度（持久化，避免多终端各自在内存里计数）。

    scanned: 与 Order.items 同序的计数数组。
    version: 乐观锁；并发写入时旧版本提交失败 → ConcurrentScan。
    """

    __tablename__ = "packing_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    state: Mapped[str] = mapped_column(String(16), nullable=False, default=PackingState.LABEL_SCANNED.value)
    scanned: Mapped[List[int]] = mapped_column(JSON, nullable=False, default=list)
    operator: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __mapper_args__ = {"version_id_col": version}
