# stockline/models/event_log.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stockline.core.clock import utcnow
from stockline.db.base import Base


class EventLog(Base):
    """作业员操作日志（扫码拣货 / 打包 / 入库上架 ...）。"""

    __tablename__ = "event_logs"
    __table_args__ = (Index("ix_event_logs_action_time", "action", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    operator: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ref: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
