# stockline/models/picking.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockline.core.clock import utcnow
from stockline.db.base import Base
from stockline.models.enums import PickingListStatus, PickingTaskStatus


class PickingList(Base):
    """拣货单头：一组待拣 SKU 行。"""

    __tablename__ = "picking_lists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=PickingListStatus.PENDING.value
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    tasks: Mapped[List["PickingTask"]] = relationship(
        "PickingTask",
        back_populates="picking_list",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="[PickingTask.created_at, PickingTask.id]",
        lazy="selectin",
    )


class PickingTask(Base):
    """
    拣货任务行。

    picked_quantity 只增不减，且永远 <= required_quantity（数据库约束兜底）。
    order_id 非空时，完成拣货会释放该订单对该 SKU 的占用。
    """

    __tablename__ = "picking_tasks"
    __table_args__ = (
        CheckConstraint("required_quantity > 0", name="ck_picking_tasks_required_positive"),
        CheckConstraint("picked_quantity >= 0", name="ck_picking_tasks_picked_non_negative"),
        CheckConstraint(
            "picked_quantity <= required_quantity", name="ck_picking_tasks_picked_le_required"
        ),
        Index("ix_picking_tasks_list_sku", "picking_list_id", "sku"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    picking_list_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("picking_lists.id", ondelete="CASCADE"), nullable=False
    )
    order_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    sku: Mapped[str] = mapped_column(String(128), nullable=False)
    item_name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)

    required_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    picked_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=PickingTaskStatus.PENDING.value
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    picking_list: Mapped[PickingList] = relationship("PickingList", back_populates="tasks")

    @property
    def is_full(self) -> bool:
        return self.picked_quantity >= self.required_quantity

    def __repr__(self) -> str:
        return (
            f"<PickingTask id={self.id} list={self.picking_list_id} sku={self.sku} "
            f"{self.picked_quantity}/{self.required_quantity} status={self.status}>"
        )
