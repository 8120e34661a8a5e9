# stockline/models/reservation.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stockline.core.clock import utcnow
from stockline.db.base import Base
from stockline.models.enums import ReservationStatus


class Reservation(Base):
    """
    订单行对实仓的占用：ACTIVE → CLEARED 只发生一次。

    (order_id, sku) 唯一：reserve 的幂等键。
    """

    __tablename__ = "reservations"
    __table_args__ = (
        UniqueConstraint("order_id", "sku", name="uq_reservations_order_sku"),
        CheckConstraint("quantity > 0", name="ck_reservations_qty_positive"),
        Index("ix_reservations_sku_status", "sku", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sku: Mapped[str] = mapped_column(String(128), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=ReservationStatus.ACTIVE.value)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    cleared_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    clear_reason: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Reservation id={self.id} order={self.order_id} sku={self.sku} "
            f"qty={self.quantity} status={self.status}>"
        )
