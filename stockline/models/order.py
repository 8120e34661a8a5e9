# stockline/models/order.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from stockline.core.clock import utcnow
from stockline.db.base import Base
from stockline.models.enums import OrderStatus


class Order(Base):
    """
    本地订单头。

    items:               [{sku, quantity, barcode?, itemName?}, ...]
    dispatched_barcodes: 发货时扫过的条码（打包核对时用于归属到行）
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=OrderStatus.PENDING.value, index=True
    )

    platform: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    account_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    buyer_username: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    buyer_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    order_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    dispatched_barcodes: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    shipping_label: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)

    dispatched_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    dispatched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    packed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    packed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} no={self.order_number} status={self.status}>"
