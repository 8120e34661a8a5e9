# stockline/models/inventory.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stockline.core.clock import utcnow
from stockline.db.base import Base


class InventoryRecord(Base):
    """
    实仓在手量：一个 SKU 可以分布在多个库位，每个 (sku, location) 一行。
    """

    __tablename__ = "inventory_records"
    __table_args__ = (
        UniqueConstraint("sku", "location", name="uq_inventory_records_sku_location"),
        CheckConstraint("on_hand_quantity >= 0", name="ck_inventory_records_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sku: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    location: Mapped[str] = mapped_column(String(64), nullable=False)
    on_hand_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<InventoryRecord sku={self.sku} loc={self.location} on_hand={self.on_hand_quantity}>"


class PendingPlacement(Base):
    """入库后、上架确认前的暂存行；确认上架时转成在手量调整并删除。"""

    __tablename__ = "pending_placements"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_pending_placements_qty"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    barcode: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    sku: Mapped[str] = mapped_column(String(128), nullable=False)
    target_location: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class ItemBarcode(Base):
    """条码 → SKU 绑定，供扫码解析使用。"""

    __tablename__ = "item_barcodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    barcode: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    sku: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
