# stockline/models/external_index.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stockline.core.clock import utcnow
from stockline.db.base import Base


class ExternalOrderIndex(Base):
    """
    外部订单 → 本地订单 的去重索引。

    (account_id, external_id) 唯一：重复投递 / 重试 / 游标边界重叠都只会建一次单。
    """

    __tablename__ = "external_order_index"
    __table_args__ = (
        UniqueConstraint("account_id", "external_id", name="uq_external_order_index_account_ext"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False)
    external_id: Mapped[str] = mapped_column(String(128), nullable=False)
    order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class ExternalInventoryIndex(Base):
    """
    外部商品 → SKU 的映射；sku 存平台 SKU（大写），平台未提供时为空。
    """

    __tablename__ = "external_inventory_index"
    __table_args__ = (
        UniqueConstraint("account_id", "external_id", name="uq_external_inventory_index_account_ext"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    external_id: Mapped[str] = mapped_column(String(128), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
