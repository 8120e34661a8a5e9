# stockline/models/channel.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stockline.core.clock import utcnow
from stockline.db.base import Base
from stockline.models.enums import SyncLockStatus


class ChannelAccount(Base):
    """
    外部销售渠道账号（目前主要是 eBay）。

    游标（last_*_since）只在一次拉取跑完后推进。
    """

    __tablename__ = "channel_accounts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    platform: Mapped[str] = mapped_column(String(16), nullable=False, default="ebay")
    name: Mapped[str] = mapped_column(String(128), nullable=False, default="")

    # 凭据引用（真实 token 放在 channel_tokens / 外部密钥库）
    credentials_ref: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    use_orders: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    use_inventory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    last_orders_since: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_inventory_since: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<ChannelAccount id={self.id} platform={self.platform} enabled={self.enabled}>"


class ChannelSkuBuffer(Base):
    """渠道 × SKU 的安全缓冲量，未配置时取 SyncConfig.default_buffer。"""

    __tablename__ = "channel_sku_buffers"
    __table_args__ = (CheckConstraint("buffer >= 0", name="ck_channel_sku_buffers_non_negative"),)

    account_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("channel_accounts.id", ondelete="CASCADE"), primary_key=True
    )
    sku: Mapped[str] = mapped_column(String(128), primary_key=True)
    buffer: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ChannelToken(Base):
    """
    账号级访问令牌。刷新逻辑不在这里，由 CredentialProvider 的 refresher 负责。
    """

    __tablename__ = "channel_tokens"

    account_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("channel_accounts.id", ondelete="CASCADE"), primary_key=True
    )
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class SyncLock(Base):
    """
    (account, kind) 级别的运行互斥标记：IDLE / RUNNING。

    RUNNING 超过 lock_timeout 视为进程崩溃遗留，允许被下一次运行抢占。
    """

    __tablename__ = "sync_locks"

    account_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[str] = mapped_column(String(16), primary_key=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=SyncLockStatus.IDLE.value)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
