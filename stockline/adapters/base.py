# stockline/adapters/base.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol, Sequence


@dataclass(frozen=True)
class ExternalLine:
    sku: str
    quantity: int = 1
    barcode: Optional[str] = None
    item_name: Optional[str] = None


@dataclass(frozen=True)
class ExternalOrder:
    """平台侧订单（已做过字段归一化）。"""

    external_id: str
    order_number: str
    items: List[ExternalLine] = field(default_factory=list)
    buyer_username: Optional[str] = None
    buyer_name: Optional[str] = None
    postal_code: Optional[str] = None
    order_date: Optional[datetime] = None
    modified_at: Optional[datetime] = None


@dataclass(frozen=True)
class ExternalCatalogItem:
    external_id: str
    sku: Optional[str] = None
    quantity: Optional[int] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class PushResult:
    ok: bool
    status: Optional[int] = None
    message: Optional[str] = None


class ChannelClient(Protocol):
    """
    渠道平台调用接口（按账号构造，token 已就绪）：
    - 拉订单 / 拉商品目录 都按 since 游标增量
    - 推送单个 SKU 的可售量
    """

    async def pull_orders(self, since: Optional[datetime]) -> Sequence[ExternalOrder]:
        ...

    async def pull_inventory(self, since: Optional[datetime]) -> Sequence[ExternalCatalogItem]:
        ...

    async def push_quantity(self, sku: str, quantity: int) -> PushResult:
        ...
