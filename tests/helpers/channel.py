# tests/helpers/channel.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Set, Tuple

from stockline.adapters.base import ExternalCatalogItem, ExternalOrder, PushResult
from stockline.core.clock import utcnow
from stockline.core.config import SyncConfig
from stockline.services.credentials import AccessToken
from stockline.services.errors import TokenUnavailable


class FakeCredentials:
    """
    实现 CredentialProvider：默认发一个 1 小时有效的 token；
    broken 里的账号取不到（TokenUnavailable），crashing 里的账号抛意外异常。
    """

    def __init__(self) -> None:
        self.broken: Set[str] = set()
        self.crashing: Set[str] = set()
        self.calls: List[str] = []

    async def get_valid_token(self, account_id: str) -> AccessToken:
        self.calls.append(account_id)
        if account_id in self.broken:
            raise TokenUnavailable(f"account {account_id}: no valid access token")
        if account_id in self.crashing:
            raise RuntimeError(f"credential store unreachable for {account_id}")
        return AccessToken(token=f"tok-{account_id}", expires_at=utcnow() + timedelta(hours=1))


class FakeChannel:
    """
    实现 ChannelClient（+ 工厂）：

    - orders / catalog：按 modified_at 过滤 since，模拟平台的增量接口
    - pushes：记录每一次推送；fail_skus 里的 SKU 返回 500
    """

    def __init__(self) -> None:
        self.orders: List[ExternalOrder] = []
        self.catalog: List[ExternalCatalogItem] = []
        self.pushes: List[Tuple[str, int]] = []
        self.since_seen: List[Optional[datetime]] = []
        self.fail_skus: Set[str] = set()
        self.fetch_error: Optional[Exception] = None
        self.factory_calls: List[str] = []

    def factory(self, account_id: str, token: str, config: SyncConfig) -> "FakeChannel":
        self.factory_calls.append(account_id)
        return self

    async def pull_orders(self, since: Optional[datetime]) -> Sequence[ExternalOrder]:
        self.since_seen.append(since)
        if self.fetch_error is not None:
            raise self.fetch_error
        if since is None:
            return list(self.orders)
        return [o for o in self.orders if o.modified_at is None or o.modified_at >= since]

    async def pull_inventory(self, since: Optional[datetime]) -> Sequence[ExternalCatalogItem]:
        self.since_seen.append(since)
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.catalog)

    async def push_quantity(self, sku: str, quantity: int) -> PushResult:
        self.pushes.append((sku, quantity))
        if sku in self.fail_skus:
            return PushResult(ok=False, status=500, message="boom")
        return PushResult(ok=True, status=204)

    @property
    def pushed(self) -> Dict[str, int]:
        return dict(self.pushes)
