# stockline/adapters/registry.py
from __future__ import annotations

from typing import Callable, Dict, Protocol

from stockline.adapters.base import ChannelClient
from stockline.adapters.ebay import EbayClient
from stockline.core.config import SyncConfig


class ChannelClientFactory(Protocol):
    def __call__(self, account_id: str, token: str, config: SyncConfig) -> ChannelClient:
        ...


def _ebay_factory(account_id: str, token: str, config: SyncConfig) -> ChannelClient:
    _ = account_id
    return EbayClient(access_token=token, api_env=config.api_env, timeout=config.http_timeout)


# 简单注册表：按账号的 platform 选择客户端工厂
_FACTORIES: Dict[str, Callable[[str, str, SyncConfig], ChannelClient]] = {
    "ebay": _ebay_factory,
}


def get_client_factory(platform: str = "ebay") -> ChannelClientFactory:
    """
    同步流水线在调用方没有注入工厂时，用 ChannelAccount.platform 查这里。
    未注册的平台 → KeyError，流水线把它记成一条 ERROR ImportRun。
    """
    key = (platform or "ebay").lower()
    if key not in _FACTORIES:
        raise KeyError(f"unsupported channel platform: {platform!r}")
    return _FACTORIES[key]
