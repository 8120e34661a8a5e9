# stockline/services/credentials.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.core.clock import as_utc, utcnow
from stockline.models.channel import ChannelToken
from stockline.services.errors import TokenUnavailable

log = logging.getLogger("stockline.credentials")

# 剩余有效期不足该值的 token 视为需要刷新
MIN_TOKEN_TTL = timedelta(seconds=60)


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: datetime


class CredentialProvider(Protocol):
    async def get_valid_token(self, account_id: str) -> AccessToken:
        ...


# refresher(account_id, refresh_token) -> 新 AccessToken；刷新细节（OAuth）不在本仓库范围
TokenRefresher = Callable[[str, Optional[str]], Awaitable[AccessToken]]


class StoredTokenProvider:
    """
    统一的 Token 供应站：

    - 从 channel_tokens 取账号级 token
    - 剩余有效期 > 60s 直接返回
    - 否则交给注入的 refresher 刷新并落库；没有 refresher / 刷新失败 → TokenUnavailable
    """

    def __init__(self, session: AsyncSession, refresher: Optional[TokenRefresher] = None) -> None:
        self.session = session
        self.refresher = refresher

    async def get_valid_token(self, account_id: str) -> AccessToken:
        now = utcnow()
        row = (
            await self.session.execute(select(ChannelToken).where(ChannelToken.account_id == account_id))
        ).scalar_one_or_none()

        if row is not None:
            exp = as_utc(row.expires_at)
            if row.access_token and exp is not None and exp > now + MIN_TOKEN_TTL:
                return AccessToken(token=row.access_token, expires_at=exp)

        if self.refresher is None:
            raise TokenUnavailable(
                f"account {account_id}: no valid access token",
                details=[{"type": "state", "reason": "missing" if row is None else "expired"}],
            )

        try:
            fresh = await self.refresher(account_id, row.refresh_token if row is not None else None)
        except TokenUnavailable:
            raise
        except Exception as exc:
            log.warning("token refresh failed: account=%s err=%s", account_id, exc)
            raise TokenUnavailable(f"account {account_id}: token refresh failed: {exc}") from exc

        if row is None:
            row = ChannelToken(account_id=account_id, access_token=fresh.token, expires_at=fresh.expires_at)
            self.session.add(row)
        else:
            row.access_token = fresh.token
            row.expires_at = fresh.expires_at
        await self.session.commit()
        return fresh
