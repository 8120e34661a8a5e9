# stockline/api/deps.py
from __future__ import annotations

from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.adapters.registry import ChannelClientFactory
from stockline.core.config import SyncConfig, get_settings
from stockline.db.session import get_session
from stockline.services.barcode import BarcodeResolver, DbBarcodeResolver
from stockline.services.credentials import CredentialProvider, StoredTokenProvider


def get_sync_config() -> SyncConfig:
    return get_settings().sync_config()


def get_credential_provider(session: AsyncSession = Depends(get_session)) -> CredentialProvider:
    return StoredTokenProvider(session)


def get_channel_client_factory() -> Optional[ChannelClientFactory]:
    """None 表示由流水线按账号的 platform 从注册表选择。"""
    return None


def get_barcode_resolver(session: AsyncSession = Depends(get_session)) -> BarcodeResolver:
    return DbBarcodeResolver(session)
