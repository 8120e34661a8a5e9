# tests/unit/test_config.py
from __future__ import annotations

from datetime import timedelta

from stockline.core.config import AppSettings, SyncConfig
from stockline.db.session import normalize_async_dsn


def test_sync_config_from_env(monkeypatch):
    monkeypatch.setenv("STOCKLINE_INVENTORY_PUSH_LIVE", "true")
    monkeypatch.setenv("STOCKLINE_DEFAULT_CHANNEL_BUFFER", "2")
    monkeypatch.setenv("STOCKLINE_INVENTORY_SYNC_ACCOUNTS", " ebay-1, ,ebay-2 ")
    monkeypatch.setenv("STOCKLINE_SYNC_LOCK_TIMEOUT_SECONDS", "60")
    monkeypatch.setenv("STOCKLINE_EBAY_API_ENV", "SANDBOX")

    cfg = AppSettings().sync_config()
    assert cfg.live_push is True
    assert cfg.default_buffer == 2
    assert cfg.inventory_sync_accounts == frozenset({"ebay-1", "ebay-2"})
    assert cfg.lock_timeout == timedelta(seconds=60)
    assert cfg.api_env == "sandbox"
    assert cfg.allows_inventory_sync("ebay-1")
    assert not cfg.allows_inventory_sync("ebay-3")


def test_empty_allow_list_means_unrestricted(monkeypatch):
    monkeypatch.delenv("STOCKLINE_INVENTORY_SYNC_ACCOUNTS", raising=False)
    cfg = AppSettings(_env_file=None).sync_config()
    assert cfg.inventory_sync_accounts is None
    assert cfg.live_push is False
    assert SyncConfig().allows_inventory_sync("anything")


def test_normalize_async_dsn():
    assert normalize_async_dsn("sqlite:///./x.db") == "sqlite+aiosqlite:///./x.db"
    assert normalize_async_dsn('"postgres://u:p@h/db"') == "postgresql+psycopg://u:p@h/db"
    assert normalize_async_dsn("postgresql://u@h/db") == "postgresql+psycopg://u@h/db"
    assert normalize_async_dsn("postgresql+asyncpg://u@h/db") == "postgresql+psycopg://u@h/db"
    assert normalize_async_dsn("sqlite+aiosqlite:///:memory:") == "sqlite+aiosqlite:///:memory:"
