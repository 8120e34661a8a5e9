# tests/conftest.py
from __future__ import annotations

import os
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# ============================================================
# ★ 在 import stockline.main 之前固定测试配置 ★
# ============================================================
os.environ.setdefault("STOCKLINE_DATABASE_URL", "sqlite+aiosqlite:///./.stockline-test.db")
os.environ["STOCKLINE_ENABLE_SYNC_SCHEDULER"] = "false"
os.environ.setdefault("STOCKLINE_LOG_LEVEL", "INFO")

from stockline.api.deps import get_channel_client_factory, get_credential_provider  # noqa: E402
from stockline.db.base import Base, init_models  # noqa: E402
from stockline.db.session import get_session  # noqa: E402
from stockline.main import app  # noqa: E402
from tests.helpers.channel import FakeChannel, FakeCredentials  # noqa: E402


# =========================================
# 每用例独立 Engine（临时 sqlite 文件 + NullPool，避免跨 loop）
# =========================================
@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    init_models()
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'stockline.db'}",
        poolclass=NullPool,
        future=True,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def async_session_maker(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(async_session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as sess:
        try:
            yield sess
        finally:
            if sess.in_transaction():
                await sess.rollback()


# =========================================
# 渠道侧替身：token + 平台客户端
# =========================================
@pytest.fixture
def fake_channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def fake_credentials() -> FakeCredentials:
    return FakeCredentials()


# =========================================
# FastAPI / httpx AsyncClient
# =========================================
@pytest_asyncio.fixture(scope="function")
async def client(
    async_session_maker, fake_channel: FakeChannel, fake_credentials: FakeCredentials
) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def _session_override() -> AsyncGenerator[AsyncSession, None]:
        async with async_session_maker() as sess:
            yield sess

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_credential_provider] = lambda: fake_credentials
    app.dependency_overrides[get_channel_client_factory] = lambda: fake_channel.factory

    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(
            transport=transport,
            base_url="http://testserver",
            timeout=httpx.Timeout(10.0, connect=5.0, read=10.0, write=5.0, pool=5.0),
        ) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
