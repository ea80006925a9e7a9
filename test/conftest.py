# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: 测试环境：临时 SQLite 库 + 固定 JWT 密钥（须在导入应用模块前设置）

from __future__ import annotations

import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="storefront_chat_test_")

os.environ["DB_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/chat.db"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["APP_ENV"] = "dev"
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_REQUESTS", "false")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402

from infrastructures.db.orm.orm_base import build_session_factory, create_schema  # noqa: E402
from services.chat.chat_hub import ChatHub  # noqa: E402
from services.chat.room_store import RoomStore  # noqa: E402


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/hub.db")
    await create_schema(engine)
    try:
        yield build_session_factory(engine)
    finally:
        await engine.dispose()


@pytest.fixture
def store(session_factory) -> RoomStore:
    return RoomStore(session_factory)


@pytest.fixture
def hub(store) -> ChatHub:
    return ChatHub(store, preview_max_length=10)
