"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 每个测试拿到独立的 ``RoomStore`` 与各 manager，
WebSocket 替身见 ``tests.fakes``。
"""
from __future__ import annotations

import os

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from app.services.chat_log import ChatLog  # noqa: E402
from app.services.gateway import BroadcastGateway  # noqa: E402
from app.services.membership import MembershipManager  # noqa: E402
from app.services.room_store import RoomStore  # noqa: E402
from app.services.voting import VotingEngine  # noqa: E402


@pytest.fixture()
def store() -> RoomStore:
    return RoomStore()


@pytest.fixture()
def room_id(store: RoomStore) -> str:
    return store.create_room("Sprint 1", "Alice").id


@pytest.fixture()
def membership(store: RoomStore) -> MembershipManager:
    return MembershipManager(store)


@pytest.fixture()
def chat(store: RoomStore) -> ChatLog:
    return ChatLog(store, max_messages=200, max_length=500)


@pytest.fixture()
def voting(store: RoomStore, chat: ChatLog) -> VotingEngine:
    return VotingEngine(store, chat)


@pytest.fixture()
def gateway(
    store: RoomStore,
    membership: MembershipManager,
    voting: VotingEngine,
    chat: ChatLog,
) -> BroadcastGateway:
    return BroadcastGateway(store=store, membership=membership, voting=voting, chat=chat)
