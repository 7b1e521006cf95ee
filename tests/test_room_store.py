"""
tests.test_room_store
~~~~~~~~~~~~~~~~~~~~~

RoomStore 单元测试。
"""
from __future__ import annotations

import pytest

from app.core.errors import RoomNotFoundError, ValidationError
from app.services.room_store import RoomStore


class TestRoomStore:
    """房间创建与查询。"""

    def test_create_room_initial_state(self, store: RoomStore) -> None:
        """新房间应为空房间、未揭晓、统计清零。"""
        room = store.create_room("  Sprint 1 ", " Alice ")

        assert room.name == "Sprint 1"
        assert room.creator == "Alice"
        assert room.members == []
        assert room.votes == {}
        assert room.messages == []
        assert room.revealed is False
        assert room.topic is None
        assert room.analytics.total_rounds == 0
        assert room.analytics.consensus_rate == 0
        assert len(room.id) == 8

    def test_get_room_returns_same_record(self, store: RoomStore) -> None:
        """get_room 返回的是仓库持有的同一份记录。"""
        room = store.create_room("Sprint 1", "Alice")

        assert store.get_room(room.id) is room
        assert room.id in store

    def test_ids_are_unique(self, store: RoomStore) -> None:
        ids = {store.create_room(f"Room {i}", "Alice").id for i in range(50)}

        assert len(ids) == 50
        assert len(store) == 50

    @pytest.mark.parametrize(
        ("name", "creator"),
        [("", "Alice"), ("Sprint", ""), ("   ", "Alice"), ("Sprint", "  \t")],
    )
    def test_create_room_rejects_blank_fields(self, store: RoomStore, name: str, creator: str) -> None:
        """房间名或创建者名为空白时应抛出 ValidationError，且不创建房间。"""
        with pytest.raises(ValidationError):
            store.create_room(name, creator)
        assert len(store) == 0

    def test_get_missing_room(self, store: RoomStore) -> None:
        with pytest.raises(RoomNotFoundError) as exc_info:
            store.get_room("nope")

        assert exc_info.value.room_id == "nope"
        assert exc_info.value.status_code == 404

    def test_stores_are_isolated(self) -> None:
        """不同仓库实例之间互不可见。"""
        store_a = RoomStore()
        store_b = RoomStore()
        room = store_a.create_room("Sprint 1", "Alice")

        assert room.id not in store_b

    def test_analytics_copy_is_read_only_view(self, store: RoomStore) -> None:
        """get_analytics 返回副本，修改副本不影响房间记录。"""
        room = store.create_room("Sprint 1", "Alice")
        copy = store.get_analytics(room.id)
        copy.record_round(True)

        assert room.analytics.total_rounds == 0
