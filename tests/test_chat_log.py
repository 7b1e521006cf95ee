"""
tests.test_chat_log
~~~~~~~~~~~~~~~~~~~

ChatLog 单元测试。
"""
from __future__ import annotations

import pytest

from app.core.errors import RoomNotFoundError
from app.services.chat_log import ChatLog
from app.services.room_store import RoomStore


class TestChatLog:
    """追加、截断、上限与历史回放。"""

    def test_append_trims_text(self, chat: ChatLog, room_id: str) -> None:
        message = chat.append(room_id, "a", "Alice", "  hello  ")

        assert message is not None
        assert message.text == "hello"
        assert message.member_id == "a"
        assert message.display_name == "Alice"

    def test_blank_text_is_ignored(self, store: RoomStore, chat: ChatLog, room_id: str) -> None:
        assert chat.append(room_id, "a", "Alice", "   ") is None
        assert chat.append(room_id, "a", "Alice", "") is None
        assert store.get_room(room_id).messages == []

    def test_long_text_is_truncated(self, chat: ChatLog, room_id: str) -> None:
        message = chat.append(room_id, "a", "Alice", "x" * 800)

        assert message is not None
        assert len(message.text) == 500

    def test_history_is_capped_at_200(self, store: RoomStore, chat: ChatLog, room_id: str) -> None:
        """超过 200 条时丢弃最旧的消息。"""
        for i in range(250):
            chat.append(room_id, "a", "Alice", f"msg {i}")

        messages = store.get_room(room_id).messages
        assert len(messages) == 200
        assert messages[0].text == "msg 50"
        assert messages[-1].text == "msg 249"

    def test_history_returns_most_recent_in_order(self, chat: ChatLog, room_id: str) -> None:
        for i in range(150):
            chat.append(room_id, "a", "Alice", f"msg {i}")

        history = chat.history(room_id)

        assert len(history) == 100
        assert [m.text for m in history] == [f"msg {i}" for i in range(50, 150)]

    def test_history_shorter_than_limit(self, chat: ChatLog, room_id: str) -> None:
        chat.append(room_id, "a", "Alice", "one")
        chat.append(room_id, "b", "Bob", "two")

        assert [m.text for m in chat.history(room_id, limit=100)] == ["one", "two"]
        assert [m.text for m in chat.history(room_id, limit=1)] == ["two"]

    def test_unknown_room(self, chat: ChatLog) -> None:
        with pytest.raises(RoomNotFoundError):
            chat.append("missing", "a", "Alice", "hi")
        with pytest.raises(RoomNotFoundError):
            chat.history("missing")

    def test_message_ids_are_unique(self, chat: ChatLog, room_id: str) -> None:
        ids = {chat.append(room_id, "a", "Alice", f"m{i}").id for i in range(20)}  # type: ignore[union-attr]
        assert len(ids) == 20
