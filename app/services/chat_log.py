"""
app.services.chat_log
~~~~~~~~~~~~~~~~~~~~~

房间聊天记录 —— 只追加、有上限的消息队列。
"""
from __future__ import annotations

import uuid

from app.core.logging import get_logger
from app.schemas.room import ChatMessage
from app.services.room_store import RoomStore

logger = get_logger(__name__)


class ChatLog:
    """每个房间的聊天历史。

    Attributes:
        max_messages: 每个房间最多保留的消息数，超出时丢弃最旧的。
        max_length: 单条消息的最大字符数，超出部分截断。
    """

    def __init__(self, store: RoomStore, max_messages: int = 200, max_length: int = 500) -> None:
        self.store = store
        self.max_messages = max_messages
        self.max_length = max_length

    def append(self, room_id: str, member_id: str, display_name: str, text: str) -> ChatMessage | None:
        """追加一条消息并返回存储后的记录；文本去除空白后为空时不做任何事。

        Raises:
            RoomNotFoundError: 房间不存在。
        """
        room = self.store.get_room(room_id)
        trimmed = (text or "").strip()
        if not trimmed:
            return None

        message = ChatMessage(
            id=str(uuid.uuid4()),
            member_id=member_id,
            display_name=display_name,
            text=trimmed[: self.max_length],
        )
        room.messages.append(message)
        overflow = len(room.messages) - self.max_messages
        if overflow > 0:
            del room.messages[:overflow]
        logger.debug("聊天消息 | room=%s | member=%s | 保留 %d 条", room_id, member_id, len(room.messages))
        return message

    def history(self, room_id: str, limit: int = 100) -> list[ChatMessage]:
        """按时间正序返回最近 ``limit`` 条消息（最新的在最后）。"""
        room = self.store.get_room(room_id)
        if limit <= 0:
            return []
        return room.messages[-limit:]
