"""
app.services.room_broadcaster
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

WebSocket 连接广播器 —— 维护某个房间订阅的连接集合与广播能力。

广播器只持有连接的引用，连接本身归传输层所有；
房间成员与连接之间的关联由 ``Member.connection_id`` 反向记录。
"""
from __future__ import annotations

import asyncio
from typing import Any

from fastapi import WebSocket

from app.core.logging import get_logger

logger = get_logger(__name__)


class RoomBroadcaster:
    """单个房间的连接广播器。

    Attributes:
        room_id: 所属房间 ID。
        connections: 连接 ID → WebSocket。
    """

    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        self.connections: dict[str, WebSocket] = {}

    def subscribe(self, connection_id: str, websocket: WebSocket) -> None:
        self.connections[connection_id] = websocket

    def unsubscribe(self, connection_id: str) -> None:
        self.connections.pop(connection_id, None)

    async def broadcast(self, message: dict[str, Any]) -> None:
        """向本房间所有订阅连接发送同一帧，发送失败的连接会被移除。"""
        targets = list(self.connections.items())
        results = await asyncio.gather(
            *(ws.send_json(message) for _, ws in targets),
            return_exceptions=True,
        )
        for (connection_id, _), result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning("广播失败，移除断开的连接 | room=%s | conn=%s", self.room_id, connection_id)
                self.connections.pop(connection_id, None)

    @property
    def online_count(self) -> int:
        """当前订阅的连接数。"""
        return len(self.connections)
