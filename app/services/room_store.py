"""
app.services.room_store
~~~~~~~~~~~~~~~~~~~~~~~

房间仓库 —— 进程内唯一持有所有 ``Room`` 记录的对象。

其他组件只通过 ``get_room()`` 拿到记录并原地修改，不保存独立副本。
实例在 FastAPI lifespan 中创建并挂载到 ``app.state``，生命周期等同进程；
测试中可直接构造独立实例。进程重启后房间全部丢失（不做持久化）。
"""
from __future__ import annotations

import uuid

from app.core.errors import RoomNotFoundError, ValidationError
from app.core.logging import get_logger
from app.schemas.room import Room, SessionAnalytics

logger = get_logger(__name__)


class RoomStore:
    """房间 ID → ``Room`` 的内存映射。

    Attributes:
        id_length: 新房间 ID 的长度（取 uuid4 十六进制前缀）。
    """

    def __init__(self, id_length: int = 8) -> None:
        self.id_length = id_length
        self._rooms: dict[str, Room] = {}

    def create_room(self, name: str, creator_name: str) -> Room:
        """创建一个空房间并返回其记录。

        Raises:
            ValidationError: 房间名或创建者名去除空白后为空。
        """
        name = (name or "").strip()
        creator_name = (creator_name or "").strip()
        if not name or not creator_name:
            raise ValidationError("Room name and creator name are required")

        room_id = self._new_room_id()
        room = Room(id=room_id, name=name, creator=creator_name)
        self._rooms[room_id] = room
        logger.info("房间已创建 | room_id=%s | name=%s | creator=%s", room_id, name, creator_name)
        return room

    def get_room(self, room_id: str) -> Room:
        """按 ID 取房间记录。

        Raises:
            RoomNotFoundError: 房间不存在。
        """
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomNotFoundError(room_id)
        return room

    def get_analytics(self, room_id: str) -> SessionAnalytics:
        """返回房间统计的只读副本，供外部报表使用。"""
        return self.get_room(room_id).analytics.model_copy()

    def list_rooms(self) -> list[Room]:
        return list(self._rooms.values())

    def room_ids(self) -> list[str]:
        """当前所有房间 ID 的快照（遍历期间新增的房间不受影响）。"""
        return list(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def _new_room_id(self) -> str:
        while True:
            room_id = uuid.uuid4().hex[: self.id_length]
            if room_id not in self._rooms:
                return room_id
