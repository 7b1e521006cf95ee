"""
app.services.analytics
~~~~~~~~~~~~~~~~~~~~~~

房间会话统计 —— 只在揭晓时由 ``VotingEngine`` 累加，对外只读。
"""
from __future__ import annotations

from app.schemas.room import Room, SessionAnalytics
from app.services.room_store import RoomStore


def record_reveal(room: Room, consensus: bool) -> SessionAnalytics:
    """记录一次揭晓。重复揭晓同样计数，计数从不回退。"""
    room.analytics.record_round(consensus)
    return room.analytics


class AnalyticsReader:
    """供外部报表读取统计数据，不提供任何修改入口。"""

    def __init__(self, store: RoomStore) -> None:
        self.store = store

    def get(self, room_id: str) -> SessionAnalytics:
        return self.store.get_analytics(room_id)
