"""
app.schemas.rooms_api
~~~~~~~~~~~~~~~~~~~~~

房间 REST 接口的请求/响应模型。
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.events import MemberView
from app.schemas.room import ChatMessage, Room, VoteValue


class CreateRoomRequest(BaseModel):
    """创建房间请求体。字段首尾空白会被去除，去除后不得为空。"""

    room_name: str = Field(..., description="房间名称")
    creator_name: str = Field(..., description="创建者名称")


class RoomData(BaseModel):
    """房间详情。未揭晓时 ``votes`` 为空，仅给出 ``vote_count``。"""

    id: str
    name: str
    creator: str
    topic: str | None
    members: list[MemberView]
    votes: dict[str, VoteValue]
    vote_count: int
    revealed: bool
    messages: list[ChatMessage]
    created_at: datetime

    @classmethod
    def from_room(cls, room: Room) -> RoomData:
        return cls(
            id=room.id,
            name=room.name,
            creator=room.creator,
            topic=room.topic,
            members=[MemberView.model_validate(m.model_dump()) for m in room.members],
            votes=dict(room.votes) if room.revealed else {},
            vote_count=len(room.votes),
            revealed=room.revealed,
            messages=list(room.messages),
            created_at=room.created_at,
        )


class CreateRoomData(BaseModel):
    room_id: str = Field(..., description="新房间 ID")
    room: RoomData


class RoomSummaryData(BaseModel):
    """房间摘要信息。"""

    room_id: str = Field(..., description="房间唯一标识")
    name: str = Field(..., description="房间名称")
    member_count: int = Field(..., description="成员总数（含离线）")
    online_count: int = Field(..., description="在线成员数")
    revealed: bool = Field(..., description="当前轮是否已揭晓")


class AnalyticsData(BaseModel):
    room_id: str
    total_rounds: int
    consensus_rounds: int
    consensus_rate: int
