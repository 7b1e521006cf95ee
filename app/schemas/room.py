"""
app.schemas.room
~~~~~~~~~~~~~~~~

房间状态模型 —— ``RoomStore`` 持有的唯一一份可变房间记录。

这些模型是服务端内部状态，而非直接下发的 DTO：
对外输出请使用 ``app.schemas.events`` 中的视图模型（例如不暴露 ``connection_id``）。
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AllowInfNan,
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    StrictStr,
    StringConstraints,
    computed_field,
)

Role = Literal["reviewer", "observer"]

# 票值：整数、有限浮点数，或非空字符串标记（例如 "?" 表示不确定）
VoteValue = Union[
    StrictInt,
    Annotated[StrictFloat, AllowInfNan(False)],
    Annotated[StrictStr, StringConstraints(strip_whitespace=True, min_length=1, max_length=16)],
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemberStatus(str, Enum):
    """成员展示状态，由 ``derive_status`` 统一推导。"""

    THINKING = "Thinking"
    WATCHING = "Watching"
    VOTED = "Voted"
    OFFLINE = "Offline"


class Member(BaseModel):
    """参与者在房间内的持久身份（与瞬时连接区分）。"""

    member_id: str = Field(..., description="客户端提供的稳定成员 ID，重连不变")
    display_name: str = Field(..., description="展示名称")
    connection_id: str | None = Field(default=None, description="当前有效的传输连接 ID")
    role: Role = Field(default="reviewer", description="角色：reviewer / observer")
    status: MemberStatus = Field(default=MemberStatus.THINKING, description="推导出的展示状态")
    online: bool = Field(default=True, description="连接是否在线")


class ChatMessage(BaseModel):
    """一条聊天消息，创建后不可变。"""

    model_config = ConfigDict(frozen=True)

    id: str
    member_id: str
    display_name: str
    text: str
    created_at: datetime = Field(default_factory=utcnow)


class SessionAnalytics(BaseModel):
    """房间级统计计数，仅在揭晓时累加，从不递减。"""

    total_rounds: int = 0
    consensus_rounds: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def consensus_rate(self) -> int:
        """共识率（百分比，四舍五入到整数）。"""
        if self.total_rounds == 0:
            return 0
        # .5 向上取整
        return math.floor(self.consensus_rounds / self.total_rounds * 100 + 0.5)

    def record_round(self, consensus: bool) -> None:
        self.total_rounds += 1
        if consensus:
            self.consensus_rounds += 1


class Room(BaseModel):
    """一个投票房间的完整状态。

    不变式：``votes`` 的键始终是 ``members`` 中成员 ID 的子集；
    ``revealed`` 只在显式揭晓之后、下一次重置之前为 True。
    """

    id: str
    name: str
    creator: str
    topic: str | None = None
    members: list[Member] = Field(default_factory=list)
    votes: dict[str, VoteValue] = Field(default_factory=dict)
    revealed: bool = False
    messages: list[ChatMessage] = Field(default_factory=list)
    analytics: SessionAnalytics = Field(default_factory=SessionAnalytics)
    created_at: datetime = Field(default_factory=utcnow)

    def find_member(self, member_id: str) -> Member | None:
        for member in self.members:
            if member.member_id == member_id:
                return member
        return None

    def find_member_by_connection(self, connection_id: str) -> Member | None:
        for member in self.members:
            if member.connection_id == connection_id:
                return member
        return None

    @property
    def online_count(self) -> int:
        return sum(1 for member in self.members if member.online)

    def snapshot(self) -> dict[str, Any]:
        """导出完整状态，用于变更失败时回滚。"""
        return self.model_dump()

    def restore(self, snapshot: dict[str, Any]) -> None:
        """用 ``snapshot()`` 的结果原地恢复本记录（保持对象身份不变）。"""
        restored = Room.model_validate(snapshot)
        for name in Room.model_fields:
            setattr(self, name, getattr(restored, name))
