"""
app.schemas.events
~~~~~~~~~~~~~~~~~~

WebSocket 实时动作的收发模型。

帧格式统一为 JSON：``{"event": <事件名>, "data": {...}}``。
入站 payload 由 pydantic 校验，出站 payload 由各 manager 返回后直接序列化。
"""
from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from app.schemas.room import ChatMessage, MemberStatus, Role, VoteValue


class ClientEvent(str, Enum):
    """客户端可发送的动作。"""

    JOIN = "join"
    SET_TOPIC = "set-topic"
    SUBMIT_ESTIMATE = "submit-estimate"
    CHAT_MESSAGE = "chat-message"
    CHAT_HISTORY_REQUEST = "chat-history-request"
    REVEAL = "reveal"
    RESET = "reset"


class ServerEvent(str, Enum):
    """服务端下发的通知。"""

    ROOM_UPDATED = "room-updated"
    TOPIC_UPDATED = "topic-updated"
    ESTIMATE_SUBMITTED = "estimate-submitted"
    CHAT_MESSAGE = "chat-message"
    CHAT_HISTORY = "chat-history"
    ESTIMATES_REVEALED = "estimates-revealed"
    ESTIMATES_RESET = "estimates-reset"
    ERROR = "error"


class InboundFrame(BaseModel):
    event: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


# ── 入站 payload ──────────────────────────────────────────────────────

class RoomAction(BaseModel):
    """所有房间动作共有的字段。"""

    room_id: str = Field(..., min_length=1)
    member_id: str | None = Field(default=None, min_length=1)


class JoinPayload(RoomAction):
    member_id: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1, max_length=100)
    role: Role = "reviewer"


class TopicPayload(RoomAction):
    text: str = ""


class EstimatePayload(RoomAction):
    member_id: str = Field(..., min_length=1)
    value: VoteValue


class ChatPayload(RoomAction):
    member_id: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1, max_length=100)
    text: str = ""


class HistoryRequestPayload(RoomAction):
    limit: int = Field(default=100, ge=1, le=200)


# ── 出站 payload ──────────────────────────────────────────────────────

class MemberView(BaseModel):
    """对外展示的成员信息（不含连接 ID）。"""

    member_id: str
    display_name: str
    role: Role
    status: MemberStatus
    online: bool


class MembershipSnapshot(BaseModel):
    """加入/断线后的房间对账快照。未揭晓时 ``votes`` 为空。"""

    members: list[MemberView]
    votes: dict[str, VoteValue]
    topic: str | None


class TopicUpdate(BaseModel):
    topic: str


class EstimateSubmitted(BaseModel):
    """投票后的广播内容：只有成员状态和票数，不含票值。"""

    member_id: str
    members: list[MemberView]
    vote_count: int


class RevealResult(BaseModel):
    votes: dict[str, VoteValue]
    members: list[MemberView]
    average: float
    consensus: bool
    total_votes: int


class ResetResult(BaseModel):
    members: list[MemberView]


class ChatHistory(BaseModel):
    messages: list[ChatMessage]


class ErrorNotice(BaseModel):
    message: str
