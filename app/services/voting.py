"""
app.services.voting
~~~~~~~~~~~~~~~~~~~

投票引擎 —— 每个房间一台状态机：

    Collecting ──reveal──▶ Revealed ──reset──▶ Collecting

揭晓前票值绝不对外广播，只广播成员状态与票数。
揭晓之后引擎仍接受迟到的投票（直接覆盖），是否禁止由前端负责。
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from app.core.errors import ValidationError
from app.core.logging import get_logger
from app.schemas.events import EstimateSubmitted, ResetResult, RevealResult, TopicUpdate
from app.schemas.room import ChatMessage, Room
from app.services.analytics import record_reveal
from app.services.chat_log import ChatLog
from app.services.membership import derive_status, member_views
from app.services.room_store import RoomStore

logger = get_logger(__name__)


def numeric_value(value: Any) -> float | None:
    """把票值解析为有限数字；无法解析（例如 "?"）时返回 ``None``。"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        text = value.strip()
        # float() 接受 "1_000" 这类数字分隔写法，票值里不算数字
        if not text or "_" in text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def round_one_decimal(value: float) -> float:
    """保留一位小数，.x5 一律向上进位。"""
    # 2**52 以上的 float 必为整数；Decimal 默认 28 位精度也容不下更大的量级
    if abs(value) >= 2**52:
        return value
    return float(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def summarize_votes(votes: dict[str, Any]) -> tuple[float, bool, int]:
    """计算本轮统计。

    Returns:
        ``(average, consensus, total_votes)``。非数字票不参与平均数，但计入总票数；
        全部为非数字票时平均数为 0 且不算共识。
    """
    numbers = [n for n in (numeric_value(v) for v in votes.values()) if n is not None]
    average = 0.0
    if numbers:
        mean = sum(numbers) / len(numbers)
        if not math.isfinite(mean):
            # 接近 float 上限的票值相加会溢出为 inf，改为先除后加
            mean = sum(n / len(numbers) for n in numbers)
        average = round_one_decimal(mean)
    consensus = len(numbers) > 0 and len(set(numbers)) == 1
    return average, consensus, len(votes)


@dataclass
class RevealOutcome:
    """揭晓结果：广播给全员的统计，以及可选的系统聊天公告。"""

    result: RevealResult
    announcement: ChatMessage | None = None


class VotingEngine:
    """投票、揭晓、重置与议题设置。"""

    def __init__(self, store: RoomStore, chat: ChatLog) -> None:
        self.store = store
        self.chat = chat

    def submit_estimate(self, room_id: str, member_id: str, value: Any) -> EstimateSubmitted:
        """记录（或覆盖）成员的票值。

        Raises:
            RoomNotFoundError: 房间不存在。
            ValidationError: 成员未加入房间，或成员是观察者。
        """
        room = self.store.get_room(room_id)
        member = room.find_member(member_id)
        if member is None:
            raise ValidationError("Join the room before voting")
        if member.role == "observer":
            raise ValidationError("Observers cannot vote")

        room.votes[member_id] = value
        member.status = derive_status(member, has_voted=True)
        logger.info("收到投票 | room=%s | member=%s | 已投 %d 票", room_id, member_id, len(room.votes))
        return EstimateSubmitted(
            member_id=member_id,
            members=member_views(room),
            vote_count=len(room.votes),
        )

    def reveal(self, room_id: str, revealer_member_id: str | None = None) -> RevealOutcome:
        """揭晓本轮全部票值并更新统计。

        重复揭晓会重新下发相同结果，但统计计数每次都会累加。
        """
        room = self.store.get_room(room_id)
        room.revealed = True

        average, consensus, total_votes = summarize_votes(room.votes)
        result = RevealResult(
            votes=dict(room.votes),
            members=member_views(room),
            average=average,
            consensus=consensus,
            total_votes=total_votes,
        )

        announcement = None
        revealer = room.find_member(revealer_member_id) if revealer_member_id else None
        if revealer is not None:
            announcement = self.chat.append(
                room_id,
                revealer.member_id,
                revealer.display_name,
                f"{revealer.display_name} revealed the estimates",
            )

        analytics = record_reveal(room, consensus)
        logger.info(
            "本轮揭晓 | room=%s | average=%s | consensus=%s | total=%d | consensus_rate=%d%%",
            room_id, average, consensus, total_votes, analytics.consensus_rate,
        )
        return RevealOutcome(result=result, announcement=announcement)

    def reset(self, room_id: str) -> ResetResult:
        """开始新一轮：清空票值与议题，重新推导在线成员的状态。"""
        room = self.store.get_room(room_id)
        room.votes = {}
        room.revealed = False
        room.topic = None
        _refresh_statuses(room)
        logger.info("本轮重置 | room=%s", room_id)
        return ResetResult(members=member_views(room))

    def set_topic(self, room_id: str, text: str) -> TopicUpdate:
        """设置当前议题，任何状态下任何成员都可调用。

        Raises:
            ValidationError: 去除空白后为空。
        """
        room = self.store.get_room(room_id)
        topic = (text or "").strip()
        if not topic:
            raise ValidationError("Topic cannot be empty")
        room.topic = topic
        logger.info("议题更新 | room=%s", room_id)
        return TopicUpdate(topic=topic)


def _refresh_statuses(room: Room) -> None:
    # 离线成员保持 Offline
    for member in room.members:
        if member.online:
            member.status = derive_status(member, has_voted=member.member_id in room.votes)
