"""
app.services.membership
~~~~~~~~~~~~~~~~~~~~~~~

成员管理 —— 加入 / 重连 / 断线，以及成员展示状态的统一推导规则。

成员只会被标记为离线，永不从房间移除；同一 ``member_id`` 重新加入时
原地更新连接信息，因此成员顺序与本轮投票在重连后保持不变。
"""
from __future__ import annotations

from app.core.logging import get_logger
from app.schemas.events import MembershipSnapshot, MemberView
from app.schemas.room import Member, MemberStatus, Role, Room
from app.services.room_store import RoomStore

logger = get_logger(__name__)


def derive_status(member: Member, *, has_voted: bool) -> MemberStatus:
    """成员展示状态的唯一推导规则。

    离线优先；其次观察者为 Watching；再次已投票为 Voted；否则 Thinking。
    """
    if not member.online:
        return MemberStatus.OFFLINE
    if member.role == "observer":
        return MemberStatus.WATCHING
    if has_voted:
        return MemberStatus.VOTED
    return MemberStatus.THINKING


def member_views(room: Room) -> list[MemberView]:
    return [MemberView.model_validate(member.model_dump()) for member in room.members]


def membership_snapshot(room: Room) -> MembershipSnapshot:
    """新加入者依赖的对账内容：成员列表、已揭晓时的全部票值、当前议题。"""
    return MembershipSnapshot(
        members=member_views(room),
        votes=dict(room.votes) if room.revealed else {},
        topic=room.topic,
    )


class MembershipManager:
    """维护每个房间的成员、连接标识与在线状态。"""

    def __init__(self, store: RoomStore) -> None:
        self.store = store

    def join(
        self,
        room_id: str,
        member_id: str,
        display_name: str,
        role: Role = "reviewer",
        connection_id: str | None = None,
    ) -> MembershipSnapshot:
        """加入房间；``member_id`` 已存在时视为重连。

        重连只更新连接与在线状态，角色和名称沿用首次加入时的值。
        重连后展示状态按"未投票"重新推导（即使票值仍保留在 ``votes`` 中）。

        Raises:
            RoomNotFoundError: 房间不存在。
        """
        room = self.store.get_room(room_id)
        member = room.find_member(member_id)
        if member is None:
            member = Member(
                member_id=member_id,
                display_name=display_name,
                connection_id=connection_id,
                role=role,
            )
            room.members.append(member)
            logger.info("成员加入 | room=%s | member=%s | role=%s", room_id, member_id, role)
        else:
            member.connection_id = connection_id
            member.online = True
            logger.info("成员重连 | room=%s | member=%s", room_id, member_id)
        member.status = derive_status(member, has_voted=False)
        return membership_snapshot(room)

    def mark_offline(self, room_id: str, connection_id: str) -> MembershipSnapshot | None:
        """把单个房间中持有该连接的成员标记为离线。

        Returns:
            有成员受影响时返回更新后的快照，否则返回 ``None``。
        """
        room = self.store.get_room(room_id)
        member = room.find_member_by_connection(connection_id)
        if member is None:
            return None
        member.online = False
        member.status = derive_status(member, has_voted=member.member_id in room.votes)
        logger.info("成员离线 | room=%s | member=%s", room_id, member.member_id)
        return membership_snapshot(room)

    def disconnect(self, connection_id: str) -> list[str]:
        """在所有房间中查找该连接对应的成员并标记离线。

        没有匹配时什么也不做（幂等）。

        Returns:
            受影响的房间 ID 列表。
        """
        affected: list[str] = []
        for room_id in self.store.room_ids():
            if self.mark_offline(room_id, connection_id) is not None:
                affected.append(room_id)
        return affected
