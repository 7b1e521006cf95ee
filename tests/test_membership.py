"""
tests.test_membership
~~~~~~~~~~~~~~~~~~~~~

MembershipManager 与状态推导规则单元测试。
"""
from __future__ import annotations

import pytest

from app.core.errors import RoomNotFoundError
from app.schemas.room import Member, MemberStatus
from app.services.membership import MembershipManager, derive_status
from app.services.room_store import RoomStore
from app.services.voting import VotingEngine


class TestDeriveStatus:
    """状态推导：离线 > 观察者 > 已投票 > 思考中。"""

    def test_offline_overrides_everything(self) -> None:
        member = Member(member_id="a", display_name="A", role="observer", online=False)
        assert derive_status(member, has_voted=True) is MemberStatus.OFFLINE

    def test_observer_is_watching(self) -> None:
        member = Member(member_id="a", display_name="A", role="observer")
        assert derive_status(member, has_voted=True) is MemberStatus.WATCHING

    def test_reviewer_voted_or_thinking(self) -> None:
        member = Member(member_id="a", display_name="A")
        assert derive_status(member, has_voted=True) is MemberStatus.VOTED
        assert derive_status(member, has_voted=False) is MemberStatus.THINKING


class TestJoin:
    """加入与重连。"""

    def test_first_join_seeds_status_from_role(
        self, store: RoomStore, membership: MembershipManager, room_id: str,
    ) -> None:
        membership.join(room_id, "a", "Alice", "reviewer", connection_id="c1")
        snapshot = membership.join(room_id, "b", "Bob", "observer", connection_id="c2")

        statuses = {m.member_id: m.status for m in snapshot.members}
        assert statuses == {"a": MemberStatus.THINKING, "b": MemberStatus.WATCHING}
        assert all(m.online for m in snapshot.members)
        assert store.get_room(room_id).members[0].connection_id == "c1"

    def test_join_unknown_room(self, membership: MembershipManager) -> None:
        with pytest.raises(RoomNotFoundError):
            membership.join("missing", "a", "Alice")

    def test_snapshot_hides_votes_until_revealed(
        self, membership: MembershipManager, voting: VotingEngine, room_id: str,
    ) -> None:
        """未揭晓时快照不含票值，揭晓后包含全部票值与议题。"""
        membership.join(room_id, "a", "Alice", connection_id="c1")
        voting.set_topic(room_id, "Login page")
        voting.submit_estimate(room_id, "a", 3)

        hidden = membership.join(room_id, "b", "Bob", connection_id="c2")
        assert hidden.votes == {}
        assert hidden.topic == "Login page"

        voting.reveal(room_id)
        shown = membership.join(room_id, "c", "Carol", connection_id="c3")
        assert shown.votes == {"a": 3}

    def test_rejoin_keeps_position_and_vote(
        self, store: RoomStore, membership: MembershipManager, voting: VotingEngine, room_id: str,
    ) -> None:
        """断线重连后成员位置不变、本轮票值保留，但展示状态回到 Thinking。"""
        membership.join(room_id, "a", "Alice", connection_id="c1")
        membership.join(room_id, "b", "Bob", connection_id="c2")
        voting.submit_estimate(room_id, "a", 5)

        membership.disconnect("c1")
        snapshot = membership.join(room_id, "a", "Alice", connection_id="c9")

        room = store.get_room(room_id)
        assert [m.member_id for m in snapshot.members] == ["a", "b"]
        assert room.votes == {"a": 5}
        assert room.members[0].connection_id == "c9"
        assert room.members[0].online is True
        assert room.members[0].status is MemberStatus.THINKING

    def test_rejoin_keeps_original_role(
        self, store: RoomStore, membership: MembershipManager, room_id: str,
    ) -> None:
        membership.join(room_id, "b", "Bob", "observer", connection_id="c1")
        membership.join(room_id, "b", "Bob", "reviewer", connection_id="c2")

        member = store.get_room(room_id).members[0]
        assert member.role == "observer"
        assert member.status is MemberStatus.WATCHING


class TestDisconnect:
    """断线只标记离线，从不移除成员。"""

    def test_disconnect_marks_offline(
        self, store: RoomStore, membership: MembershipManager, room_id: str,
    ) -> None:
        membership.join(room_id, "a", "Alice", connection_id="c1")

        affected = membership.disconnect("c1")

        member = store.get_room(room_id).members[0]
        assert affected == [room_id]
        assert member.online is False
        assert member.status is MemberStatus.OFFLINE
        assert len(store.get_room(room_id).members) == 1

    def test_disconnect_unknown_connection_is_noop(
        self, store: RoomStore, membership: MembershipManager, room_id: str,
    ) -> None:
        membership.join(room_id, "a", "Alice", connection_id="c1")

        assert membership.disconnect("zzz") == []
        assert membership.disconnect("zzz") == []
        assert store.get_room(room_id).members[0].online is True

    def test_disconnect_scans_all_rooms(
        self, store: RoomStore, membership: MembershipManager,
    ) -> None:
        """同一连接出现在多个房间时，每个房间都应被更新。"""
        first = store.create_room("One", "Alice").id
        second = store.create_room("Two", "Alice").id
        store.create_room("Three", "Alice")
        membership.join(first, "a", "Alice", connection_id="c1")
        membership.join(second, "a", "Alice", connection_id="c1")

        assert sorted(membership.disconnect("c1")) == sorted([first, second])

    def test_superseded_connection_does_not_mark_offline(
        self, store: RoomStore, membership: MembershipManager, room_id: str,
    ) -> None:
        """重连后旧连接的断开不应影响成员。"""
        membership.join(room_id, "a", "Alice", connection_id="old")
        membership.join(room_id, "a", "Alice", connection_id="new")

        assert membership.disconnect("old") == []
        assert store.get_room(room_id).members[0].online is True
