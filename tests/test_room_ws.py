"""
tests.test_room_ws
~~~~~~~~~~~~~~~~~~

``/ws`` 端点连接生命周期测试：直接调用端点函数，WebSocket 用 ``AsyncMock`` 模拟。
"""
from __future__ import annotations

import asyncio
import json

import anyio
import pytest

from app.api.room_ws import room_websocket_endpoint
from app.services.gateway import BroadcastGateway
from app.services.room_store import RoomStore
from tests.fakes import make_fake_websocket, sent_events, sent_frames


@pytest.mark.asyncio
async def test_cancelled_connection_still_marks_member_offline(
    gateway: BroadcastGateway, store: RoomStore, room_id: str,
) -> None:
    """连接任务被取消时，断线处理仍然完整执行并通知房间其他人。"""
    alice = make_fake_websocket()
    alice_conn = await gateway.connect(alice)
    await gateway.dispatch(
        alice_conn, "join",
        {"room_id": room_id, "member_id": "a", "display_name": "Alice", "role": "reviewer"},
    )

    bob = make_fake_websocket()
    inbound = [json.dumps({
        "event": "join",
        "data": {"room_id": room_id, "member_id": "b", "display_name": "Bob", "role": "reviewer"},
    })]

    async def receive_text() -> str:
        if inbound:
            return inbound.pop(0)
        await asyncio.Event().wait()  # 模拟一直没有新消息
        return ""

    bob.receive_text.side_effect = receive_text
    room = store.get_room(room_id)

    async with anyio.create_task_group() as tg:
        tg.start_soon(room_websocket_endpoint, bob, gateway)
        for _ in range(100):
            if room.find_member("b") is not None:
                break
            await asyncio.sleep(0)
        assert room.find_member("b") is not None
        tg.cancel_scope.cancel()

    assert room.find_member("b").online is False
    assert sent_events(alice)[-1] == "room-updated"
    assert sent_frames(alice)[-1]["data"]["members"][1]["status"] == "Offline"
    assert gateway.subscribers(room_id) == 1
    assert gateway.connection_count == 1
