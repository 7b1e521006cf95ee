"""
app.services.gateway
~~~~~~~~~~~~~~~~~~~~

广播网关 —— 实时动作的唯一出入口。

入站动作（带房间 ID）被路由到对应 manager，manager 原地修改房间记录并返回
通知内容，网关再把通知扇出给该房间的全部连接。

每个房间一把 ``asyncio.Lock``，覆盖"路由 → 修改 → 广播"整个单元，
保证同一房间的通知按动作生效的顺序送达所有连接。manager 方法都是同步的，
修改过程中不会让出事件循环。
"""
from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import WebSocket
from pydantic import BaseModel
from pydantic import ValidationError as PayloadValidationError

from app.core.errors import InternalError, RoomError, RoomNotFoundError
from app.core.logging import get_logger
from app.schemas.events import (
    ChatHistory,
    ChatPayload,
    ClientEvent,
    ErrorNotice,
    EstimatePayload,
    HistoryRequestPayload,
    JoinPayload,
    RoomAction,
    ServerEvent,
    TopicPayload,
)
from app.services.chat_log import ChatLog
from app.services.membership import MembershipManager
from app.services.room_broadcaster import RoomBroadcaster
from app.services.room_store import RoomStore
from app.services.voting import VotingEngine

logger = get_logger(__name__)

Handler = Callable[[str, Any], Awaitable[None]]


class BroadcastGateway:
    """把连接上的动作路由到各 manager，并把结果广播给房间内所有连接。

    Attributes:
        store: 房间仓库。
        membership: 成员管理。
        voting: 投票引擎。
        chat: 聊天记录。
        replay_limit: 加入房间时回放给新成员的聊天条数。
    """

    def __init__(
        self,
        store: RoomStore,
        membership: MembershipManager,
        voting: VotingEngine,
        chat: ChatLog,
        replay_limit: int = 100,
    ) -> None:
        self.store = store
        self.membership = membership
        self.voting = voting
        self.chat = chat
        self.replay_limit = replay_limit
        self._sockets: dict[str, WebSocket] = {}
        self._broadcasters: dict[str, RoomBroadcaster] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._routes: dict[ClientEvent, tuple[type[RoomAction], Handler]] = {
            ClientEvent.JOIN: (JoinPayload, self._on_join),
            ClientEvent.SET_TOPIC: (TopicPayload, self._on_set_topic),
            ClientEvent.SUBMIT_ESTIMATE: (EstimatePayload, self._on_submit_estimate),
            ClientEvent.CHAT_MESSAGE: (ChatPayload, self._on_chat_message),
            ClientEvent.CHAT_HISTORY_REQUEST: (HistoryRequestPayload, self._on_chat_history),
            ClientEvent.REVEAL: (RoomAction, self._on_reveal),
            ClientEvent.RESET: (RoomAction, self._on_reset),
        }

    # ── 连接生命周期 ──────────────────────────────────────────────────

    async def connect(self, websocket: WebSocket) -> str:
        """接受新连接并分配连接 ID。"""
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self._sockets[connection_id] = websocket
        return connection_id

    async def disconnect(self, connection_id: str) -> None:
        """连接断开：逐个房间把对应成员标记为离线并广播成员列表。

        一次只持有一个房间的锁。没有匹配的成员时什么也不做。
        """
        self._sockets.pop(connection_id, None)
        for room_id in self.store.room_ids():
            broadcaster = self._broadcasters.get(room_id)
            if broadcaster is not None:
                broadcaster.unsubscribe(connection_id)
            if self.store.get_room(room_id).find_member_by_connection(connection_id) is None:
                continue
            async with self._lock_for(room_id):
                try:
                    snapshot = self.membership.mark_offline(room_id, connection_id)
                    if snapshot is not None:
                        await self._broadcast(room_id, ServerEvent.ROOM_UPDATED, snapshot)
                except Exception:
                    logger.error("断线处理失败 | room=%s | conn=%s", room_id, connection_id, exc_info=True)

    @property
    def connection_count(self) -> int:
        return len(self._sockets)

    def subscribers(self, room_id: str) -> int:
        """房间当前订阅的连接数。"""
        broadcaster = self._broadcasters.get(room_id)
        return broadcaster.online_count if broadcaster is not None else 0

    # ── 动作分发 ──────────────────────────────────────────────────────

    async def dispatch(self, connection_id: str, event: str, data: dict[str, Any]) -> None:
        """处理一条入站动作。任何失败只通知发起方，不会向外抛出。"""
        try:
            client_event = ClientEvent(event)
        except ValueError:
            await self.notify_error(connection_id, f"Unknown event: {event}")
            return

        payload_model, handler = self._routes[client_event]
        try:
            payload = payload_model.model_validate(data)
        except PayloadValidationError as exc:
            logger.info("动作参数不合法 | event=%s | errors=%d", event, exc.error_count())
            await self.notify_error(connection_id, f"Invalid payload for {event}")
            return

        room_id = payload.room_id
        if room_id not in self.store:
            await self.notify_error(connection_id, RoomNotFoundError(room_id).message)
            return

        async with self._lock_for(room_id):
            room = self.store.get_room(room_id)
            snapshot = room.snapshot()
            try:
                await handler(connection_id, payload)
            except RoomError as exc:
                room.restore(snapshot)
                logger.info("动作被拒绝 | event=%s | room=%s | %s", event, room_id, exc.message)
                await self.notify_error(connection_id, exc.message)
            except Exception:
                # 修改与广播作为一个整体，失败时回滚房间记录
                room.restore(snapshot)
                logger.error("动作处理异常 | event=%s | room=%s", event, room_id, exc_info=True)
                await self.notify_error(connection_id, InternalError().message)

    async def notify_error(self, connection_id: str, message: str) -> None:
        """只向发起方发送错误通知。"""
        await self._send(connection_id, ServerEvent.ERROR, ErrorNotice(message=message))

    # ── 各动作处理 ────────────────────────────────────────────────────

    async def _on_join(self, connection_id: str, payload: JoinPayload) -> None:
        snapshot = self.membership.join(
            payload.room_id,
            payload.member_id,
            payload.display_name.strip() or payload.member_id,
            payload.role,
            connection_id=connection_id,
        )
        websocket = self._sockets.get(connection_id)
        if websocket is not None:
            self._broadcaster_for(payload.room_id).subscribe(connection_id, websocket)
        await self._broadcast(payload.room_id, ServerEvent.ROOM_UPDATED, snapshot)

        history = self.chat.history(payload.room_id, self.replay_limit)
        if history:
            await self._send(connection_id, ServerEvent.CHAT_HISTORY, ChatHistory(messages=history))

    async def _on_set_topic(self, connection_id: str, payload: TopicPayload) -> None:
        update = self.voting.set_topic(payload.room_id, payload.text)
        await self._broadcast(payload.room_id, ServerEvent.TOPIC_UPDATED, update)

    async def _on_submit_estimate(self, connection_id: str, payload: EstimatePayload) -> None:
        submitted = self.voting.submit_estimate(payload.room_id, payload.member_id, payload.value)
        await self._broadcast(payload.room_id, ServerEvent.ESTIMATE_SUBMITTED, submitted)

    async def _on_chat_message(self, connection_id: str, payload: ChatPayload) -> None:
        message = self.chat.append(payload.room_id, payload.member_id, payload.display_name, payload.text)
        if message is not None:
            await self._broadcast(payload.room_id, ServerEvent.CHAT_MESSAGE, message)

    async def _on_chat_history(self, connection_id: str, payload: HistoryRequestPayload) -> None:
        history = self.chat.history(payload.room_id, payload.limit)
        await self._send(connection_id, ServerEvent.CHAT_HISTORY, ChatHistory(messages=history))

    async def _on_reveal(self, connection_id: str, payload: RoomAction) -> None:
        # 帧里的 member_id 不在房间内时，以该连接绑定的成员为揭晓者
        room = self.store.get_room(payload.room_id)
        revealer = room.find_member(payload.member_id) if payload.member_id else None
        if revealer is None:
            revealer = room.find_member_by_connection(connection_id)

        outcome = self.voting.reveal(payload.room_id, revealer.member_id if revealer is not None else None)
        await self._broadcast(payload.room_id, ServerEvent.ESTIMATES_REVEALED, outcome.result)
        if outcome.announcement is not None:
            await self._broadcast(payload.room_id, ServerEvent.CHAT_MESSAGE, outcome.announcement)

    async def _on_reset(self, connection_id: str, payload: RoomAction) -> None:
        result = self.voting.reset(payload.room_id)
        await self._broadcast(payload.room_id, ServerEvent.ESTIMATES_RESET, result)

    # ── 发送 ──────────────────────────────────────────────────────────

    async def _broadcast(self, room_id: str, event: ServerEvent, payload: BaseModel) -> None:
        broadcaster = self._broadcasters.get(room_id)
        if broadcaster is None:
            return
        await broadcaster.broadcast(_frame(event, payload))

    async def _send(self, connection_id: str, event: ServerEvent, payload: BaseModel) -> None:
        websocket = self._sockets.get(connection_id)
        if websocket is None:
            return
        try:
            await websocket.send_json(_frame(event, payload))
        except Exception as e:
            logger.warning("发送失败 | conn=%s | event=%s | %s", connection_id, event.value, e)

    def _broadcaster_for(self, room_id: str) -> RoomBroadcaster:
        if room_id not in self._broadcasters:
            self._broadcasters[room_id] = RoomBroadcaster(room_id)
        return self._broadcasters[room_id]

    def _lock_for(self, room_id: str) -> asyncio.Lock:
        if room_id not in self._locks:
            self._locks[room_id] = asyncio.Lock()
        return self._locks[room_id]


def _frame(event: ServerEvent, payload: BaseModel) -> dict[str, Any]:
    return {"event": event.value, "data": payload.model_dump(mode="json")}
