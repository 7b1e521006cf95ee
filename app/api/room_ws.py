"""
app.api.room_ws
~~~~~~~~~~~~~~~

WebSocket 实时动作端点 —— 所有房间共用 ``/ws``。

帧协议（JSON 文本）:
  - 入站 ``{"event": "join" | "set-topic" | "submit-estimate" | "chat-message"
    | "chat-history-request" | "reveal" | "reset", "data": {...}}``
  - 出站 ``{"event": <通知名>, "data": {...}}``，错误为 ``{"event": "error", "data": {"message": ...}}``

连接关闭时由本端点显式调用 ``gateway.disconnect()``（不受任务取消影响），
房间状态不感知传输层细节。
"""
from __future__ import annotations

import asyncio
import uuid

import anyio
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PayloadValidationError

from app.api.deps import get_gateway
from app.core.logging import get_logger, request_id_ctx_var
from app.core.rate_limit import WebSocketRateLimiter
from app.core.settings import settings
from app.schemas.events import ClientEvent, InboundFrame
from app.services.gateway import BroadcastGateway

logger = get_logger(__name__)

router: APIRouter = APIRouter()


@router.websocket("/ws")
async def room_websocket_endpoint(
    websocket: WebSocket,
    gateway: BroadcastGateway = Depends(get_gateway),
) -> None:
    """房间实时动作端点。

    每个连接运行一对协程：接收协程负责解析与限流，处理协程按到达顺序
    把动作交给网关，两者之间用有界队列隔离。

    Args:
        websocket: FastAPI WebSocket 连接对象。
        gateway: 应用级广播网关。
    """
    ws_req_id = f"ws-{uuid.uuid4().hex[:8]}"
    token = request_id_ctx_var.set(ws_req_id)

    try:
        connection_id = await gateway.connect(websocket)
        logger.info("连接建立 | conn=%s | 总连接: %d", connection_id, gateway.connection_count)

        chat_limiter = WebSocketRateLimiter(interval_seconds=settings.WS_CHAT_RATE_LIMIT_INTERVAL)
        queue: asyncio.Queue[InboundFrame | None] = asyncio.Queue(maxsize=settings.WS_QUEUE_SIZE)

        async def receive_loop() -> None:
            try:
                while True:
                    raw: str = await websocket.receive_text()
                    try:
                        frame = InboundFrame.model_validate_json(raw)
                    except PayloadValidationError:
                        await gateway.notify_error(connection_id, "Malformed message")
                        continue

                    if frame.event == ClientEvent.CHAT_MESSAGE.value and not chat_limiter.is_allowed(connection_id):
                        await gateway.notify_error(connection_id, "You are sending messages too fast")
                        continue
                    try:
                        queue.put_nowait(frame)
                    except asyncio.QueueFull:
                        await gateway.notify_error(connection_id, "Server is busy, please retry")
                        logger.warning("WS 队列已满，丢弃动作 | event=%s", frame.event)
            except WebSocketDisconnect:
                pass  # 正常断开
            except Exception as e:
                logger.error("WebSocket 接收异常: %s", e, exc_info=True)
            finally:
                await queue.put(None)  # 通知处理协程结束

        async def process_loop() -> None:
            while True:
                frame = await queue.get()
                if frame is None:
                    break
                try:
                    await gateway.dispatch(connection_id, frame.event, frame.data)
                except Exception as e:
                    logger.error("WebSocket 处理异常: %s | event=%s", e, frame.event, exc_info=True)

        try:
            await asyncio.gather(receive_loop(), process_loop())
        finally:
            chat_limiter.remove_client(connection_id)
            # 连接任务可能已被取消，离线标记与广播必须跑完
            with anyio.CancelScope(shield=True):
                await gateway.disconnect(connection_id)
            logger.info("连接关闭 | conn=%s | 总连接: %d", connection_id, gateway.connection_count)

    finally:
        request_id_ctx_var.reset(token)
