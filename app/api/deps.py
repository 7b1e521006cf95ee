from fastapi import Request, WebSocket

from app.services.analytics import AnalyticsReader
from app.services.gateway import BroadcastGateway
from app.services.room_store import RoomStore


def get_room_store(request: Request) -> RoomStore:
    return request.app.state.room_store


def get_analytics_reader(request: Request) -> AnalyticsReader:
    return request.app.state.analytics


def get_gateway(websocket: WebSocket) -> BroadcastGateway:
    return websocket.app.state.gateway
