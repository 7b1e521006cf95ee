"""
app.api.rooms
~~~~~~~~~~~~~

房间 REST 接口 —— 创建 / 查询房间，读取房间统计。

端点:
  - ``POST /rooms``                 → 创建房间
  - ``GET  /rooms``                 → 获取活跃房间列表
  - ``GET  /rooms/{room_id}``       → 获取房间详情
  - ``GET  /analytics/{room_id}``   → 获取房间统计
"""
from fastapi import APIRouter, Depends, Request

from app.core.rate_limit import limiter
from app.core.settings import settings
from app.schemas.api_response import ApiResponse
from app.schemas.rooms_api import (
    AnalyticsData,
    CreateRoomData,
    CreateRoomRequest,
    RoomData,
    RoomSummaryData,
)
from app.services.analytics import AnalyticsReader
from app.services.room_store import RoomStore
from app.api.deps import get_analytics_reader, get_room_store

router: APIRouter = APIRouter()


# ── 房间管理端点 ──────────────────────────────────────────────────────

@router.post("/rooms", summary="创建房间", response_model=ApiResponse[CreateRoomData])
@limiter.limit(settings.ROOM_CREATE_RATE_LIMIT)
async def create_room(
    request: Request,
    create_request: CreateRoomRequest,
    store: RoomStore = Depends(get_room_store),
):
    """创建一个新的投票房间。

    房间名和创建者名去除首尾空白后不得为空，否则返回 400。

    Args:
        request: FastAPI Request 对象（用于限流判断）。
        create_request: 包含房间名与创建者名的请求体。
    """
    room = store.create_room(create_request.room_name, create_request.creator_name)
    return ApiResponse.ok(data=CreateRoomData(room_id=room.id, room=RoomData.from_room(room)))


@router.get("/rooms", summary="获取活跃房间列表", response_model=ApiResponse[list[RoomSummaryData]])
@limiter.limit(settings.ROOM_READ_RATE_LIMIT)
async def list_rooms(request: Request, store: RoomStore = Depends(get_room_store)):
    """返回所有活跃房间的摘要。"""
    rooms = [
        RoomSummaryData(
            room_id=room.id,
            name=room.name,
            member_count=len(room.members),
            online_count=room.online_count,
            revealed=room.revealed,
        )
        for room in store.list_rooms()
    ]
    return ApiResponse.ok(data=rooms)


@router.get("/rooms/{room_id}", summary="获取房间详情", response_model=ApiResponse[RoomData])
@limiter.limit(settings.ROOM_READ_RATE_LIMIT)
async def get_room(request: Request, room_id: str, store: RoomStore = Depends(get_room_store)):
    """返回指定房间的详情；未揭晓时不包含票值。房间不存在返回 404。"""
    room = store.get_room(room_id)
    return ApiResponse.ok(data=RoomData.from_room(room))


# ── 统计端点 ──────────────────────────────────────────────────────────

@router.get("/analytics/{room_id}", summary="获取房间统计", response_model=ApiResponse[AnalyticsData])
@limiter.limit(settings.ROOM_READ_RATE_LIMIT)
async def get_analytics(
    request: Request,
    room_id: str,
    reader: AnalyticsReader = Depends(get_analytics_reader),
):
    """返回房间的揭晓轮数、共识轮数与共识率。"""
    analytics = reader.get(room_id)
    return ApiResponse.ok(
        data=AnalyticsData(
            room_id=room_id,
            total_rounds=analytics.total_rounds,
            consensus_rounds=analytics.consensus_rounds,
            consensus_rate=analytics.consensus_rate,
        ),
    )
