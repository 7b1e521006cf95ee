"""
app.schemas
~~~~~~~~~~~
Pydantic schemas: room state, realtime event payloads and REST models.
"""
from app.schemas.api_response import ApiResponse
from app.schemas.rooms_api import (
    AnalyticsData,
    CreateRoomData,
    CreateRoomRequest,
    RoomData,
    RoomSummaryData,
)

# Call model_rebuild to resolve forward references in generic Pydantic models.
ApiResponse.model_rebuild()
