"""
app.core.errors
~~~~~~~~~~~~~~~

房间业务异常体系。

- ``RoomNotFoundError`` / ``ValidationError``：可恢复错误，只通知发起方，不改动房间状态。
- ``InternalError``：意外失败，房间状态回滚，记录日志后向发起方返回通用提示。
"""
from __future__ import annotations


class RoomError(Exception):
    """房间相关错误的基类。

    Attributes:
        message: 可直接返回给客户端的错误描述。
        status_code: 对应的 HTTP 状态码（REST 接口使用）。
    """

    status_code: int = 500
    default_message: str = "Room operation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class RoomNotFoundError(RoomError):
    """房间不存在。"""

    status_code = 404
    default_message = "Room not found"

    def __init__(self, room_id: str | None = None, message: str | None = None) -> None:
        self.room_id = room_id
        super().__init__(message)


class ValidationError(RoomError):
    """输入为空或不合法。"""

    status_code = 400
    default_message = "Invalid input"


class InternalError(RoomError):
    status_code = 500
    default_message = "Internal server error"
