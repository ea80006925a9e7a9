# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: 统一错误模型 + 聊天协议错误
from typing import Optional, Any

from fastapi import HTTPException
from pydantic import BaseModel
from starlette import status


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None


class AppError(Exception):
    def __init__(
            self,
            code: str,
            message: str,
            http_status: int = status.HTTP_400_BAD_REQUEST,
            details: Any | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        self.details = details
        super().__init__(message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.http_status,
            detail=self.to_response().model_dump(),
        )

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(code=self.code, message=self.message, details=self.details)


class NotFoundError(AppError):
    def __init__(self, message: str = "Resource not found", details: Any | None = None):
        super().__init__(
            code="NOT_FOUND",
            message=message,
            http_status=status.HTTP_404_NOT_FOUND,
            details=details,
        )


class PermissionDeniedError(AppError):
    def __init__(self, message: str = "Permission denied", details: Any | None = None):
        super().__init__(
            code="PERMISSION_DENIED",
            message=message,
            http_status=status.HTTP_403_FORBIDDEN,
            details=details,
        )


class ValidationAppError(AppError):
    def __init__(self, message: str = "Validation error", details: Any | None = None):
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            http_status=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


# =========================
# Chat protocol errors
# =========================

class ChatProtocolError(AppError):
    """Reported to the originating connection only; never closes it."""


class RoomNotFoundError(ChatProtocolError):
    def __init__(self, room_id: str | None = None):
        super().__init__(
            code="ROOM_NOT_FOUND",
            message="room not found",
            http_status=status.HTTP_404_NOT_FOUND,
            details={"roomId": room_id} if room_id else None,
        )


class RoomAccessDeniedError(ChatProtocolError):
    def __init__(self, room_id: str | None = None):
        super().__init__(
            code="ROOM_ACCESS_DENIED",
            message="access to room denied",
            http_status=status.HTTP_403_FORBIDDEN,
            details={"roomId": room_id} if room_id else None,
        )


class NotJoinedError(ChatProtocolError):
    def __init__(self):
        super().__init__(
            code="NOT_JOINED",
            message="not joined to a room",
            http_status=status.HTTP_409_CONFLICT,
        )


class EmptyMessageError(ChatProtocolError):
    def __init__(self):
        super().__init__(
            code="EMPTY_MESSAGE",
            message="message is empty",
            http_status=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )


class MalformedFrameError(ChatProtocolError):
    def __init__(self, details: Any | None = None):
        super().__init__(
            code="MALFORMED_FRAME",
            message="malformed frame",
            http_status=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class PersistenceFailureError(ChatProtocolError):
    def __init__(self, message: str = "failed to store message", details: Any | None = None):
        super().__init__(
            code="PERSISTENCE_FAILURE",
            message=message,
            http_status=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
        )
