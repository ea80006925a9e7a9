# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: Realtime chat frames: {"type": ..., "payload": {...}} as tagged unions

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter, ValidationError

from domains.chat_domain import ChatMessage, ParticipantType
from domains.domain_base import WireModel
from domains.error_domain import MalformedFrameError


# =========================
# client -> server
# =========================

class JoinRoomPayload(WireModel):
    room_id: str = Field(..., min_length=1)
    session_id: Optional[str] = Field(default=None, max_length=128)
    user_type: ParticipantType = Field(default=ParticipantType.customer)
    display_name: Optional[str] = Field(default=None, max_length=128)


class SendMessagePayload(WireModel):
    message: str = Field(...)
    sender_name: Optional[str] = Field(default=None, max_length=128)


class LeaveRoomPayload(WireModel):
    pass


class JoinRoomFrame(WireModel):
    type: Literal["join_room"]
    payload: JoinRoomPayload


class SendMessageFrame(WireModel):
    type: Literal["send_message"]
    payload: SendMessagePayload


class LeaveRoomFrame(WireModel):
    type: Literal["leave_room"]
    payload: LeaveRoomPayload = Field(default_factory=LeaveRoomPayload)


InboundFrame = Annotated[
    Union[JoinRoomFrame, SendMessageFrame, LeaveRoomFrame],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[InboundFrame] = TypeAdapter(InboundFrame)


def _error_details(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": [str(p) for p in err.get("loc", ())], "msg": str(err.get("msg", ""))}
        for err in exc.errors()
    ]


def parse_inbound_frame(raw: Union[str, bytes, Dict[str, Any]]) -> InboundFrame:
    """Validate one inbound frame; any shape problem becomes MalformedFrameError."""
    try:
        if isinstance(raw, (str, bytes)):
            return _inbound_adapter.validate_json(raw)
        return _inbound_adapter.validate_python(raw)
    except ValidationError as exc:
        raise MalformedFrameError(details=_error_details(exc)) from exc


# =========================
# server -> client
# =========================

class JoinedRoomPayload(WireModel):
    room_id: str
    message: str = "Successfully joined room"


class NoticePayload(WireModel):
    message: str
    code: Optional[str] = None
    details: Optional[Any] = None


class JoinedRoomFrame(WireModel):
    type: Literal["joined_room"] = "joined_room"
    payload: JoinedRoomPayload


class NewMessageFrame(WireModel):
    type: Literal["new_message"] = "new_message"
    payload: ChatMessage


class ErrorFrame(WireModel):
    type: Literal["error"] = "error"
    payload: NoticePayload


class WarningFrame(WireModel):
    type: Literal["warning"] = "warning"
    payload: NoticePayload


OutboundFrame = Union[JoinedRoomFrame, NewMessageFrame, ErrorFrame, WarningFrame]


def error_frame(code: str, message: str, details: Any | None = None) -> ErrorFrame:
    return ErrorFrame(payload=NoticePayload(message=message, code=code, details=details))


def warning_frame(code: str, message: str) -> WarningFrame:
    return WarningFrame(payload=NoticePayload(message=message, code=code))
