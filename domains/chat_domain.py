# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: Live chat contracts (data only). No business logic.

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from pydantic import Field

from domains.domain_base import WireModel


# =========================
# Domain enums
# =========================

class ChatRoomStatus(str, Enum):
    waiting = "waiting"
    active = "active"
    resolved = "resolved"
    closed = "closed"


# staff workflow order; used only to flag backwards moves, never enforced
CHAT_ROOM_STATUS_ORDER = {
    ChatRoomStatus.waiting: 0,
    ChatRoomStatus.active: 1,
    ChatRoomStatus.resolved: 2,
    ChatRoomStatus.closed: 2,
}


class ChatRoomPriority(str, Enum):
    low = "low"
    normal = "normal"
    high = "high"
    urgent = "urgent"


class ParticipantType(str, Enum):
    customer = "customer"
    admin = "admin"


class ChatMessageType(str, Enum):
    text = "text"
    system = "system"
    image = "image"
    file = "file"


# =========================
# Persistent models
# =========================

class ChatRoom(WireModel):
    id: str = Field(..., min_length=1, max_length=36)
    customer_id: Optional[str] = Field(default=None, max_length=64)
    customer_session_id: str = Field(..., min_length=1, max_length=128)
    customer_name: str = Field(..., min_length=1, max_length=128)
    customer_email: Optional[str] = Field(default=None, max_length=255)
    customer_phone: Optional[str] = Field(default=None, max_length=64)
    product_id: Optional[str] = Field(default=None, max_length=64)
    subject: str = Field(..., min_length=1, max_length=255)

    status: ChatRoomStatus = Field(default=ChatRoomStatus.waiting)
    priority: ChatRoomPriority = Field(default=ChatRoomPriority.normal)
    assigned_to: Optional[int] = Field(default=None)

    last_message_at: Optional[int] = Field(default=None)
    last_message_preview: Optional[str] = Field(default=None)
    unread_by_admin: bool = Field(default=True)
    unread_by_customer: bool = Field(default=False)

    created_at: int = Field(default=0, ge=0)
    updated_at: int = Field(default=0, ge=0)


class ChatMessage(WireModel):
    id: int = Field(..., ge=1)
    room_id: str = Field(..., min_length=1, max_length=36)

    sender_type: ParticipantType = Field(...)
    sender_name: str = Field(..., min_length=1, max_length=128)
    # present only for authenticated staff
    sender_id: Optional[int] = Field(default=None)

    message: str = Field(..., min_length=1)
    message_type: ChatMessageType = Field(default=ChatMessageType.text)
    attachment_url: Optional[str] = Field(default=None, max_length=1024)

    is_read: bool = Field(default=False)
    # staff-only annotation, never delivered to customer connections
    is_internal: bool = Field(default=False)

    created_at: int = Field(default=0, ge=0)


class ChatRoomCreate(WireModel):
    customer_name: str = Field(..., min_length=1, max_length=128)
    subject: str = Field(..., min_length=1, max_length=255)
    customer_email: Optional[str] = Field(default=None, max_length=255)
    customer_phone: Optional[str] = Field(default=None, max_length=64)
    product_id: Optional[str] = Field(default=None, max_length=64)
    customer_session_id: Optional[str] = Field(default=None, max_length=128)


class ChatRoomUpdate(WireModel):
    status: Optional[ChatRoomStatus] = None
    priority: Optional[ChatRoomPriority] = None
    assigned_to: Optional[int] = None


# =========================
# Volatile connection state
# =========================

@dataclass(frozen=True)
class ConnectionPrincipal:
    """How a socket authenticated when it was opened."""
    user_id: Optional[int] = None
    username: Optional[str] = None
    is_admin: bool = False


ANONYMOUS = ConnectionPrincipal()


@dataclass(frozen=True)
class ConnectionIdentity:
    participant_type: ParticipantType
    display_name: str
    # customer session id, or str(user_id) for staff
    session_or_user_id: str
    user_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.participant_type == ParticipantType.admin


@dataclass(frozen=True)
class Unjoined:
    pass


@dataclass(frozen=True)
class Joined:
    room_id: str


ConnectionState = Union[Unjoined, Joined]

UNJOINED = Unjoined()


class ParticipantPresence(WireModel):
    participant_type: ParticipantType
    display_name: str
    user_id: Optional[int] = None


@dataclass(frozen=True)
class ChatViewer:
    """Caller of the non-realtime chat endpoints: staff user or the room's customer session."""
    participant_type: ParticipantType
    session_id: Optional[str] = None
    user_id: Optional[int] = None
    display_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.participant_type == ParticipantType.admin

    @classmethod
    def for_staff(cls, principal: ConnectionPrincipal) -> "ChatViewer":
        return cls(
            participant_type=ParticipantType.admin,
            user_id=principal.user_id,
            display_name=principal.username,
        )
