# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: 在线客服：房间创建 / 查询 / 状态 / 历史消息 / REST 发消息

from __future__ import annotations

import uuid
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domains.chat_domain import (
    CHAT_ROOM_STATUS_ORDER,
    ChatMessage,
    ChatRoom,
    ChatRoomCreate,
    ChatRoomStatus,
    ChatRoomUpdate,
    ChatViewer,
    ParticipantType,
)
from domains.error_domain import (
    EmptyMessageError,
    RoomAccessDeniedError,
    RoomNotFoundError,
    ValidationAppError,
)
from infrastructures.db.repository.chat_repository import ChatRepository
from infrastructures.db.repository.staff_repository import StaffRepository
from infrastructures.vconfig import vconfig
from infrastructures.vlogger import vlogger
from services.chat.chat_hub import ChatHub


def new_customer_session_id() -> str:
    return uuid.uuid4().hex


class ChatRoomService:
    """Non-realtime side of the chat.

    Rules:
    - rooms are born only here, never implicitly by the realtime protocol
    - customers only ever see their own room (matched by session id) and never internal notes
    - every send goes through ChatHub so REST and socket messages share one ordering / fan-out path
    """

    def __init__(self, *, repo: Optional[ChatRepository] = None) -> None:
        self._repo = repo or ChatRepository()
        self._staff_repo = StaffRepository()

    async def create_room(self, db: AsyncSession, body: ChatRoomCreate) -> ChatRoom:
        session_id = (body.customer_session_id or "").strip() or new_customer_session_id()
        room = await self._repo.create_room(
            db,
            customer_session_id=session_id,
            customer_name=body.customer_name.strip(),
            subject=body.subject.strip(),
            customer_email=body.customer_email,
            customer_phone=body.customer_phone,
            product_id=body.product_id,
        )
        vlogger.info("chat.room created room=%s product=%s", room.id, room.product_id)
        return room

    async def list_rooms(
        self,
        db: AsyncSession,
        *,
        status: Optional[ChatRoomStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ChatRoom]:
        return await self._repo.list_rooms(
            db,
            status=status.value if status else None,
            limit=int(limit),
            offset=int(offset),
        )

    async def get_room_for(self, db: AsyncSession, room_id: str, viewer: ChatViewer) -> ChatRoom:
        room = await self._repo.get_room(db, room_id)
        if room is None:
            raise RoomNotFoundError(room_id)
        if not viewer.is_admin and viewer.session_id != room.customer_session_id:
            raise RoomAccessDeniedError(room_id)
        return room

    async def update_room(self, db: AsyncSession, room_id: str, body: ChatRoomUpdate, *, actor_id: int) -> ChatRoom:
        current = await self._repo.get_room(db, room_id)
        if current is None:
            raise RoomNotFoundError(room_id)

        fields = body.model_dump(exclude_unset=True)
        if not fields:
            return current

        assigned_to = fields.get("assigned_to")
        if assigned_to is not None and not await self._staff_repo.exists(db, int(assigned_to)):
            raise ValidationAppError(message="assignedTo user not found", details={"assignedTo": assigned_to})

        status = fields.get("status")
        if status is not None:
            # not enforced: staff may reopen or skip steps
            if CHAT_ROOM_STATUS_ORDER[status] < CHAT_ROOM_STATUS_ORDER[current.status]:
                vlogger.warning(
                    "chat.room non-forward status change room=%s %s -> %s by user=%s",
                    room_id,
                    current.status.value,
                    status.value,
                    actor_id,
                )
            fields["status"] = status.value
        if fields.get("priority") is not None:
            fields["priority"] = fields["priority"].value

        # None would blank required columns; assigned_to may be cleared explicitly
        fields = {k: v for k, v in fields.items() if v is not None or k == "assigned_to"}

        room = await self._repo.update_room(db, room_id, fields=fields)
        if room is None:
            raise RoomNotFoundError(room_id)
        vlogger.info("chat.room updated room=%s fields=%s by user=%s", room_id, sorted(fields), actor_id)
        return room

    async def list_messages(
        self,
        db: AsyncSession,
        room_id: str,
        viewer: ChatViewer,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[ChatMessage]:
        await self.get_room_for(db, room_id, viewer)
        return await self._repo.list_messages(
            db,
            room_id,
            include_internal=viewer.is_admin,
            limit=int(limit or vconfig.chat_history_limit),
            offset=int(offset),
        )

    async def mark_read(self, db: AsyncSession, room_id: str, viewer: ChatViewer) -> ChatRoom:
        await self.get_room_for(db, room_id, viewer)
        room = await self._repo.mark_read(db, room_id, reader=viewer.participant_type)
        if room is None:
            raise RoomNotFoundError(room_id)
        return room

    async def send_message(
        self,
        db: AsyncSession,
        hub: ChatHub,
        room_id: str,
        viewer: ChatViewer,
        *,
        message: str,
        sender_name: Optional[str] = None,
    ) -> ChatMessage:
        room = await self.get_room_for(db, room_id, viewer)
        body = (message or "").strip()
        if not body:
            raise EmptyMessageError()

        if viewer.is_admin:
            default_name = viewer.display_name or "Admin"
        else:
            default_name = room.customer_name
        result = await hub.post_message(
            room.id,
            sender_type=viewer.participant_type,
            sender_name=(sender_name or "").strip() or default_name,
            sender_id=viewer.user_id if viewer.is_admin else None,
            body=body,
        )
        if result.metadata_stale:
            vlogger.warning("chat.rest send room=%s message=%s metadata stale", room.id, result.message.id)
        return result.message

    async def add_internal_note(
        self,
        db: AsyncSession,
        hub: ChatHub,
        room_id: str,
        viewer: ChatViewer,
        *,
        message: str,
    ) -> ChatMessage:
        if not viewer.is_admin:
            raise RoomAccessDeniedError(room_id)
        room = await self.get_room_for(db, room_id, viewer)
        body = (message or "").strip()
        if not body:
            raise EmptyMessageError()

        result = await hub.post_message(
            room.id,
            sender_type=ParticipantType.admin,
            sender_name=viewer.display_name or "Admin",
            sender_id=viewer.user_id,
            body=body,
            is_internal=True,
        )
        return result.message
