# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: 在线客服聊天仓储（房间 / 消息）

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import Select, desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domains.chat_domain import ChatMessage, ChatRoom, ParticipantType
from infrastructures.db.orm.chat_orm import ChatMessageORM, ChatRoomORM
from infrastructures.db.orm.orm_base import now_ts

_UPDATABLE_ROOM_FIELDS = {"status", "priority", "assigned_to"}


def _room_from_orm(orm: ChatRoomORM) -> ChatRoom:
    return ChatRoom(
        id=orm.id,
        customer_id=orm.customer_id,
        customer_session_id=orm.customer_session_id,
        customer_name=orm.customer_name,
        customer_email=orm.customer_email,
        customer_phone=orm.customer_phone,
        product_id=orm.product_id,
        subject=orm.subject,
        status=orm.status,
        priority=orm.priority,
        assigned_to=orm.assigned_to,
        last_message_at=orm.last_message_at,
        last_message_preview=orm.last_message_preview,
        unread_by_admin=bool(orm.unread_by_admin),
        unread_by_customer=bool(orm.unread_by_customer),
        created_at=orm.created_at,
        updated_at=orm.updated_at,
    )


def _message_from_orm(orm: ChatMessageORM) -> ChatMessage:
    return ChatMessage(
        id=orm.id,
        room_id=orm.room_id,
        sender_type=orm.sender_type,
        sender_name=orm.sender_name,
        sender_id=orm.sender_id,
        message=orm.message,
        message_type=orm.message_type,
        attachment_url=orm.attachment_url,
        is_read=bool(orm.is_read),
        is_internal=bool(orm.is_internal),
        created_at=orm.created_at,
    )


class ChatRepository:
    # ------------------------ Room ------------------------

    async def _get_room_orm(self, db: AsyncSession, room_id: str) -> Optional[ChatRoomORM]:
        stmt = select(ChatRoomORM).where(ChatRoomORM.id == room_id).limit(1)
        res = await db.execute(stmt)
        return res.scalar_one_or_none()

    async def get_room(self, db: AsyncSession, room_id: str) -> Optional[ChatRoom]:
        orm = await self._get_room_orm(db, room_id)
        if not orm:
            return None
        return _room_from_orm(orm)

    async def create_room(
        self,
        db: AsyncSession,
        *,
        customer_session_id: str,
        customer_name: str,
        subject: str,
        customer_email: Optional[str] = None,
        customer_phone: Optional[str] = None,
        product_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> ChatRoom:
        ts = now_ts()
        orm = ChatRoomORM(
            customer_id=customer_id,
            customer_session_id=customer_session_id,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            product_id=product_id,
            subject=subject,
            status="waiting",
            priority="normal",
            last_message_at=ts,
            unread_by_admin=True,
            unread_by_customer=False,
        )
        orm.created_at = ts
        orm.updated_at = ts

        db.add(orm)
        await db.flush()
        await db.refresh(orm)
        return _room_from_orm(orm)

    async def list_rooms(
        self,
        db: AsyncSession,
        *,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ChatRoom]:
        stmt: Select = select(ChatRoomORM)
        if status:
            stmt = stmt.where(ChatRoomORM.status == status)
        stmt = (
            stmt.order_by(
                desc(ChatRoomORM.last_message_at),
                desc(ChatRoomORM.created_at),
            )
            .offset(offset)
            .limit(limit)
        )
        res = await db.execute(stmt)
        return [_room_from_orm(o) for o in res.scalars().all()]

    async def update_room(
        self,
        db: AsyncSession,
        room_id: str,
        *,
        fields: Dict[str, Any],
    ) -> Optional[ChatRoom]:
        orm = await self._get_room_orm(db, room_id)
        if not orm:
            return None
        for name, value in fields.items():
            if name not in _UPDATABLE_ROOM_FIELDS:
                raise ValueError(f"room field not updatable: {name}")
            setattr(orm, name, value)
        orm.updated_at = now_ts()
        await db.flush()
        await db.refresh(orm)
        return _room_from_orm(orm)

    async def touch_room_after_message(
        self,
        db: AsyncSession,
        room_id: str,
        *,
        sender_type: ParticipantType,
        last_message_at: int,
        preview: str,
    ) -> bool:
        """Refresh last-message metadata; only the counterpart's unread flag is raised."""
        values: Dict[str, Any] = {
            "last_message_at": last_message_at,
            "last_message_preview": preview,
            "updated_at": now_ts(),
        }
        if sender_type == ParticipantType.customer:
            values["unread_by_admin"] = True
        else:
            values["unread_by_customer"] = True

        stmt = update(ChatRoomORM).where(ChatRoomORM.id == room_id).values(**values)
        res = await db.execute(stmt)
        return bool(res.rowcount)

    async def mark_read(
        self,
        db: AsyncSession,
        room_id: str,
        *,
        reader: ParticipantType,
    ) -> Optional[ChatRoom]:
        orm = await self._get_room_orm(db, room_id)
        if not orm:
            return None

        counterpart = ParticipantType.admin if reader == ParticipantType.customer else ParticipantType.customer
        stmt = (
            update(ChatMessageORM)
            .where(
                ChatMessageORM.room_id == room_id,
                ChatMessageORM.sender_type == counterpart.value,
                ChatMessageORM.is_read.is_(False),
            )
            .values(is_read=True)
        )
        await db.execute(stmt)

        if reader == ParticipantType.customer:
            orm.unread_by_customer = False
        else:
            orm.unread_by_admin = False
        orm.updated_at = now_ts()
        await db.flush()
        await db.refresh(orm)
        return _room_from_orm(orm)

    # ------------------------ Message ------------------------

    async def create_message(
        self,
        db: AsyncSession,
        *,
        room_id: str,
        sender_type: ParticipantType,
        sender_name: str,
        message: str,
        sender_id: Optional[int] = None,
        message_type: str = "text",
        attachment_url: Optional[str] = None,
        is_internal: bool = False,
    ) -> ChatMessage:
        orm = ChatMessageORM(
            room_id=room_id,
            sender_type=sender_type.value,
            sender_name=sender_name,
            sender_id=sender_id,
            message=message,
            message_type=message_type,
            attachment_url=attachment_url,
            is_read=False,
            is_internal=is_internal,
            created_at=now_ts(),
        )
        db.add(orm)
        await db.flush()
        await db.refresh(orm)
        return _message_from_orm(orm)

    async def list_messages(
        self,
        db: AsyncSession,
        room_id: str,
        *,
        include_internal: bool,
        limit: int = 500,
        offset: int = 0,
    ) -> List[ChatMessage]:
        stmt: Select = select(ChatMessageORM).where(ChatMessageORM.room_id == room_id)
        if not include_internal:
            stmt = stmt.where(ChatMessageORM.is_internal.is_(False))
        stmt = (
            stmt.order_by(ChatMessageORM.created_at, ChatMessageORM.id)
            .offset(offset)
            .limit(limit)
        )
        res = await db.execute(stmt)
        return [_message_from_orm(o) for o in res.scalars().all()]
