# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: Room Store: short transactions over ChatRepository for the realtime core

from __future__ import annotations

from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domains.chat_domain import ChatMessage, ChatRoom, ParticipantType
from infrastructures.db.repository.chat_repository import ChatRepository


class RoomStore:
    """Each call runs in its own session/transaction: a message insert commits
    independently of the room metadata update that follows it.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        *,
        repo: Optional[ChatRepository] = None,
    ) -> None:
        self._session_factory = session_factory
        self._repo = repo or ChatRepository()

    async def get_room(self, room_id: str) -> Optional[ChatRoom]:
        async with self._session_factory() as db:
            return await self._repo.get_room(db, room_id)

    async def create_message(
        self,
        *,
        room_id: str,
        sender_type: ParticipantType,
        sender_name: str,
        message: str,
        sender_id: Optional[int] = None,
        is_internal: bool = False,
    ) -> ChatMessage:
        async with self._session_factory() as db:
            async with db.begin():
                return await self._repo.create_message(
                    db,
                    room_id=room_id,
                    sender_type=sender_type,
                    sender_name=sender_name,
                    sender_id=sender_id,
                    message=message,
                    is_internal=is_internal,
                )

    async def touch_room_after_message(
        self,
        room_id: str,
        *,
        sender_type: ParticipantType,
        last_message_at: int,
        preview: str,
    ) -> bool:
        async with self._session_factory() as db:
            async with db.begin():
                return await self._repo.touch_room_after_message(
                    db,
                    room_id,
                    sender_type=sender_type,
                    last_message_at=last_message_at,
                    preview=preview,
                )

    async def list_messages(self, room_id: str, *, include_internal: bool, limit: int = 500) -> List[ChatMessage]:
        async with self._session_factory() as db:
            return await self._repo.list_messages(db, room_id, include_internal=include_internal, limit=limit)
