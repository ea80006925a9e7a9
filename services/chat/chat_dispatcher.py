# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: Message Dispatcher: per-connection protocol state machine + room fan-out

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from domains.chat_domain import (
    ChatMessage,
    ChatRoom,
    ConnectionIdentity,
    Joined,
    ParticipantType,
)
from domains.chat_frame_domain import (
    JoinedRoomFrame,
    JoinedRoomPayload,
    JoinRoomFrame,
    JoinRoomPayload,
    NewMessageFrame,
    OutboundFrame,
    SendMessageFrame,
    SendMessagePayload,
    error_frame,
    parse_inbound_frame,
    warning_frame,
)
from domains.error_domain import (
    ChatProtocolError,
    EmptyMessageError,
    NotJoinedError,
    PersistenceFailureError,
    RoomAccessDeniedError,
    RoomNotFoundError,
)
from infrastructures.vlogger import vlogger
from services.chat.connection_registry import ConnectionRegistry
from services.chat.room_router import RoomRouter
from services.chat.room_store import RoomStore

ROOM_METADATA_STALE = "ROOM_METADATA_STALE"


@dataclass
class PostResult:
    message: ChatMessage
    metadata_stale: bool = False
    delivered: int = 0


@dataclass
class _RoomLock:
    lock: asyncio.Lock
    users: int = 0


def build_preview(body: str, max_length: int) -> str:
    text = " ".join(body.split())
    if len(text) <= max_length:
        return text
    return text[:max_length]


class MessageDispatcher:
    """Connection states: Unjoined -> Joined(room) -> Unjoined (leave) / removed (disconnect).

    Protocol errors are answered to the originating connection only and never
    close it. Persist + fan-out for one room run under that room's lock, so
    every member sees the room's messages in creation order.
    """

    def __init__(
        self,
        store: RoomStore,
        registry: ConnectionRegistry,
        router: RoomRouter,
        *,
        preview_max_length: int = 100,
    ) -> None:
        self._store = store
        self._registry = registry
        self._router = router
        self._preview_max_length = int(preview_max_length)
        self._room_locks: Dict[str, _RoomLock] = {}

    # ------------------------ inbound ------------------------

    async def dispatch(self, token: str, raw: Union[str, bytes, Dict[str, Any]]) -> None:
        if token not in self._registry:
            return
        try:
            frame = parse_inbound_frame(raw)
            if isinstance(frame, JoinRoomFrame):
                await self.handle_join(token, frame.payload)
            elif isinstance(frame, SendMessageFrame):
                await self.handle_send_message(token, frame.payload)
            else:
                self.handle_leave(token)
        except ChatProtocolError as exc:
            vlogger.info("chat.dispatch rejected token=%s code=%s", token, exc.code)
            await self.push(token, error_frame(exc.code, exc.message, exc.details))

    async def handle_join(self, token: str, payload: JoinRoomPayload) -> ChatRoom:
        try:
            room = await self._store.get_room(payload.room_id)
        except SQLAlchemyError as exc:
            vlogger.error("chat.join room lookup failed room=%s err=%s", payload.room_id, exc)
            raise PersistenceFailureError(message="failed to load room") from exc
        if room is None:
            raise RoomNotFoundError(payload.room_id)

        identity = self._resolve_identity(token, payload, room)

        # the socket may have closed while the lookup was in flight
        if token not in self._registry:
            return room

        # from here to the ack nothing yields: membership is visible to fan-out at once
        self._registry.set_identity(token, identity)
        previous = self._router.join(token, room.id)
        vlogger.info(
            "chat.join token=%s room=%s as=%s previous=%s",
            token,
            room.id,
            identity.participant_type.value,
            previous,
        )

        await self.push(token, JoinedRoomFrame(payload=JoinedRoomPayload(room_id=room.id)))
        return room

    async def handle_send_message(self, token: str, payload: SendMessagePayload) -> Optional[PostResult]:
        state = self._registry.state_of(token)
        identity = self._registry.identity_of(token)
        if not isinstance(state, Joined) or identity is None:
            raise NotJoinedError()

        body = payload.message.strip()
        if not body:
            raise EmptyMessageError()

        sender_name = (payload.sender_name or "").strip() or identity.display_name
        result = await self.post_message(
            state.room_id,
            sender_type=identity.participant_type,
            sender_name=sender_name,
            sender_id=identity.user_id,
            body=body,
        )

        if result.metadata_stale:
            await self.push(
                token,
                warning_frame(ROOM_METADATA_STALE, "message delivered but room preview/unread flags may be stale"),
            )
        return result

    def handle_leave(self, token: str) -> None:
        room_id = self._router.leave(token)
        self._registry.clear_identity(token)
        if room_id is not None:
            vlogger.info("chat.leave token=%s room=%s", token, room_id)

    def handle_disconnect(self, token: str) -> None:
        self._registry.unregister(token)

    # ------------------------ persistence + fan-out ------------------------

    async def post_message(
        self,
        room_id: str,
        *,
        sender_type: ParticipantType,
        sender_name: str,
        body: str,
        sender_id: Optional[int] = None,
        is_internal: bool = False,
    ) -> PostResult:
        """Persist one message, refresh room metadata, push to current members.

        Raises PersistenceFailureError if the message itself could not be
        stored; nothing is pushed in that case. A failed metadata update only
        marks the result stale.
        """
        async with self._room_lock(room_id):
            try:
                message = await self._store.create_message(
                    room_id=room_id,
                    sender_type=sender_type,
                    sender_name=sender_name,
                    sender_id=sender_id,
                    message=body,
                    is_internal=is_internal,
                )
            except SQLAlchemyError as exc:
                vlogger.error("chat.post insert failed room=%s err=%s", room_id, exc)
                raise PersistenceFailureError(details={"roomId": room_id}) from exc

            metadata_stale = False
            # internal notes are invisible to the customer: leave preview/unread alone
            if not is_internal:
                try:
                    touched = await self._store.touch_room_after_message(
                        room_id,
                        sender_type=sender_type,
                        last_message_at=message.created_at,
                        preview=build_preview(body, self._preview_max_length),
                    )
                    metadata_stale = not touched
                except SQLAlchemyError as exc:
                    vlogger.error("chat.post metadata update failed room=%s message=%s err=%s", room_id, message.id, exc)
                    metadata_stale = True

            delivered = await self.fan_out(room_id, message)

        return PostResult(message=message, metadata_stale=metadata_stale, delivered=delivered)

    async def fan_out(self, room_id: str, message: ChatMessage) -> int:
        # resolved after the write, never from a snapshot taken before it
        targets = []
        for token in self._router.members_of(room_id):
            identity = self._registry.identity_of(token)
            if message.is_internal and (identity is None or not identity.is_admin):
                continue
            connection = self._registry.connection_of(token)
            if connection is not None:
                targets.append((token, connection))

        if not targets:
            return 0

        data = NewMessageFrame(payload=message).to_dict()
        results = await asyncio.gather(
            *(connection.send_json(data) for _, connection in targets),
            return_exceptions=True,
        )

        delivered = 0
        for (token, _), res in zip(targets, results):
            if isinstance(res, BaseException):
                vlogger.warning("chat.fan_out dropping dead connection token=%s err=%r", token, res)
                self._registry.unregister(token)
            else:
                delivered += 1
        return delivered

    async def push(self, token: str, frame: OutboundFrame) -> bool:
        connection = self._registry.connection_of(token)
        if connection is None:
            return False
        try:
            await connection.send_json(frame.to_dict())
        except Exception as exc:
            vlogger.warning("chat.push dropping dead connection token=%s err=%r", token, exc)
            self._registry.unregister(token)
            return False
        return True

    # ------------------------ helpers ------------------------

    def _resolve_identity(self, token: str, payload: JoinRoomPayload, room: ChatRoom) -> ConnectionIdentity:
        principal = self._registry.principal_of(token)

        if payload.user_type == ParticipantType.admin:
            if principal.is_admin and principal.user_id is not None:
                return ConnectionIdentity(
                    participant_type=ParticipantType.admin,
                    display_name=principal.username or "Admin",
                    session_or_user_id=str(principal.user_id),
                    user_id=principal.user_id,
                )
            vlogger.warning("chat.join admin claim without staff auth token=%s, joining as customer", token)

        if not payload.session_id or payload.session_id != room.customer_session_id:
            raise RoomAccessDeniedError(room.id)

        return ConnectionIdentity(
            participant_type=ParticipantType.customer,
            display_name=(payload.display_name or "").strip() or room.customer_name,
            session_or_user_id=payload.session_id,
        )

    @asynccontextmanager
    async def _room_lock(self, room_id: str) -> AsyncIterator[None]:
        entry = self._room_locks.get(room_id)
        if entry is None:
            entry = self._room_locks[room_id] = _RoomLock(lock=asyncio.Lock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._room_locks.pop(room_id, None)
