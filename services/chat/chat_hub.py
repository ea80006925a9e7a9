# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: ChatHub: one per process, owns registry / router / dispatcher

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from domains.chat_domain import ANONYMOUS, ConnectionPrincipal, ParticipantPresence, ParticipantType
from infrastructures.vlogger import vlogger
from services.chat.chat_dispatcher import MessageDispatcher, PostResult
from services.chat.connection_registry import ChatConnection, ConnectionRegistry
from services.chat.room_router import RoomRouter
from services.chat.room_store import RoomStore


class ChatHub:
    def __init__(self, store: RoomStore, *, preview_max_length: int = 100) -> None:
        self.store = store
        self.router = RoomRouter()
        self.registry = ConnectionRegistry(self.router)
        self.dispatcher = MessageDispatcher(
            store,
            self.registry,
            self.router,
            preview_max_length=preview_max_length,
        )

    def connect(self, connection: ChatConnection, principal: ConnectionPrincipal = ANONYMOUS) -> str:
        token = self.registry.register(connection, principal)
        vlogger.info(
            "chat.hub connect token=%s staff=%s open=%s",
            token,
            principal.is_admin,
            len(self.registry),
        )
        return token

    async def dispatch(self, token: str, raw: Union[str, bytes, Dict[str, Any]]) -> None:
        await self.dispatcher.dispatch(token, raw)

    def disconnect(self, token: str) -> None:
        self.dispatcher.handle_disconnect(token)

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
        """Entry point for messages that arrive outside a socket (REST send, staff notes)."""
        return await self.dispatcher.post_message(
            room_id,
            sender_type=sender_type,
            sender_name=sender_name,
            body=body,
            sender_id=sender_id,
            is_internal=is_internal,
        )

    def presence(self, room_id: str) -> List[ParticipantPresence]:
        out: List[ParticipantPresence] = []
        for token in self.router.members_of(room_id):
            identity = self.registry.identity_of(token)
            if identity is None:
                continue
            out.append(
                ParticipantPresence(
                    participant_type=identity.participant_type,
                    display_name=identity.display_name,
                    user_id=identity.user_id,
                )
            )
        out.sort(key=lambda p: (p.participant_type.value, p.display_name))
        return out

    async def close(self) -> None:
        tokens = self.registry.tokens()
        for token in tokens:
            connection = self.registry.connection_of(token)
            close = getattr(connection, "close", None)
            if callable(close):
                try:
                    await close(code=1001)
                except Exception as exc:
                    vlogger.warning("chat.hub close failed token=%s err=%r", token, exc)
            self.registry.unregister(token)
        if tokens:
            vlogger.info("chat.hub closed %s connection(s)", len(tokens))
