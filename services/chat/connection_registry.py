# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: Connection Registry: open socket -> principal / identity

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from domains.chat_domain import (
    ANONYMOUS,
    ConnectionIdentity,
    ConnectionPrincipal,
    ConnectionState,
    Joined,
    UNJOINED,
)
from infrastructures.vlogger import vlogger
from services.chat.room_router import RoomRouter


class ChatConnection(Protocol):
    """Anything that can push one JSON frame (starlette WebSocket satisfies this)."""

    async def send_json(self, data: Any) -> None: ...


@dataclass
class ConnectionRecord:
    token: str
    connection: ChatConnection
    principal: ConnectionPrincipal
    identity: Optional[ConnectionIdentity] = None


class ConnectionRegistry:
    """Every currently-open connection, keyed by an opaque token.

    Unknown tokens are treated as already-closed connections: lookups return
    None and mutations are no-ops.
    """

    def __init__(self, router: RoomRouter) -> None:
        self._router = router
        self._records: Dict[str, ConnectionRecord] = {}

    def register(self, connection: ChatConnection, principal: ConnectionPrincipal = ANONYMOUS) -> str:
        token = uuid.uuid4().hex
        self._records[token] = ConnectionRecord(token=token, connection=connection, principal=principal)
        return token

    def set_identity(self, token: str, identity: ConnectionIdentity) -> None:
        record = self._records.get(token)
        if record is None:
            return
        record.identity = identity

    def clear_identity(self, token: str) -> None:
        record = self._records.get(token)
        if record is None:
            return
        record.identity = None

    def unregister(self, token: str) -> Optional[ConnectionRecord]:
        record = self._records.pop(token, None)
        if record is None:
            return None
        room_id = self._router.leave(token)
        vlogger.info("chat.registry unregister token=%s room=%s", token, room_id)
        return record

    def get(self, token: str) -> Optional[ConnectionRecord]:
        return self._records.get(token)

    def connection_of(self, token: str) -> Optional[ChatConnection]:
        record = self._records.get(token)
        return record.connection if record else None

    def principal_of(self, token: str) -> ConnectionPrincipal:
        record = self._records.get(token)
        return record.principal if record else ANONYMOUS

    def identity_of(self, token: str) -> Optional[ConnectionIdentity]:
        record = self._records.get(token)
        return record.identity if record else None

    def state_of(self, token: str) -> ConnectionState:
        # room id lives only in the router
        room_id = self._router.room_of(token) if token in self._records else None
        return Joined(room_id) if room_id is not None else UNJOINED

    def tokens(self) -> List[str]:
        return list(self._records)

    def __contains__(self, token: object) -> bool:
        return token in self._records

    def __len__(self) -> int:
        return len(self._records)
