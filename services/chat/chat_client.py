# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: 实时聊天客户端：断线固定延迟重连 + 自动重新入房 + REST 拉取历史补齐

from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol
from urllib.parse import urlencode

import httpx
import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from domains.chat_domain import ChatMessage, ParticipantType
from domains.chat_frame_domain import (
    ErrorFrame,
    JoinedRoomFrame,
    NewMessageFrame,
    NoticePayload,
    WarningFrame,
)
from infrastructures.vlogger import vlogger

DEFAULT_RECONNECT_DELAY_SECONDS = 3.0
DEFAULT_SESSION_HEADER = "X-Chat-Session"


class ChatTransport(Protocol):
    async def send(self, message: str) -> None: ...

    async def recv(self) -> Any: ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[ChatTransport]]


async def websockets_connector(url: str) -> ChatTransport:
    return await websockets.connect(url)


class ChatClientDisconnected(RuntimeError):
    """Raised by send operations while the socket is down (the widget shows a disabled input)."""


# asyncio.TimeoutError is not an OSError before 3.11 (websockets open_timeout)
_TRANSPORT_ERRORS = (ConnectionClosed, InvalidHandshake, OSError, asyncio.TimeoutError)


class ChatClient:
    """Client side of the realtime chat protocol.

    Lifecycle:
        run() keeps one connection open until stop(). After an unexpected loss it
        waits reconnect_delay seconds, reconnects, re-joins the last known room and,
        once the join is acknowledged, fetches the room history over HTTP. There is no
        server-side replay: the history fetch is the only way to recover messages
        sent while the client was away.

    Server error / warning frames are handed to on_notice and never end the session.
    Callbacks may be plain functions or coroutines.
    """

    def __init__(
        self,
        ws_url: str,
        *,
        api_base_url: Optional[str] = None,
        session_id: Optional[str] = None,
        access_token: Optional[str] = None,
        user_type: ParticipantType = ParticipantType.customer,
        display_name: Optional[str] = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY_SECONDS,
        session_header: str = DEFAULT_SESSION_HEADER,
        connector: Optional[Connector] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        http_client: Optional[httpx.AsyncClient] = None,
        on_message: Optional[Callable[[ChatMessage], Any]] = None,
        on_history: Optional[Callable[[str, List[ChatMessage]], Any]] = None,
        on_notice: Optional[Callable[[str, NoticePayload], Any]] = None,
        on_joined: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self.ws_url = ws_url
        self.api_base_url = (api_base_url or "").rstrip("/")
        self.session_id = session_id
        self.access_token = access_token
        self.user_type = user_type
        self.display_name = display_name
        self.reconnect_delay = float(reconnect_delay)
        self.session_header = session_header

        self._connector: Connector = connector or websockets_connector
        self._sleep = sleep
        self._http: Optional[httpx.AsyncClient] = http_client
        self._owns_http = http_client is None

        self._on_message = on_message
        self._on_history = on_history
        self._on_notice = on_notice
        self._on_joined = on_joined

        self.room_id: Optional[str] = None
        self.reconnects = 0
        self._transport: Optional[ChatTransport] = None
        self._connected = asyncio.Event()
        self._stopping = False

    # ------------------------ state ------------------------

    @property
    def connected(self) -> bool:
        return self._transport is not None

    async def wait_connected(self, timeout: Optional[float] = None) -> None:
        await asyncio.wait_for(self._connected.wait(), timeout)

    # ------------------------ supervisor loop ------------------------

    async def run(self) -> None:
        attempt = 0
        while not self._stopping:
            attempt += 1
            try:
                transport = await self._connector(self._connect_url())
            except _TRANSPORT_ERRORS as exc:
                vlogger.warning("chat.client connect failed attempt=%s err=%r", attempt, exc)
                await self._sleep(self.reconnect_delay)
                continue

            if attempt > 1:
                self.reconnects += 1
            self._transport = transport
            self._connected.set()
            vlogger.info("chat.client connected attempt=%s room=%s", attempt, self.room_id)

            try:
                if self.room_id is not None:
                    await self._send_join(self.room_id)
                await self._read_loop(transport)
            except _TRANSPORT_ERRORS as exc:
                if not self._stopping:
                    vlogger.warning("chat.client connection lost room=%s err=%r", self.room_id, exc)
            finally:
                self._transport = None
                self._connected.clear()
                await self._close_quietly(transport)

            if self._stopping:
                break
            await self._sleep(self.reconnect_delay)

        await self._close_http()
        vlogger.info("chat.client stopped")

    async def stop(self) -> None:
        self._stopping = True
        transport = self._transport
        if transport is not None:
            await self._close_quietly(transport)

    # ------------------------ outbound ------------------------

    async def join(self, room_id: str) -> None:
        """Remember room_id; joins now if connected, otherwise right after the next connect."""
        self.room_id = room_id
        if self.connected:
            await self._send_join(room_id)

    async def send_message(self, message: str, *, sender_name: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {"message": message}
        if sender_name:
            payload["senderName"] = sender_name
        await self._send_frame("send_message", payload)

    async def leave(self) -> None:
        self.room_id = None
        if self.connected:
            await self._send_frame("leave_room", {})

    async def fetch_history(self, room_id: str) -> List[ChatMessage]:
        if not self.api_base_url:
            return []
        resp = await self._get_http().get(
            f"{self.api_base_url}/api/chat/rooms/{room_id}/messages",
            headers=self._http_headers(),
        )
        resp.raise_for_status()
        return [ChatMessage.model_validate(item) for item in resp.json()]

    # ------------------------ inbound ------------------------

    async def _read_loop(self, transport: ChatTransport) -> None:
        while True:
            raw = await transport.recv()
            try:
                frame = json.loads(raw)
            except (TypeError, ValueError):
                vlogger.warning("chat.client dropping non-json frame")
                continue
            try:
                await self._handle_frame(frame)
            except ValidationError as exc:
                vlogger.warning("chat.client dropping invalid frame err=%s", exc)

    async def _handle_frame(self, frame: Dict[str, Any]) -> None:
        kind = frame.get("type") if isinstance(frame, dict) else None

        if kind == "new_message":
            msg = NewMessageFrame.model_validate(frame).payload
            await _notify(self._on_message, msg)
        elif kind == "joined_room":
            room_id = JoinedRoomFrame.model_validate(frame).payload.room_id
            await _notify(self._on_joined, room_id)
            await self._reconcile(room_id)
        elif kind == "error":
            await _notify(self._on_notice, "error", ErrorFrame.model_validate(frame).payload)
        elif kind == "warning":
            await _notify(self._on_notice, "warning", WarningFrame.model_validate(frame).payload)
        else:
            vlogger.debug("chat.client ignoring frame type=%s", kind)

    async def _reconcile(self, room_id: str) -> None:
        try:
            history = await self.fetch_history(room_id)
        except (httpx.HTTPError, ValueError) as exc:
            # ValueError covers a non-json body and rows that fail ChatMessage validation
            vlogger.warning("chat.client history fetch failed room=%s err=%r", room_id, exc)
            return
        await _notify(self._on_history, room_id, history)

    # ------------------------ helpers ------------------------

    def _connect_url(self) -> str:
        if not self.access_token:
            return self.ws_url
        sep = "&" if "?" in self.ws_url else "?"
        return f"{self.ws_url}{sep}{urlencode({'token': self.access_token})}"

    def _http_headers(self) -> Dict[str, str]:
        h = {"Accept": "application/json"}
        if self.access_token:
            h["Authorization"] = f"Bearer {self.access_token}"
        if self.session_id:
            h[self.session_header] = self.session_id
        return h

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(10.0))
        return self._http

    async def _close_http(self) -> None:
        if self._http is not None and self._owns_http:
            try:
                await self._http.aclose()
            finally:
                self._http = None

    async def _send_join(self, room_id: str) -> None:
        payload: Dict[str, Any] = {"roomId": room_id, "userType": self.user_type.value}
        if self.session_id:
            payload["sessionId"] = self.session_id
        if self.display_name:
            payload["displayName"] = self.display_name
        await self._send_frame("join_room", payload)

    async def _send_frame(self, kind: str, payload: Dict[str, Any]) -> None:
        transport = self._transport
        if transport is None:
            raise ChatClientDisconnected("chat connection is down, reconnecting")
        await transport.send(json.dumps({"type": kind, "payload": payload}, ensure_ascii=False))

    @staticmethod
    async def _close_quietly(transport: ChatTransport) -> None:
        try:
            await transport.close()
        except _TRANSPORT_ERRORS as exc:
            vlogger.debug("chat.client close ignored err=%r", exc)


async def _notify(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    """Run an app callback; its failures are logged and never reach the supervisor loop."""
    if callback is None:
        return
    try:
        res = callback(*args)
        if inspect.isawaitable(res):
            await res
    except Exception:
        vlogger.exception("chat.client callback %s failed", getattr(callback, "__name__", callback))
