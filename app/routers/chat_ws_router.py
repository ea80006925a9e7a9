# -*- coding: utf-8 -*-
# @File: app/routers/chat_ws_router.py
# @Author: yaccii
# @Description: 在线客服实时通道（WebSocket）

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query, WebSocket, status

from domains.chat_domain import ConnectionPrincipal
from domains.error_domain import AppError
from infrastructures.db.orm.orm_base import AsyncSessionFactory
from infrastructures.vconfig import vconfig
from infrastructures.vlogger import bind_request_id, reset_request_id, vlogger
from services.auth_service import AuthService
from services.chat.chat_hub import ChatHub

router = APIRouter(tags=["chat"])


async def _authenticate(token: Optional[str]) -> ConnectionPrincipal:
    async with AsyncSessionFactory() as db:
        return await AuthService().principal_from_token(db, token)


@router.websocket(vconfig.chat_ws_path)
async def chat_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(default=None),
):
    hub: Optional[ChatHub] = getattr(websocket.app.state, "chat_hub", None)
    if hub is None:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    try:
        principal = await _authenticate(token)
    except AppError as exc:
        vlogger.info("chat.ws rejected code=%s", exc.code)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    conn_token = hub.connect(websocket, principal)
    rid = bind_request_id(conn_token)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await hub.dispatch(conn_token, raw)
    finally:
        hub.disconnect(conn_token)
        vlogger.info("chat.ws closed open=%s", len(hub.registry))
        reset_request_id(rid)
