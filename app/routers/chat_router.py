# -*- coding: utf-8 -*-
# @File: app/routers/chat_router.py
# @Author: yaccii
# @Description: 在线客服 HTTP API（房间 / 历史消息 / 非实时发送 / 内部备注）

from __future__ import annotations

from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_chat_hub, get_chat_viewer, get_db, get_staff_viewer
from domains.chat_domain import (
    ChatMessage,
    ChatRoom,
    ChatRoomCreate,
    ChatRoomStatus,
    ChatRoomUpdate,
    ChatViewer,
    ParticipantPresence,
)
from domains.domain_base import WireModel
from services.chat.chat_hub import ChatHub
from services.chat.chat_room_service import ChatRoomService

router = APIRouter(prefix="/api/chat", tags=["chat"])

_service = ChatRoomService()


# ===================== Schemas =====================

class ChatSendRequest(WireModel):
    message: str = Field(..., description="消息正文")
    sender_name: Optional[str] = Field(default=None, max_length=128, description="显示名，缺省取房间客户名/客服用户名")


class ChatNoteRequest(WireModel):
    message: str = Field(..., description="内部备注正文（客户不可见）")


# ===================== Room APIs =====================

@router.post(
    "/rooms",
    response_model=ChatRoom,
    status_code=status.HTTP_201_CREATED,
    summary="创建客服会话房间",
)
async def create_room(
    body: ChatRoomCreate,
    db: AsyncSession = Depends(get_db),
):
    return await _service.create_room(db, body)


@router.get(
    "/rooms",
    response_model=List[ChatRoom],
    summary="房间列表（客服，最近活跃在前）",
)
async def list_rooms(
    _staff: Annotated[ChatViewer, Depends(get_staff_viewer)],
    room_status: Optional[ChatRoomStatus] = Query(default=None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await _service.list_rooms(db, status=room_status, limit=limit, offset=offset)


@router.get(
    "/rooms/{room_id}",
    response_model=ChatRoom,
    summary="房间详情",
)
async def get_room(
    room_id: str,
    viewer: Annotated[ChatViewer, Depends(get_chat_viewer)],
    db: AsyncSession = Depends(get_db),
):
    return await _service.get_room_for(db, room_id, viewer)


@router.patch(
    "/rooms/{room_id}",
    response_model=ChatRoom,
    summary="更新房间状态 / 优先级 / 负责人（客服）",
)
async def update_room(
    room_id: str,
    body: ChatRoomUpdate,
    staff: Annotated[ChatViewer, Depends(get_staff_viewer)],
    db: AsyncSession = Depends(get_db),
):
    return await _service.update_room(db, room_id, body, actor_id=int(staff.user_id or 0))


@router.post(
    "/rooms/{room_id}/read",
    response_model=ChatRoom,
    summary="标记已读",
)
async def mark_read(
    room_id: str,
    viewer: Annotated[ChatViewer, Depends(get_chat_viewer)],
    db: AsyncSession = Depends(get_db),
):
    return await _service.mark_read(db, room_id, viewer)


@router.get(
    "/rooms/{room_id}/participants",
    response_model=List[ParticipantPresence],
    summary="当前在线成员（客服）",
)
async def list_participants(
    room_id: str,
    staff: Annotated[ChatViewer, Depends(get_staff_viewer)],
    hub: Annotated[ChatHub, Depends(get_chat_hub)],
    db: AsyncSession = Depends(get_db),
):
    await _service.get_room_for(db, room_id, staff)
    return hub.presence(room_id)


# ===================== Message APIs =====================

@router.get(
    "/rooms/{room_id}/messages",
    response_model=List[ChatMessage],
    summary="历史消息（按创建顺序）",
)
async def list_messages(
    room_id: str,
    viewer: Annotated[ChatViewer, Depends(get_chat_viewer)],
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await _service.list_messages(db, room_id, viewer, limit=limit, offset=offset)


@router.post(
    "/rooms/{room_id}/messages",
    response_model=ChatMessage,
    status_code=status.HTTP_201_CREATED,
    summary="非实时发送消息（同样推送给房间在线成员）",
)
async def send_message(
    room_id: str,
    body: ChatSendRequest,
    viewer: Annotated[ChatViewer, Depends(get_chat_viewer)],
    hub: Annotated[ChatHub, Depends(get_chat_hub)],
    db: AsyncSession = Depends(get_db),
):
    return await _service.send_message(
        db,
        hub,
        room_id,
        viewer,
        message=body.message,
        sender_name=body.sender_name,
    )


@router.post(
    "/rooms/{room_id}/notes",
    response_model=ChatMessage,
    status_code=status.HTTP_201_CREATED,
    summary="客服内部备注（仅推送给客服）",
)
async def add_note(
    room_id: str,
    body: ChatNoteRequest,
    staff: Annotated[ChatViewer, Depends(get_staff_viewer)],
    hub: Annotated[ChatHub, Depends(get_chat_hub)],
    db: AsyncSession = Depends(get_db),
):
    return await _service.add_internal_note(db, hub, room_id, staff, message=body.message)
