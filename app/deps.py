# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: 路由依赖：请求级数据库会话 / 客服主体 / 聊天访问者 / ChatHub

from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from domains.chat_domain import ChatViewer, ConnectionPrincipal, ParticipantType
from domains.error_domain import AppError
from infrastructures.db.orm.orm_base import AsyncSessionFactory
from infrastructures.vconfig import vconfig
from infrastructures.vlogger import vlogger
from services.auth_service import AuthService
from services.chat.chat_hub import ChatHub

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """One transaction per request: committed after the handler, rolled back if it raised."""
    async with AsyncSessionFactory() as db:
        try:
            yield db
        except Exception as exc:
            await db.rollback()
            if not isinstance(exc, AppError):
                vlogger.error("request transaction rolled back err=%r", exc)
            raise
        else:
            await db.commit()


async def get_principal(
    token: Annotated[str | None, Depends(oauth2_scheme)],
    db: AsyncSession = Depends(get_db),
) -> ConnectionPrincipal:
    # same resolution the websocket applies to ?token=
    return await AuthService().principal_from_token(db, token)


async def get_staff_principal(
    principal: Annotated[ConnectionPrincipal, Depends(get_principal)],
) -> ConnectionPrincipal:
    if not principal.is_admin:
        raise AppError(code="auth.missing_token", message="Staff bearer token required", http_status=401)
    return principal


async def get_chat_viewer(
    request: Request,
    principal: Annotated[ConnectionPrincipal, Depends(get_principal)],
) -> ChatViewer:
    """Staff bearer token wins; otherwise the customer session header identifies the caller."""
    if principal.is_admin:
        return ChatViewer.for_staff(principal)

    session_id = (request.headers.get(vconfig.chat_session_header) or "").strip()
    if not session_id:
        raise AppError(
            code="auth.missing_chat_session",
            message=f"Missing {vconfig.chat_session_header} header or staff token",
            http_status=401,
        )
    return ChatViewer(participant_type=ParticipantType.customer, session_id=session_id)


async def get_staff_viewer(
    principal: Annotated[ConnectionPrincipal, Depends(get_staff_principal)],
) -> ChatViewer:
    return ChatViewer.for_staff(principal)


def get_chat_hub(request: Request) -> ChatHub:
    hub = getattr(request.app.state, "chat_hub", None)
    if hub is None:
        raise AppError(code="chat.unavailable", message="Chat hub is not running", http_status=503)
    return hub
