# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: 客服登录 / 当前客服

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_staff_principal
from domains.chat_domain import ConnectionPrincipal
from domains.staff_domain import StaffProfile
from services.auth_service import AuthService

router = APIRouter(prefix="/api/auth", tags=["auth"])


class TokenResponse(BaseModel):
    # OAuth2 field names, not camelCase
    access_token: str
    token_type: str = "bearer"


@router.post("/login", response_model=TokenResponse)
async def login(
    form: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    token = await AuthService().login(db, form.username, form.password)
    return TokenResponse(access_token=token)


@router.get("/me", response_model=StaffProfile)
async def me(
    principal: Annotated[ConnectionPrincipal, Depends(get_staff_principal)],
) -> StaffProfile:
    # the identity this token gets when it joins a room over the websocket
    return StaffProfile(user_id=principal.user_id, username=principal.username)
