# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: 客服账号（聊天中的 admin 一方）

from __future__ import annotations

from typing import Optional

from domains.chat_domain import ConnectionPrincipal, ParticipantType
from domains.domain_base import DomainModel, WireModel


class StaffAccount(DomainModel):
    user_id: int
    username: str
    enabled: bool = True
    last_login_at: Optional[int] = None
    created_at: int

    def principal(self) -> ConnectionPrincipal:
        return ConnectionPrincipal(user_id=self.user_id, username=self.username, is_admin=True)


class StaffProfile(WireModel):
    """What the staff console learns about the signed-in agent."""

    user_id: int
    username: str
    participant_type: ParticipantType = ParticipantType.admin
