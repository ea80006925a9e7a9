# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: 客服账号表（登录凭据；聊天中以 admin 身份出现）

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from infrastructures.db.orm.orm_base import Base, TimestampMixin


class StaffORM(TimestampMixin, Base):
    __tablename__ = "chat_staff"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, comment="客服ID")
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, comment="登录名，也是聊天中的显示名")
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False, comment="密码哈希")

    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, comment="停用后 token 立即失效")
    last_login_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, comment="最近登录时间(秒)")

    __table_args__ = (
        Index("ix_staff_enabled", "enabled"),
    )
