# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: 在线客服聊天：房间 / 消息

from __future__ import annotations

import uuid
from typing import List, Optional

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from infrastructures.db.orm.orm_base import Base, TimestampMixin

# 房间状态：waiting / active / resolved / closed（不做物理删除，closed 即归档）


class ChatRoomORM(TimestampMixin, Base):
    __tablename__ = "chat_room"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    customer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="注册客户ID")
    customer_session_id: Mapped[str] = mapped_column(String(128), nullable=False, comment="匿名客户会话ID")
    customer_name: Mapped[str] = mapped_column(String(128), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    product_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="咨询的商品")
    subject: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="waiting")
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="normal")
    assigned_to: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("chat_staff.user_id"),
        nullable=True,
        comment="负责的客服",
    )

    last_message_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    last_message_preview: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    unread_by_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    unread_by_customer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    messages: Mapped[List["ChatMessageORM"]] = relationship(
        "ChatMessageORM",
        back_populates="room",
        order_by="ChatMessageORM.id",
    )

    __table_args__ = (
        Index("ix_cr_session", "customer_session_id"),
        Index("ix_cr_status", "status"),
        Index("ix_cr_last_msg", "last_message_at"),
    )


class ChatMessageORM(Base):
    __tablename__ = "chat_message"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    room_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("chat_room.id"),
        nullable=False,
    )

    sender_type: Mapped[str] = mapped_column(String(16), nullable=False, comment="customer/admin")
    sender_name: Mapped[str] = mapped_column(String(128), nullable=False)
    sender_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("chat_staff.user_id"),
        nullable=True,
    )

    message: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(16), nullable=False, default="text")
    attachment_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, comment="客服内部备注")

    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, comment="创建时间(秒)")

    room: Mapped[ChatRoomORM] = relationship("ChatRoomORM", back_populates="messages")

    __table_args__ = (
        Index("ix_cm_room_created", "room_id", "created_at", "id"),
    )
