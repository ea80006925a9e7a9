# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: ChatRepository：房间排序 / 已读 / 可更新字段 / 消息顺序

from __future__ import annotations

import pytest

from domains.chat_domain import ChatRoomPriority, ChatRoomStatus, ParticipantType
from fakes import seed_room
from infrastructures.db.repository.chat_repository import ChatRepository

repo = ChatRepository()


async def test_new_room_defaults(session_factory) -> None:
    room = await seed_room(session_factory)

    assert room.status == ChatRoomStatus.waiting
    assert room.priority == ChatRoomPriority.normal
    assert room.unread_by_admin is True
    assert room.unread_by_customer is False
    assert room.created_at > 0


async def test_rooms_listed_most_recently_active_first(session_factory) -> None:
    a = await seed_room(session_factory, customer_name="A")
    b = await seed_room(session_factory, customer_name="B")
    c = await seed_room(session_factory, customer_name="C")

    async with session_factory() as db:
        async with db.begin():
            for room, ts in ((a, 100), (b, 300), (c, 200)):
                await repo.touch_room_after_message(
                    db, room.id, sender_type=ParticipantType.customer, last_message_at=ts, preview="p"
                )

    async with session_factory() as db:
        rooms = await repo.list_rooms(db)
        waiting = await repo.list_rooms(db, status="waiting", limit=2)
        closed = await repo.list_rooms(db, status="closed")

    assert [r.customer_name for r in rooms] == ["B", "C", "A"]
    assert [r.customer_name for r in waiting] == ["B", "C"]
    assert closed == []


async def test_touch_unknown_room_reports_false(session_factory) -> None:
    async with session_factory() as db:
        async with db.begin():
            touched = await repo.touch_room_after_message(
                db, "missing", sender_type=ParticipantType.admin, last_message_at=1, preview="p"
            )

    assert touched is False


async def test_mark_read_clears_reader_flag_and_counterpart_messages(session_factory) -> None:
    room = await seed_room(session_factory)

    async with session_factory() as db:
        async with db.begin():
            await repo.create_message(db, room_id=room.id, sender_type=ParticipantType.customer, sender_name="Budi", message="Halo")
            await repo.create_message(db, room_id=room.id, sender_type=ParticipantType.admin, sender_name="rina", message="Ya")

    async with session_factory() as db:
        async with db.begin():
            updated = await repo.mark_read(db, room.id, reader=ParticipantType.admin)

    async with session_factory() as db:
        messages = await repo.list_messages(db, room.id, include_internal=True)

    assert updated.unread_by_admin is False
    assert [(m.sender_type, m.is_read) for m in messages] == [
        (ParticipantType.customer, True),
        (ParticipantType.admin, False),
    ]


async def test_update_room_rejects_unknown_fields(session_factory) -> None:
    room = await seed_room(session_factory)

    async with session_factory() as db:
        with pytest.raises(ValueError):
            await repo.update_room(db, room.id, fields={"customer_session_id": "hijack"})


async def test_messages_in_creation_order_with_internal_filter(session_factory) -> None:
    room = await seed_room(session_factory)

    async with session_factory() as db:
        async with db.begin():
            for i, internal in enumerate((False, True, False)):
                await repo.create_message(
                    db,
                    room_id=room.id,
                    sender_type=ParticipantType.admin,
                    sender_name="rina",
                    message=f"m{i}",
                    is_internal=internal,
                )

    async with session_factory() as db:
        everything = await repo.list_messages(db, room.id, include_internal=True)
        public = await repo.list_messages(db, room.id, include_internal=False)

    assert [m.message for m in everything] == ["m0", "m1", "m2"]
    assert [m.message for m in public] == ["m0", "m2"]
