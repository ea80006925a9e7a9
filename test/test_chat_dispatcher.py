# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: ChatHub / MessageDispatcher：状态机、错误分类、扇出、顺序、内部备注、持久化失败

from __future__ import annotations

import asyncio
import json

from sqlalchemy.exc import SQLAlchemyError

from domains.chat_domain import ConnectionPrincipal, Joined, ParticipantType, UNJOINED
from fakes import FakeConnection, seed_room
from services.chat.chat_hub import ChatHub
from services.chat.room_store import RoomStore

STAFF = ConnectionPrincipal(user_id=1, username="rina", is_admin=True)


def _join(room_id: str, *, session_id: str | None = None, user_type: str = "customer", **extra) -> str:
    payload = {"roomId": room_id, "userType": user_type, **extra}
    if session_id is not None:
        payload["sessionId"] = session_id
    return json.dumps({"type": "join_room", "payload": payload})


def _send(message: str, sender_name: str | None = None) -> str:
    payload = {"message": message}
    if sender_name:
        payload["senderName"] = sender_name
    return json.dumps({"type": "send_message", "payload": payload})


async def _customer_in_room(hub: ChatHub, room) -> tuple[str, FakeConnection]:
    conn = FakeConnection()
    token = hub.connect(conn)
    await hub.dispatch(token, _join(room.id, session_id=room.customer_session_id))
    return token, conn


async def _staff_in_room(hub: ChatHub, room) -> tuple[str, FakeConnection]:
    conn = FakeConnection()
    token = hub.connect(conn, STAFF)
    await hub.dispatch(token, _join(room.id, user_type="admin"))
    return token, conn


async def test_join_acknowledges_requester_only(hub: ChatHub, session_factory) -> None:
    room = await seed_room(session_factory)
    other = FakeConnection()
    hub.connect(other)

    token, conn = await _customer_in_room(hub, room)

    assert conn.frames == [{"type": "joined_room", "payload": {"roomId": room.id, "message": "Successfully joined room"}}]
    assert other.frames == []
    assert hub.registry.state_of(token) == Joined(room.id)
    assert hub.registry.identity_of(token).display_name == "Budi"


async def test_join_unknown_room_never_touches_membership(hub: ChatHub, session_factory) -> None:
    room = await seed_room(session_factory)
    token, conn = await _customer_in_room(hub, room)

    await hub.dispatch(token, _join("no-such-room", session_id="sess-budi"))

    assert conn.last()["type"] == "error"
    assert conn.last()["payload"]["code"] == "ROOM_NOT_FOUND"
    assert conn.last()["payload"]["message"] == "room not found"
    assert hub.router.members_of(room.id) == {token}
    assert hub.router.members_of("no-such-room") == set()
    assert hub.registry.state_of(token) == Joined(room.id)


async def test_join_unknown_room_from_unjoined(hub: ChatHub) -> None:
    conn = FakeConnection()
    token = hub.connect(conn)

    await hub.dispatch(token, _join("no-such-room", session_id="x"))

    assert conn.last()["payload"]["code"] == "ROOM_NOT_FOUND"
    assert hub.registry.state_of(token) == UNJOINED
    assert hub.router.rooms() == set()


async def test_join_overlong_room_id_is_not_found(hub: ChatHub) -> None:
    conn = FakeConnection()
    token = hub.connect(conn)

    await hub.dispatch(token, _join("x" * 40, session_id="x"))

    assert conn.last()["payload"]["code"] == "ROOM_NOT_FOUND"
    assert hub.registry.state_of(token) == UNJOINED


async def test_customer_with_wrong_session_is_denied(hub: ChatHub, session_factory) -> None:
    room = await seed_room(session_factory)
    conn = FakeConnection()
    token = hub.connect(conn)

    await hub.dispatch(token, _join(room.id, session_id="someone-else"))

    assert conn.last()["payload"]["code"] == "ROOM_ACCESS_DENIED"
    assert hub.router.members_of(room.id) == set()


async def test_anonymous_admin_claim_is_downgraded(hub: ChatHub, session_factory) -> None:
    room = await seed_room(session_factory)
    conn = FakeConnection()
    token = hub.connect(conn)

    await hub.dispatch(token, _join(room.id, session_id=room.customer_session_id, user_type="admin"))
    await hub.dispatch(token, _send("saya admin"))

    assert hub.registry.identity_of(token).participant_type == ParticipantType.customer
    assert conn.last()["type"] == "new_message"
    assert conn.last()["payload"]["senderType"] == "customer"


async def test_send_while_unjoined_persists_nothing(hub: ChatHub, store: RoomStore, session_factory) -> None:
    room = await seed_room(session_factory)
    conn = FakeConnection()
    token = hub.connect(conn)

    await hub.dispatch(token, _send("Halo"))

    assert conn.frames[-1]["type"] == "error"
    assert conn.frames[-1]["payload"]["code"] == "NOT_JOINED"
    assert await store.list_messages(room.id, include_internal=True) == []


async def test_blank_message_is_rejected(hub: ChatHub, store: RoomStore, session_factory) -> None:
    room = await seed_room(session_factory)
    token, conn = await _customer_in_room(hub, room)

    await hub.dispatch(token, _send("   \n\t "))

    assert conn.last()["payload"]["code"] == "EMPTY_MESSAGE"
    assert await store.list_messages(room.id, include_internal=True) == []


async def test_malformed_frame_keeps_connection_usable(hub: ChatHub, session_factory) -> None:
    room = await seed_room(session_factory)
    token, conn = await _customer_in_room(hub, room)

    await hub.dispatch(token, '{"type": "send_message", "payload": {}}')
    assert conn.last()["payload"]["code"] == "MALFORMED_FRAME"

    await hub.dispatch(token, _send("masih di sini"))
    assert conn.last()["type"] == "new_message"


async def test_fan_out_reaches_room_members_only(hub: ChatHub, store: RoomStore, session_factory) -> None:
    room = await seed_room(session_factory)
    other_room = await seed_room(session_factory, customer_name="Sari", session_id="sess-sari")
    cust_token, cust = await _customer_in_room(hub, room)
    _, staff = await _staff_in_room(hub, room)
    _, outsider = await _customer_in_room(hub, other_room)
    idle = FakeConnection()
    hub.connect(idle, STAFF)

    await hub.dispatch(cust_token, _send("Halo, gitar ini masih ada?"))

    for conn in (cust, staff):
        msg = conn.of_type("new_message")[-1]["payload"]
        assert msg["message"] == "Halo, gitar ini masih ada?"
        assert msg["senderType"] == "customer"
        assert msg["senderName"] == "Budi"
    assert outsider.of_type("new_message") == []
    assert idle.frames == []

    fresh = await store.get_room(room.id)
    assert fresh.unread_by_admin is True
    assert fresh.last_message_preview == "Halo, gita"
    assert fresh.last_message_at is not None


async def test_staff_reply_sets_customer_unread(hub: ChatHub, store: RoomStore, session_factory) -> None:
    room = await seed_room(session_factory)
    cust_token, cust = await _customer_in_room(hub, room)
    staff_token, staff = await _staff_in_room(hub, room)

    await hub.dispatch(cust_token, _send("Halo"))
    await hub.dispatch(staff_token, _send("Masih ada, stok 3"))

    reply = cust.of_type("new_message")[-1]["payload"]
    assert reply["senderType"] == "admin"
    assert reply["senderName"] == "rina"
    assert reply["senderId"] == 1
    fresh = await store.get_room(room.id)
    assert fresh.unread_by_customer is True
    assert fresh.unread_by_admin is True


async def test_joining_b_removes_from_a(hub: ChatHub, session_factory) -> None:
    a = await seed_room(session_factory)
    b = await seed_room(session_factory, customer_name="Sari")
    token, _ = await _staff_in_room(hub, a)

    await hub.dispatch(token, _join(b.id, user_type="admin"))

    assert token not in hub.router.members_of(a.id)
    assert hub.router.members_of(b.id) == {token}


async def test_leave_and_disconnect_clear_membership(hub: ChatHub, session_factory) -> None:
    room = await seed_room(session_factory)
    t1, c1 = await _customer_in_room(hub, room)
    t2, _ = await _staff_in_room(hub, room)

    await hub.dispatch(t1, '{"type": "leave_room", "payload": {}}')
    hub.disconnect(t2)
    hub.disconnect(t2)

    assert hub.router.members_of(room.id) == set()
    assert hub.registry.state_of(t1) == UNJOINED
    assert hub.registry.identity_of(t1) is None
    assert t2 not in hub.registry

    await hub.dispatch(t1, _send("halo?"))
    assert c1.last()["payload"]["code"] == "NOT_JOINED"


async def test_internal_notes_skip_customers(hub: ChatHub, store: RoomStore, session_factory) -> None:
    room = await seed_room(session_factory)
    _, cust = await _customer_in_room(hub, room)
    _, staff = await _staff_in_room(hub, room)
    before = await store.get_room(room.id)

    result = await hub.post_message(
        room.id,
        sender_type=ParticipantType.admin,
        sender_name="rina",
        sender_id=1,
        body="pelanggan VIP",
        is_internal=True,
    )

    assert result.message.is_internal is True
    assert staff.of_type("new_message")[-1]["payload"]["isInternal"] is True
    assert cust.of_type("new_message") == []
    after = await store.get_room(room.id)
    assert after.last_message_preview == before.last_message_preview
    assert after.unread_by_customer is False


async def test_members_observe_creation_order(hub: ChatHub, session_factory) -> None:
    room = await seed_room(session_factory)
    _, cust = await _customer_in_room(hub, room)
    _, staff = await _staff_in_room(hub, room)

    await asyncio.gather(
        *(
            hub.post_message(
                room.id,
                sender_type=ParticipantType.customer if i % 2 else ParticipantType.admin,
                sender_name="x",
                body=f"m{i}",
            )
            for i in range(8)
        )
    )

    for conn in (cust, staff):
        ids = [f["payload"]["id"] for f in conn.of_type("new_message")]
        assert len(ids) == 8
        assert ids == sorted(ids)


async def test_dead_connection_is_unregistered_during_fan_out(hub: ChatHub, session_factory) -> None:
    room = await seed_room(session_factory)
    cust_token, cust = await _customer_in_room(hub, room)
    staff_token, staff = await _staff_in_room(hub, room)
    staff.fail = True

    await hub.dispatch(cust_token, _send("Halo"))

    assert cust.last()["type"] == "new_message"
    assert staff_token not in hub.registry
    assert hub.router.members_of(room.id) == {cust_token}


class _GatedStore(RoomStore):
    """Parks one kind of store call until release is set."""

    def __init__(self, session_factory, gate: str) -> None:
        super().__init__(session_factory)
        self.gate = gate
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def _hold(self, name: str) -> None:
        if name == self.gate:
            self.entered.set()
            await self.release.wait()

    async def get_room(self, room_id):
        await self._hold("get_room")
        return await super().get_room(room_id)

    async def create_message(self, **kwargs):
        await self._hold("create_message")
        return await super().create_message(**kwargs)


async def test_fan_out_uses_membership_after_the_write(session_factory) -> None:
    store = _GatedStore(session_factory, "create_message")
    hub = ChatHub(store)
    room = await seed_room(session_factory)
    cust_token, cust = await _customer_in_room(hub, room)
    leaver_token, leaver = await _staff_in_room(hub, room)

    sending = asyncio.create_task(hub.dispatch(cust_token, _send("Halo")))
    await asyncio.wait_for(store.entered.wait(), 1.0)

    _, late = await _staff_in_room(hub, room)
    hub.disconnect(leaver_token)
    store.release.set()
    await asyncio.wait_for(sending, 1.0)

    assert late.of_type("new_message")[-1]["payload"]["message"] == "Halo"
    assert cust.of_type("new_message")[-1]["payload"]["message"] == "Halo"
    assert leaver.of_type("new_message") == []


async def test_disconnect_during_join_lookup_leaves_no_membership(session_factory) -> None:
    store = _GatedStore(session_factory, "get_room")
    hub = ChatHub(store)
    room = await seed_room(session_factory)
    conn = FakeConnection()
    token = hub.connect(conn)

    joining = asyncio.create_task(hub.dispatch(token, _join(room.id, session_id=room.customer_session_id)))
    await asyncio.wait_for(store.entered.wait(), 1.0)
    hub.disconnect(token)
    store.release.set()
    await asyncio.wait_for(joining, 1.0)

    assert token not in hub.registry
    assert hub.router.members_of(room.id) == set()
    assert hub.router.rooms() == set()
    assert conn.frames == []


class _InsertFailingStore(RoomStore):
    async def create_message(self, **kwargs):
        raise SQLAlchemyError("disk full")


class _MetadataFailingStore(RoomStore):
    async def touch_room_after_message(self, room_id, **kwargs):
        raise SQLAlchemyError("lock wait timeout")


async def test_insert_failure_aborts_fan_out(session_factory) -> None:
    hub = ChatHub(_InsertFailingStore(session_factory))
    room = await seed_room(session_factory)
    cust_token, cust = await _customer_in_room(hub, room)
    _, staff = await _staff_in_room(hub, room)

    await hub.dispatch(cust_token, _send("Halo"))

    assert cust.last()["type"] == "error"
    assert cust.last()["payload"]["code"] == "PERSISTENCE_FAILURE"
    assert cust.of_type("new_message") == []
    assert staff.of_type("new_message") == []
    assert staff.of_type("error") == []


async def test_metadata_failure_still_fans_out_with_warning(session_factory) -> None:
    hub = ChatHub(_MetadataFailingStore(session_factory))
    room = await seed_room(session_factory)
    cust_token, cust = await _customer_in_room(hub, room)
    _, staff = await _staff_in_room(hub, room)

    await hub.dispatch(cust_token, _send("Halo"))

    assert cust.of_type("new_message")[-1]["payload"]["message"] == "Halo"
    assert staff.of_type("new_message")[-1]["payload"]["message"] == "Halo"
    warning = cust.last()
    assert warning["type"] == "warning"
    assert warning["payload"]["code"] == "ROOM_METADATA_STALE"
    assert staff.of_type("warning") == []


async def test_presence_and_close(hub: ChatHub, session_factory) -> None:
    room = await seed_room(session_factory)
    _, cust = await _customer_in_room(hub, room)
    _, staff = await _staff_in_room(hub, room)

    people = hub.presence(room.id)
    assert [(p.participant_type.value, p.display_name) for p in people] == [("admin", "rina"), ("customer", "Budi")]

    await hub.close()

    assert cust.closed_with == 1001
    assert staff.closed_with == 1001
    assert len(hub.registry) == 0
    assert hub.router.rooms() == set()
