# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: ConnectionRegistry：注册 / 身份 / 注销级联清理

from __future__ import annotations

from domains.chat_domain import (
    ANONYMOUS,
    ConnectionIdentity,
    ConnectionPrincipal,
    Joined,
    ParticipantType,
    UNJOINED,
)
from fakes import FakeConnection
from services.chat.connection_registry import ConnectionRegistry
from services.chat.room_router import RoomRouter


def _customer(name: str = "Budi") -> ConnectionIdentity:
    return ConnectionIdentity(
        participant_type=ParticipantType.customer,
        display_name=name,
        session_or_user_id="sess-budi",
    )


def test_register_starts_unjoined_and_anonymous() -> None:
    registry = ConnectionRegistry(RoomRouter())

    t1 = registry.register(FakeConnection())
    t2 = registry.register(FakeConnection())

    assert t1 != t2
    assert len(registry) == 2
    assert registry.state_of(t1) == UNJOINED
    assert registry.principal_of(t1) is ANONYMOUS
    assert registry.identity_of(t1) is None


def test_state_follows_router_membership() -> None:
    router = RoomRouter()
    registry = ConnectionRegistry(router)
    token = registry.register(FakeConnection())

    router.join(token, "R1")

    assert registry.state_of(token) == Joined("R1")


def test_set_identity_overwrites_previous() -> None:
    registry = ConnectionRegistry(RoomRouter())
    token = registry.register(FakeConnection())

    registry.set_identity(token, _customer("Budi"))
    registry.set_identity(token, _customer("Budi S."))

    assert registry.identity_of(token).display_name == "Budi S."


def test_unregister_cascades_to_router() -> None:
    router = RoomRouter()
    registry = ConnectionRegistry(router)
    token = registry.register(FakeConnection())
    router.join(token, "R1")

    record = registry.unregister(token)

    assert record is not None
    assert token not in registry
    assert router.members_of("R1") == set()
    assert router.room_of(token) is None


def test_unknown_token_operations_are_noops() -> None:
    registry = ConnectionRegistry(RoomRouter())

    registry.set_identity("ghost", _customer())
    registry.clear_identity("ghost")

    assert registry.unregister("ghost") is None
    assert registry.connection_of("ghost") is None
    assert registry.identity_of("ghost") is None
    assert registry.principal_of("ghost") is ANONYMOUS
    assert registry.state_of("ghost") == UNJOINED


def test_principal_is_kept_per_connection() -> None:
    registry = ConnectionRegistry(RoomRouter())
    staff = ConnectionPrincipal(user_id=7, username="rina", is_admin=True)

    token = registry.register(FakeConnection(), staff)

    assert registry.principal_of(token) == staff
    assert registry.tokens() == [token]
