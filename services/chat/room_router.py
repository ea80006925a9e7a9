# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: Room Membership Router: room -> connection tokens

from __future__ import annotations

from typing import Dict, Optional, Set

from infrastructures.vlogger import vlogger


class RoomRouter:
    """Owns room membership.

    Invariants:
        - a token belongs to at most one room
        - _members and _room_of always describe the same relation
        - empty membership sets are dropped
    Room existence is checked by the caller before join(); the router never
    does I/O so a join/leave completes without yielding to the event loop.
    """

    def __init__(self) -> None:
        self._members: Dict[str, Set[str]] = {}
        self._room_of: Dict[str, str] = {}

    def join(self, token: str, room_id: str) -> Optional[str]:
        """Move token into room_id. Returns the room it was moved out of, if any."""
        previous = self._room_of.get(token)
        if previous == room_id:
            return None
        if previous is not None:
            self._discard(token, previous)

        self._members.setdefault(room_id, set()).add(token)
        self._room_of[token] = room_id
        vlogger.debug("chat.router join token=%s room=%s previous=%s", token, room_id, previous)
        return previous

    def leave(self, token: str) -> Optional[str]:
        room_id = self._room_of.pop(token, None)
        if room_id is not None:
            self._discard(token, room_id)
            vlogger.debug("chat.router leave token=%s room=%s", token, room_id)
        return room_id

    def members_of(self, room_id: str) -> Set[str]:
        # copy: callers iterate while pushes may unregister dead sockets
        return set(self._members.get(room_id, ()))

    def room_of(self, token: str) -> Optional[str]:
        return self._room_of.get(token)

    def rooms(self) -> Set[str]:
        return set(self._members)

    def _discard(self, token: str, room_id: str) -> None:
        members = self._members.get(room_id)
        if members is None:
            return
        members.discard(token)
        if not members:
            del self._members[room_id]
