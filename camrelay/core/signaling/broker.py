"""Room broker: groups peers into rooms and relays signaling between them.

Membership changes are applied synchronously (no suspension point between
reading and writing a room), so on a single event loop they never interleave.
Notifications are fanned out afterwards on a best-effort basis.
"""

from __future__ import annotations

import logging
from typing import Any

from camrelay.core.signaling.messages import JoinRoom, LeaveRoom, Register, Relay, SignalMessage, parse_message
from camrelay.core.signaling.registry import SessionRegistry
from camrelay.core.types import Peer, Room

logger = logging.getLogger(__name__)


class RoomBroker:
    """Routes signaling messages between peers of a `SessionRegistry`."""

    def __init__(self, registry: SessionRegistry, require_same_room: bool = False) -> None:
        self.registry = registry
        self.require_same_room = require_same_room
        self._rooms: dict[str, Room] = {}

    async def handle(self, peer_id: str, message: SignalMessage | dict[str, Any]) -> None:
        """Dispatch one inbound message from `peer_id`.

        Raw dicts are parsed first; malformed input is ignored.
        """

        if isinstance(message, dict):
            parsed = parse_message(message)
            if parsed is None:
                logger.debug("Ignoring malformed message from %s: %r", peer_id, message.get("type"))
                return
            message = parsed

        match message:
            case Register(role=role):
                peer = self.registry.register(peer_id, role)
                if peer is not None:
                    await self._send(peer, "registered", peer.describe())
            case JoinRoom(room_id=room_id):
                members = await self.join(peer_id, room_id)
                peer = self.registry.lookup(peer_id)
                if members is not None and peer is not None:
                    await self._send(peer, "room-joined", {"roomId": room_id, "members": members})
            case LeaveRoom(room_id=room_id):
                peer = self.registry.lookup(peer_id)
                target_room = room_id or (peer.room_id if peer else None)
                if target_room:
                    await self.leave(peer_id, target_room)
            case Relay(kind=kind, target_id=target_id, payload=payload):
                await self.relay_targeted(peer_id, target_id, kind, payload)

    async def join(self, peer_id: str, room_id: str) -> list[dict[str, str]] | None:
        """Move a peer into `room_id`.

        Returns the other members of the room, or `None` when the peer is unknown.
        """

        peer = self.registry.lookup(peer_id)
        if peer is None:
            return None

        left_room: str | None = None
        left_remaining: list[str] = []
        if peer.room_id is not None and peer.room_id != room_id:
            left_room = peer.room_id
            left_remaining = self._detach(peer_id, left_room)
            peer.room_id = None

        rejoin = peer.room_id == room_id
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(room_id=room_id)
            self._rooms[room_id] = room
            logger.info("Room %s created", room_id)
        room.members.add(peer_id)
        peer.room_id = room_id
        others = [self._describe(member) for member in room.members if member != peer_id]
        logger.info("Peer %s (%s) joined room %s", peer_id, peer.role.value, room_id)

        if left_room is not None:
            await self._broadcast(left_remaining, "peer-left", {"peerId": peer_id})
        if not rejoin:
            await self._broadcast(
                [m for m in room.members if m != peer_id], "peer-joined", peer.describe()
            )
        return others

    async def leave(self, peer_id: str, room_id: str) -> None:
        """Remove a peer from a room, deleting the room once it is empty."""

        room = self._rooms.get(room_id)
        if room is None or peer_id not in room.members:
            return
        remaining = self._detach(peer_id, room_id)
        peer = self.registry.lookup(peer_id)
        if peer is not None and peer.room_id == room_id:
            peer.room_id = None
        await self._broadcast(remaining, "peer-left", {"peerId": peer_id})

    async def disconnect(self, peer_id: str) -> None:
        """Drop a peer from the registry and clean up its room."""

        room_id = self.registry.disconnect(peer_id)
        if room_id is not None:
            await self.leave(peer_id, room_id)

    async def relay_targeted(self, sender_id: str, target_id: str, kind: str, payload: Any) -> bool:
        """Forward `payload` to `target_id` as a `kind` event.

        Returns False (and sends nothing) when the sender has no room, the
        target is unknown, or same-room isolation is enabled and violated.
        """

        sender = self.registry.lookup(sender_id)
        if sender is None or sender.room_id is None:
            logger.debug("Dropping %s from %s: sender not in a room", kind, sender_id)
            return False
        target = self.registry.lookup(target_id)
        if target is None:
            logger.debug("Dropping %s from %s: unknown target %s", kind, sender_id, target_id)
            return False
        if self.require_same_room and target.room_id != sender.room_id:
            logger.debug("Dropping %s from %s: target %s in another room", kind, sender_id, target_id)
            return False
        logger.debug("Forwarding %s from %s to %s", kind, sender_id, target_id)
        return await self._send(target, kind, {"fromId": sender_id, "payload": payload})

    def room_info(self, room_id: str) -> dict[str, Any] | None:
        room = self._rooms.get(room_id)
        if room is None:
            return None
        return {
            "roomId": room.room_id,
            "members": [self._describe(member) for member in sorted(room.members)],
            "createdAt": room.created_at,
        }

    def all_rooms(self) -> list[dict[str, Any]]:
        return [info for room_id in list(self._rooms) if (info := self.room_info(room_id))]

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    @property
    def peer_count(self) -> int:
        return len(self.registry)

    def clear(self) -> None:
        """Forget every room and peer (shutdown)."""

        self._rooms.clear()
        self.registry.clear()

    def _detach(self, peer_id: str, room_id: str) -> list[str]:
        """Remove a member and return who is left; deletes the room when empty."""

        room = self._rooms.get(room_id)
        if room is None:
            return []
        room.members.discard(peer_id)
        if not room.members:
            del self._rooms[room_id]
            logger.info("Room %s removed (empty)", room_id)
            return []
        return list(room.members)

    def _describe(self, peer_id: str) -> dict[str, str]:
        peer = self.registry.lookup(peer_id)
        if peer is None:
            return {"peerId": peer_id, "role": "unknown"}
        return peer.describe()

    async def _broadcast(self, peer_ids: list[str], event: str, data: dict[str, Any]) -> None:
        for member_id in peer_ids:
            peer = self.registry.lookup(member_id)
            if peer is not None:
                await self._send(peer, event, data)

    async def _send(self, peer: Peer, event: str, data: dict[str, Any]) -> bool:
        if peer.connection is None:
            return False
        try:
            await peer.connection.send_json({"type": event, **data})
        except Exception:
            # One broken socket must not stop the fan-out to the others.
            logger.exception("Failed to send %s to %s", event, peer.peer_id)
            return False
        return True
