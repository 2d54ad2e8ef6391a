"""Signaling message variants.

Inbound client messages are JSON objects tagged by `type`. `parse_message`
turns them into one of the frozen dataclasses below, or `None` when the input
is malformed; the broker matches on the resulting variant.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from camrelay.core.types import PeerRole

RELAY_KINDS = ("offer", "answer", "ice-candidate", "data-channel-relay")


@dataclass(frozen=True)
class Register:
    role: PeerRole


@dataclass(frozen=True)
class JoinRoom:
    room_id: str


@dataclass(frozen=True)
class LeaveRoom:
    room_id: str | None = None


@dataclass(frozen=True)
class Relay:
    """Targeted message forwarded verbatim to `target_id`."""

    kind: str
    target_id: str
    payload: Any


SignalMessage = Register | JoinRoom | LeaveRoom | Relay


def _room_id(data: dict[str, Any]) -> str | None:
    room_id = data.get("roomId")
    if room_id is None or isinstance(room_id, (dict, list)):
        return None
    room_id = str(room_id)
    return room_id or None


def parse_message(data: Any) -> SignalMessage | None:
    """Parse a raw client message into a signaling variant.

    Returns `None` for anything that is not a well-formed signaling message
    (non-dict input, unknown `type`, missing `roomId` or `targetId`).
    """

    if not isinstance(data, dict):
        return None
    kind = data.get("type")
    if kind == "register":
        return Register(role=PeerRole.parse(data.get("role")))
    if kind == "join-room":
        room_id = _room_id(data)
        return JoinRoom(room_id=room_id) if room_id else None
    if kind == "leave-room":
        return LeaveRoom(room_id=_room_id(data))
    if kind in RELAY_KINDS:
        target_id = data.get("targetId")
        if not isinstance(target_id, str) or not target_id:
            return None
        return Relay(kind=kind, target_id=target_id, payload=data.get("payload"))
    return None
