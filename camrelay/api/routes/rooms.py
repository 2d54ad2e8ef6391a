"""Room inspection endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from camrelay.api.services.state import get_broker
from camrelay.core.signaling.broker import RoomBroker

router = APIRouter(prefix="/api/rooms")


@router.get("")
def list_rooms(broker: RoomBroker = Depends(get_broker)) -> dict[str, Any]:
    return {
        "rooms": broker.all_rooms(),
        "roomCount": broker.room_count,
        "peerCount": broker.peer_count,
    }


@router.get("/{room_id}")
def room_info(room_id: str, broker: RoomBroker = Depends(get_broker)) -> dict[str, Any]:
    info = broker.room_info(room_id)
    if info is None:
        raise HTTPException(status_code=404, detail="Unknown room")
    return info
