from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from camrelay.api.services.state import get_broker, get_metrics, get_pipeline

router = APIRouter()

logger = logging.getLogger(__name__)


async def _safe_send(ws: WebSocket, payload: dict[str, Any]) -> None:
    try:
        await ws.send_json(payload)
    except Exception:
        # The peer may have gone away while its frame was in flight.
        logger.debug("Dropping %s: websocket closed", payload.get("type"))


async def _detect_and_reply(ws: WebSocket, msg: dict[str, Any]) -> None:
    frame_id = msg.get("frameId")
    try:
        capture_ts = int(msg.get("captureTs"))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.debug("Ignoring detect-frame without a valid captureTs")
        return
    if frame_id is None:
        return

    result = await get_pipeline().detect(frame_id, capture_ts, msg.get("imageData"))
    if result is None:
        await _safe_send(ws, {"type": "frame-dropped", "frameId": frame_id})
        return
    await _safe_send(ws, {"type": "detection-result", **result.to_payload()})


@router.websocket("/ws/signaling")
async def signaling(ws: WebSocket):
    """One peer connection: signaling relay plus frame detection and metrics."""

    await ws.accept()
    broker = get_broker()
    peer_id = uuid.uuid4().hex
    broker.registry.connect(peer_id, ws)
    in_flight: set[asyncio.Task[None]] = set()

    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                logger.debug("Ignoring binary frame from %s", peer_id)
                continue
            try:
                msg = json.loads(text)
            except ValueError:
                logger.debug("Ignoring non-JSON message from %s", peer_id)
                continue
            if not isinstance(msg, dict):
                continue

            kind = msg.get("type")
            try:
                if kind == "detect-frame":
                    # Detection must not block the signaling loop.
                    task = asyncio.create_task(_detect_and_reply(ws, msg))
                    in_flight.add(task)
                    task.add_done_callback(in_flight.discard)
                elif kind == "get-metrics":
                    await _safe_send(ws, {"type": "metrics-update", **get_metrics().snapshot().to_dict()})
                else:
                    await broker.handle(peer_id, msg)
            except WebSocketDisconnect:
                raise
            except Exception:
                # Keep the session alive even if one message fails.
                logger.exception("Failed to handle %r from %s", kind, peer_id)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Signaling websocket crashed")
    finally:
        for task in list(in_flight):
            task.cancel()
        await broker.disconnect(peer_id)
