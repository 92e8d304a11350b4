from __future__ import annotations

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from ..hub import Switchboard
from ..logging_config import get_logger
from ..state import get_switchboard

logger = get_logger(__name__)

router = APIRouter(prefix="", tags=["ws"])


@router.websocket("/ws")
async def signaling_endpoint(ws: WebSocket, switchboard: Switchboard = Depends(get_switchboard)):
    await ws.accept()
    participant_id = switchboard.connect(ws)
    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            data = message.get("text")
            if data is None:
                # Binary frames go through the same validation and are dropped if invalid.
                data = message.get("bytes") or b""
            try:
                await switchboard.receive(participant_id, data)
            except WebSocketDisconnect:
                raise
            except Exception:
                # Keep the connection; one bad message must not end the session.
                logger.exception(f"Error handling message from {participant_id}")
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception(f"WebSocket error for {participant_id}")
    finally:
        await switchboard.disconnect(participant_id)
