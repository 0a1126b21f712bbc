"""Real-time seat event subscriptions over WebSocket."""

import json
import logging

import pydantic
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from ..core.dependencies import get_seat_events
from ..schemas.events import ClientMessage
from ..services.seat_events import SeatEventBroadcaster, topic_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/realtime", tags=["realtime"])


async def _handle_message(
    websocket: WebSocket,
    events: SeatEventBroadcaster,
    message: ClientMessage,
    default_schedule_id: str,
    session_id: str | None
) -> None:
    """Apply one client message and acknowledge it."""
    if message.type == "ping":
        await websocket.send_json({"type": "pong"})
        return

    schedule_id = message.schedule_id or default_schedule_id
    if message.type == "join-schedule":
        joined = events.join(websocket, schedule_id, session_id)
        await websocket.send_json({
            "type": "joined-schedule",
            "schedule_id": schedule_id,
            "topic": topic_for(schedule_id),
            "already_joined": not joined,
        })
    else:
        left = events.leave(websocket, schedule_id)
        await websocket.send_json({
            "type": "left-schedule",
            "schedule_id": schedule_id,
            "topic": topic_for(schedule_id),
            "was_joined": left,
        })


@router.websocket("/schedules/{schedule_id}")
async def schedule_events(
    websocket: WebSocket,
    schedule_id: str,
    session_id: str | None = None,
    events: SeatEventBroadcaster = Depends(get_seat_events)
) -> None:
    """
    Stream seat events of a schedule to a browser session.

    The socket joins the schedule's topic on connect. Closing the socket
    leaves every topic but never releases the session's holds.
    """
    await websocket.accept()
    events.join(websocket, schedule_id, session_id)
    await websocket.send_json({
        "type": "joined-schedule",
        "schedule_id": schedule_id,
        "topic": topic_for(schedule_id),
        "already_joined": False,
    })

    logger.info(
        "Real-time subscriber connected",
        extra={"schedule_id": schedule_id, "session_id": session_id}
    )

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = ClientMessage.model_validate(json.loads(raw))
            except (json.JSONDecodeError, pydantic.ValidationError) as e:
                await websocket.send_json({"type": "error", "message": f"Invalid message: {e}"})
                continue

            await _handle_message(websocket, events, message, schedule_id, session_id)

    except WebSocketDisconnect:
        logger.info(
            "Real-time subscriber disconnected",
            extra={"schedule_id": schedule_id, "session_id": session_id}
        )

    finally:
        events.disconnect(websocket)
