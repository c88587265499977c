"""Realtime router providing the WebSocket endpoint and presence HTTP routes.

This module provides:
    - WebSocket /ws: presence, private messaging, typing indicators
    - GET /api/presence/online: snapshot of online user ids
    - GET /api/presence/{user_id}: whether one user is online
    - POST /api/announcements: broadcast an announcement to every connection

Protocol Flow:
    1. Client connects -> server accepts and assigns a connection id
    2. Client sends: {event: "authenticate", data: "<userId>"}
       -> peers receive: {event: "user:status", data: {userId, status: "online"}}
       -> client receives: {event: "online:users", data: ["<userId>", ...]}
    3. Client sends: {event: "message:send", data: {recipientId, content}}
       -> recipient (if online) receives "message:new", sender "message:sent"
    4. On disconnect -> peers receive "user:status" offline with lastSeen
"""
import json
import logging

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from .coordinator import RealtimeCoordinator
from .schemas import Frame

logger = logging.getLogger(__name__)

router = APIRouter()


def get_coordinator(request: Request) -> RealtimeCoordinator:
    """Dependency returning the application's coordinator."""
    return request.app.state.coordinator


class AnnouncementCreate(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)


@router.get("/api/presence/online")
async def list_online_users(
    coordinator: RealtimeCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    """Return the user ids that currently have a live connection."""
    return JSONResponse({"users": coordinator.registry.online_users()})


@router.get("/api/presence/{user_id}")
async def get_user_presence(
    user_id: str,
    coordinator: RealtimeCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    return JSONResponse({
        "userId": user_id,
        "online": coordinator.registry.lookup(user_id) is not None,
    })


@router.post("/api/announcements", status_code=202)
async def create_announcement(
    body: AnnouncementCreate,
    coordinator: RealtimeCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    """Broadcast an announcement to every open connection.

    Delivery is best effort; the response only confirms the broadcast ran.
    """
    await coordinator.notifications.broadcast_all(body.message)
    return JSONResponse({"status": "accepted"}, status_code=202)


def _parse_frame(raw: str) -> Frame:
    """Decode one inbound text frame.

    Raises:
        ValueError: If the text is not JSON or not a valid frame object.
    """
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError("Invalid JSON") from e
    try:
        return Frame.model_validate(decoded)
    except ValidationError as e:
        raise ValueError("Invalid frame: expected {event, data}") from e


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint handling one client's realtime session.

    Malformed frames are answered with an ``error`` event and the session
    continues; only the transport closing ends the loop.
    """
    coordinator: RealtimeCoordinator = websocket.app.state.coordinator
    max_frame_bytes = websocket.app.state.settings.realtime.max_frame_bytes

    await websocket.accept()
    connection_id = coordinator.connect(websocket)
    logger.info(
        f"[WS] Connection accepted: {connection_id}. "
        f"{coordinator.registry.connection_count()} open connections"
    )

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))

            raw = message.get("text")
            if raw is None:
                logger.warning(f"[WS] Binary frame from {connection_id}")
                await coordinator.send_error(connection_id, "Binary frames are not supported")
                continue

            if len(raw.encode("utf-8")) > max_frame_bytes:
                logger.warning(f"[WS] Oversized frame from {connection_id}")
                await coordinator.send_error(connection_id, "Frame too large")
                continue

            try:
                frame = _parse_frame(raw)
            except ValueError as e:
                logger.warning(f"[WS] Rejected frame from {connection_id}: {e}")
                await coordinator.send_error(connection_id, str(e))
                continue

            await coordinator.handle(connection_id, frame.event, frame.data)

    except WebSocketDisconnect as e:
        logger.info(f"[WS] {connection_id} disconnected (code={e.code})")
    finally:
        await coordinator.disconnect(connection_id)
