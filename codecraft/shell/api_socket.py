"""WebSocket endpoint streaming shell command execution."""

import logging

from fastapi import APIRouter, WebSocket

from codecraft.shell.session import CommandSession

logger = logging.getLogger("codecraft.shell.api_socket")

router = APIRouter()


@router.websocket("/")
@router.websocket("/ws")
async def command_socket(websocket: WebSocket):
    """Run one command session for the lifetime of the connection."""
    await websocket.accept()
    session = CommandSession(
        send=websocket.send_json,
        registry=websocket.app.state.registry,
        settings=websocket.app.state.settings,
    )
    logger.info("Client connected (%s)", session.connection_id)
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break
            raw = frame.get("text")
            if raw is None:
                raw = frame.get("bytes") or b""
            await session.handle_text(raw)
    finally:
        session.close()
        logger.info("Client disconnected (%s)", session.connection_id)
