# relay/routers/socket.py
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends, Query
from typing import Optional
import json
import logging
import time

from ..core.notifier import NotificationRouter, parse_notification
from ..core.registry import ConnectionRegistry
from ..dependencies import get_notifier, get_registry
from ..errors import DuplicateSessionError, ValidationError

router = APIRouter(tags=["WebSockets"])
logger = logging.getLogger(__name__)


async def send_error(websocket: WebSocket, error: ValidationError):
    await websocket.send_json({"event": "error", "data": error.to_dict()})


async def handle_event(websocket: WebSocket, session_id: str, frame, notifier: NotificationRouter):
    """Act on one client frame: {"event": ..., "data": ...}."""
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        await send_error(websocket, ValidationError("Frames must be objects with an 'event' name"))
        return

    event, data = frame["event"], frame.get("data")
    if event == "sendNotification":
        logger.info(f"Notification received from {session_id}: {data}")
        try:
            notification = parse_notification(data)
        except ValidationError as e:
            await send_error(websocket, e)
            return
        await notifier.deliver(notification)
    elif event == "ping":
        logger.info(f"Ping received from {session_id}: {data}")
        await websocket.send_json({
            "event": "pong",
            "data": {"message": "Server pong", "timestamp": int(time.time() * 1000)},
        })
    else:
        logger.debug(f"Ignoring unknown event {event!r} from {session_id}")


@router.websocket("/ws")
async def notification_socket(
    websocket: WebSocket,
    user_id: Optional[str] = Query(None, alias="userId"),
    registry: ConnectionRegistry = Depends(get_registry),
    notifier: NotificationRouter = Depends(get_notifier),
):
    """
    Persistent notification channel.
    Connect with: ws://your-host/ws?userId=<id>  (userId optional)
    """
    await websocket.accept()
    try:
        session_id = registry.connect(websocket, user_id)
    except DuplicateSessionError as e:
        logger.error(str(e))
        await websocket.close(code=1011, reason="Session could not be registered")
        return

    reason = "unknown"
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except ValueError:
                await send_error(websocket, ValidationError("Frames must be JSON"))
                continue
            await handle_event(websocket, session_id, frame, notifier)
    except WebSocketDisconnect as e:
        reason = f"client closed (code {e.code})"
    except Exception:
        logger.exception(f"Socket error for {session_id}")
        reason = "server error"
        try:
            await websocket.close(code=1011, reason="Internal server error")
        except RuntimeError:
            # already closed
            pass
    finally:
        registry.disconnect(session_id)
        logger.info(f"Session disconnected: {session_id}, reason: {reason}")
