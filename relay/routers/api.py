from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import PlainTextResponse
from datetime import datetime, timezone
import logging
import time

from ..core.notifier import NotificationRouter, make_notification
from ..core.registry import ConnectionRegistry
from ..dependencies import get_notifier, get_registry
from ..errors import InternalServerError, RelayError
from ..metrics import CONTENT_TYPE_LATEST, render_latest
from ..schemas import NotificationCreate, SendNotificationResponse, StatusResponse, ErrorResponse

router = APIRouter(tags=["Notifications"])
logger = logging.getLogger(__name__)


@router.get("/", response_class=PlainTextResponse)
def root():
    return "Socket notification server is running"


@router.get("/api/status", response_model=StatusResponse)
def get_status(request: Request, registry: ConnectionRegistry = Depends(get_registry)):
    return StatusResponse(
        socket_connections=registry.count(),
        connected_sockets=registry.list_session_ids(),
        uptime=time.monotonic() - request.app.state.started_at,
        timestamp=datetime.now(timezone.utc),
    )


@router.post(
    "/api/send-notification",
    response_model=SendNotificationResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def send_notification(
    payload: NotificationCreate,
    notifier: NotificationRouter = Depends(get_notifier),
):
    notification = make_notification(payload.type, payload.message, payload.recipient)
    logger.info(f"Sending notification {notification.id} to {notification.recipient} clients")
    try:
        await notifier.deliver(notification)
    except RelayError:
        raise
    except Exception:
        logger.exception("Error sending notification")
        raise InternalServerError()
    return SendNotificationResponse(success=True, notification=notification)


@router.get("/metrics", include_in_schema=False)
def metrics():
    return Response(content=render_latest(), media_type=CONTENT_TYPE_LATEST)
