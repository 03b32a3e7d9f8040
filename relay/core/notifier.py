"""Notification construction and addressed delivery."""
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple, Union
import asyncio
import logging

from ..errors import TransportPushFailure, ValidationError
from ..metrics import NOTIFICATIONS_DELIVERED, PUSHES
from ..schemas import BROADCAST, Notification
from .registry import ConnectionRegistry, Session

logger = logging.getLogger(__name__)

NOTIFICATION_EVENT = "notification"


def normalize_recipient(recipient: Optional[str]) -> str:
    if not recipient or recipient == BROADCAST:
        return BROADCAST
    return recipient


def make_notification(
    type: Optional[str],
    message: Optional[str],
    recipient: Optional[Union[str, int]] = None,
    notification_id: Optional[str] = None,
) -> Notification:
    """Build a Notification, rejecting input without a type or message."""
    if not type or not message or not isinstance(type, str) or not isinstance(message, str):
        raise ValidationError()
    if isinstance(recipient, int) and not isinstance(recipient, bool):
        recipient = str(recipient)
    if recipient is not None and not isinstance(recipient, str):
        raise ValidationError("Recipient must be a user id or 'all'")
    fields = {"type": type, "message": message, "recipient": normalize_recipient(recipient)}
    if notification_id:
        fields["id"] = str(notification_id)
    return Notification(**fields)


def parse_notification(data: Any) -> Notification:
    """Notification from a client-sent event payload. A supplied `_id` is kept."""
    if not isinstance(data, dict):
        raise ValidationError("Notification payload must be an object")
    return make_notification(
        data.get("type"),
        data.get("message"),
        data.get("recipient"),
        notification_id=data.get("_id"),
    )


@dataclass
class DeliveryReport:
    pushed: List[str] = field(default_factory=list)
    broadcast: bool = True
    failed: int = 0


class NotificationRouter:
    """Resolves a notification's delivery set and fans the payload out to it."""

    def __init__(self, registry: ConnectionRegistry, push_timeout: float = 5.0):
        self.registry = registry
        self.push_timeout = push_timeout

    async def deliver(self, notification: Notification) -> DeliveryReport:
        if not notification.type or not notification.message:
            raise ValidationError()
        session_ids, broadcast = self.resolve(notification)
        report = await self.dispatch(notification, session_ids, broadcast)
        NOTIFICATIONS_DELIVERED.labels(scope="broadcast" if broadcast else "direct").inc()
        if broadcast:
            logger.info(f"Notification {notification.id} broadcast to {len(report.pushed)} sessions")
        else:
            logger.info(
                f"Notification {notification.id} sent to user {notification.recipient}: "
                f"{len(report.pushed)} sessions"
            )
        return report

    def resolve(self, notification: Notification) -> Tuple[List[str], bool]:
        """Delivery set for a notification. Broadcast never consults the group index."""
        recipient = normalize_recipient(notification.recipient)
        if recipient == BROADCAST:
            return self.registry.list_session_ids(), True
        return self.registry.sessions_for_user(recipient), False

    async def dispatch(self, notification: Notification, session_ids: Iterable[str], broadcast: bool) -> DeliveryReport:
        targets = list(session_ids)
        payload = {"event": NOTIFICATION_EVENT, "data": notification.to_wire()}
        outcomes = await asyncio.gather(*(self._push(sid, payload) for sid in targets))

        report = DeliveryReport(broadcast=broadcast)
        for session_id, outcome in zip(targets, outcomes):
            PUSHES.labels(outcome=outcome).inc()
            if outcome == "delivered":
                report.pushed.append(session_id)
            elif outcome == "failed":
                report.failed += 1
        return report

    async def _push(self, session_id: str, payload: dict) -> str:
        session = self.registry.get(session_id)
        if session is None:
            # closed between resolution and push
            return "skipped"
        try:
            await self._send(session, payload)
        except TransportPushFailure as failure:
            logger.warning(str(failure))
            await self._drop(session)
            return "failed"
        return "delivered"

    async def _send(self, session: Session, payload: dict) -> None:
        try:
            await asyncio.wait_for(session.connection.send_json(payload), timeout=self.push_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise TransportPushFailure(session.session_id, e) from e

    async def _drop(self, session: Session) -> None:
        """Unregister and close a session whose push failed; its frame stream may be cut mid-write."""
        self.registry.disconnect(session.session_id)
        try:
            await asyncio.wait_for(session.connection.close(code=1011), timeout=self.push_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Failed to close session {session.session_id} after push failure: {e}")
