from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, timezone
from uuid import uuid4


BROADCAST = "all"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_notification_id() -> str:
    return uuid4().hex


# NOTIFICATION SCHEMAS
class NotificationCreate(BaseModel):
    """Body of a send-notification request. Presence is checked by the router."""
    type: Optional[str] = None
    message: Optional[str] = None
    recipient: Optional[str] = None


class Notification(BaseModel):
    id: str = Field(default_factory=new_notification_id, alias="_id")
    type: str
    message: str
    recipient: str = BROADCAST
    read: bool = False
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")

    model_config = {"populate_by_name": True}

    @property
    def is_broadcast(self) -> bool:
        return self.recipient == BROADCAST

    def to_wire(self) -> dict:
        """Payload pushed to clients on the notification channel."""
        return self.model_dump(mode="json", by_alias=True)


class SendNotificationResponse(BaseModel):
    success: bool = True
    notification: Notification


# STATUS SCHEMAS
class StatusResponse(BaseModel):
    status: str = "ok"
    socket_connections: int = Field(alias="socketConnections")
    connected_sockets: List[str] = Field(default_factory=list, alias="connectedSockets")
    uptime: float
    timestamp: datetime = Field(default_factory=utcnow)

    model_config = {"populate_by_name": True}


class ErrorResponse(BaseModel):
    error: str
    message: str
