from starlette.requests import HTTPConnection

from .core.notifier import NotificationRouter
from .core.registry import ConnectionRegistry


# Dependencies
def get_registry(connection: HTTPConnection) -> ConnectionRegistry:
    return connection.app.state.registry


def get_notifier(connection: HTTPConnection) -> NotificationRouter:
    return connection.app.state.notifier
