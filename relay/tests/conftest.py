import pytest

from relay.core.notifier import NotificationRouter
from relay.core.registry import ConnectionRegistry


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def notifier(registry):
    return NotificationRouter(registry, push_timeout=0.2)
