import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from relay.config import Settings
from relay.main import create_app
from relay.tests.fakes import FakeConnection

# ------------------------
# Fixtures
# ------------------------

@pytest.fixture
def app():
    return create_app(Settings(push_timeout=0.2))


@pytest_asyncio.fixture
async def client(app):
    """Provides an AsyncClient attached to a fresh app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

# ------------------------
# Tests
# ------------------------

@pytest.mark.asyncio
async def test_root(client):
    res = await client.get("/")
    assert res.status_code == 200
    assert res.text == "Socket notification server is running"


@pytest.mark.asyncio
async def test_status_lists_sessions(client, app):
    registry = app.state.registry
    ids = [registry.connect(FakeConnection(), "u1"), registry.connect(FakeConnection())]

    res = await client.get("/api/status")

    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ok"
    assert body["socketConnections"] == 2
    assert sorted(body["connectedSockets"]) == sorted(ids)
    assert body["uptime"] >= 0
    assert "timestamp" in body


@pytest.mark.asyncio
async def test_send_notification_to_user(client, app):
    registry = app.state.registry
    target, bystander = FakeConnection(), FakeConnection()
    registry.connect(target, "u1")
    registry.connect(bystander, "u2")

    res = await client.post("/api/send-notification", json={"type": "alert", "message": "hi", "recipient": "u1"})

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    notification = body["notification"]
    assert set(notification) == {"_id", "type", "message", "recipient", "read", "createdAt"}
    assert notification["recipient"] == "u1"
    assert notification["read"] is False
    assert target.notifications == [notification]
    assert not bystander.sent


@pytest.mark.asyncio
async def test_send_notification_defaults_to_broadcast(client, app):
    conns = [FakeConnection() for _ in range(3)]
    for n, conn in enumerate(conns):
        app.state.registry.connect(conn, f"u{n}" if n else None)

    res = await client.post("/api/send-notification", json={"type": "info", "message": "hello everyone"})

    assert res.status_code == 200
    assert res.json()["notification"]["recipient"] == "all"
    assert all(len(conn.notifications) == 1 for conn in conns)


@pytest.mark.asyncio
async def test_send_notification_to_offline_user_succeeds(client):
    res = await client.post("/api/send-notification", json={"type": "alert", "message": "hi", "recipient": "ghost"})
    assert res.status_code == 200
    assert res.json()["success"] is True


@pytest.mark.asyncio
async def test_send_notification_ignores_client_id(client):
    res = await client.post("/api/send-notification", json={"_id": "mine", "type": "alert", "message": "hi"})
    assert res.status_code == 200
    assert res.json()["notification"]["_id"] != "mine"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"type": "alert"}, {"message": "hi"}, {}, {"type": "", "message": "hi"}])
async def test_send_notification_requires_type_and_message(client, app, body):
    conn = FakeConnection()
    app.state.registry.connect(conn)

    res = await client.post("/api/send-notification", json=body)

    assert res.status_code == 400
    assert res.json() == {"error": "Validation Error", "message": "Type and message are required"}
    assert not conn.sent


@pytest.mark.asyncio
async def test_send_notification_malformed_body(client):
    res = await client.post(
        "/api/send-notification",
        content=b"not json",
        headers={"Content-Type": "application/json"},
    )
    assert res.status_code == 400
    assert res.json()["error"] == "Validation Error"


@pytest.mark.asyncio
async def test_delivery_failure_is_generic_server_error(client, app, monkeypatch):
    async def explode(notification):
        raise RuntimeError("database password is hunter2")

    monkeypatch.setattr(app.state.notifier, "deliver", explode)

    res = await client.post("/api/send-notification", json={"type": "alert", "message": "hi"})

    assert res.status_code == 500
    assert res.json() == {"error": "Internal Server Error", "message": "An unexpected error occurred"}
    assert "hunter2" not in res.text


@pytest.mark.asyncio
async def test_unknown_route(client):
    res = await client.get("/api/nothing-here")
    assert res.status_code == 404
    assert res.json() == {"error": "Not Found", "message": "The requested resource was not found"}


@pytest.mark.asyncio
async def test_wrong_method_is_structured(client):
    res = await client.get("/api/send-notification")
    assert res.status_code == 405
    assert set(res.json()) == {"error", "message"}


@pytest.mark.asyncio
async def test_metrics_count_deliveries(client, app):
    app.state.registry.connect(FakeConnection())
    await client.post("/api/send-notification", json={"type": "alert", "message": "hi"})

    res = await client.get("/metrics")

    assert res.status_code == 200
    assert 'relay_notifications_delivered_total{scope="broadcast"}' in res.text
    assert 'relay_pushes_total{outcome="delivered"}' in res.text


def test_apps_have_independent_registries(app):
    other = create_app(Settings())
    app.state.registry.connect(FakeConnection())
    assert other.state.registry.count() == 0


@pytest.mark.asyncio
async def test_send_notification_wrong_field_type_names_field(client):
    res = await client.post("/api/send-notification", json={"type": "alert", "message": "hi", "recipient": ["u1"]})
    assert res.status_code == 400
    body = res.json()
    assert body["error"] == "Validation Error"
    assert body["message"].startswith("Invalid value for 'recipient'")


@pytest.mark.asyncio
async def test_send_notification_invalid_json_message(client):
    res = await client.post(
        "/api/send-notification",
        content=b"{\"type\": ",
        headers={"Content-Type": "application/json"},
    )
    assert res.status_code == 400
    assert res.json()["message"] == "Request body must be valid JSON"
