from prometheus_client import Counter, REGISTRY, generate_latest, CONTENT_TYPE_LATEST

NOTIFICATIONS_DELIVERED = Counter(
    "relay_notifications_delivered_total",
    "Notifications passed through the router",
    ["scope"],
)
PUSHES = Counter(
    "relay_pushes_total",
    "Per-connection push attempts by outcome",
    ["outcome"],
)


def render_latest() -> bytes:
    return generate_latest(REGISTRY)


__all__ = ["NOTIFICATIONS_DELIVERED", "PUSHES", "render_latest", "CONTENT_TYPE_LATEST"]
