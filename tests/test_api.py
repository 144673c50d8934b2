"""
API Integration Tests

Runs the FastAPI app against an in-process loopback transport:
order placement, status feed, health endpoints, error mapping.
"""

import time

from fastapi.testclient import TestClient

from vending_backend.main import create_app
from vending_backend.settings import DispenseSettings, ProductSettings, VendingSettings
from vending_backend.transport import LoopbackTransport


def make_app(online_shelves=(1,), response="success"):
    settings = VendingSettings(
        dispense=DispenseSettings(response_timeout_sec=0.5),
        products=[
            ProductSettings(id=1, name="Water", price=1.0, quantity=5),
            ProductSettings(id=30, name="Chocolate", price=2.5, quantity=3),
        ],
    )
    transport = LoopbackTransport(shelves=online_shelves, response=response, heartbeat_interval=0.05)
    return create_app(settings, transport)


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_root_and_products():
    with TestClient(make_app()) as client:
        assert client.get("/").json()["status"] == "ok"
        products = client.get("/api/products").json()
        assert [(p["id"], p["quantity"]) for p in products] == [(1, 5), (30, 3)]


def test_order_mixed_shelf_health():
    """Shelf 1 online, shelf 5 offline: item 30 is skipped, item 1 dispensed."""
    app = make_app(online_shelves=(1,))
    with TestClient(app) as client:
        assert wait_until(lambda: client.get("/api/esp32-status").json()["connected"])

        response = client.post("/api/order", json={"products": [{"id": 1, "quantity": 1}, {"id": 30, "quantity": 2}]})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["allDispensed"] is False
        assert body["items"] == [
            {"id": 30, "quantity": 2, "shelf": 5, "status": "Disconnected"},
            {"id": 1, "quantity": 1, "shelf": 1, "status": "Dispensed"},
        ]
        assert app.state.coordinator.transport.published == [(1, "1,1")]

        # Order is recorded before dispensing, whatever the outcome
        quantities = {p["id"]: p["quantity"] for p in client.get("/api/products").json()}
        assert quantities == {1: 4, 30: 1}


def test_status_feed_over_websocket():
    app = make_app(online_shelves=(1, 5))
    with TestClient(app) as client:
        assert wait_until(lambda: client.get("/api/esp32-status").json()["connected"])
        with client.websocket_connect("/ws") as ws:
            assert wait_until(lambda: app.state.coordinator.broadcaster.subscriber_count == 1)

            client.post("/api/order", json={"products": [{"id": 1, "quantity": 1}, {"id": 30, "quantity": 2}]})

            messages = [ws.receive_json() for _ in range(5)]

    assert messages == [
        {"type": "orderStatus", "id": 30, "status": "Dispensing"},
        {"type": "orderStatus", "id": 30, "status": "Dispensed"},
        {"type": "orderStatus", "id": 1, "status": "Dispensing"},
        {"type": "orderStatus", "id": 1, "status": "Dispensed"},
        {"type": "orderComplete", "success": True},
    ]


def test_unanswered_command_fails_after_timeout():
    app = make_app(online_shelves=(1,), response=None)
    with TestClient(app) as client:
        assert wait_until(lambda: client.get("/api/esp32-status").json()["connected"])
        body = client.post("/api/order", json={"products": [{"id": 2, "quantity": 1}]}).json()

    assert body["success"] is True
    assert body["items"][0]["status"] == "Failed"


def test_unmappable_order_rejected():
    app = make_app()
    with TestClient(app) as client:
        response = client.post("/api/order", json={"products": [{"id": 99, "quantity": 1}]})

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Order failed: No valid items to process"}
        assert app.state.store.get_sales() == []


def test_malformed_orders_rejected():
    with TestClient(make_app()) as client:
        for body in ({"products": []}, {}, {"products": [{"id": 1}]}, {"products": "nope"}):
            response = client.post("/api/order", json=body)
            assert response.status_code == 400
            assert response.json() == {"success": False, "message": "Invalid or empty products array"}


def test_health_endpoints_without_heartbeats():
    with TestClient(make_app(online_shelves=())) as client:
        assert client.get("/api/esp32-status").json() == {"connected": False}
        shelves = client.get("/api/shelves").json()
        assert sorted(shelves) == ["1", "2", "3", "4", "5"]
        assert all(not s["online"] for s in shelves.values())
