import argparse
import logging
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .dispense import (
    DispenseCoordinator,
    InvalidOrder,
    OrderPartitioner,
    ShelfHealthMonitor,
    ShelfRoute,
    StatusBroadcaster,
)
from .schemas import OrderRequest
from .settings import VendingSettings, load_settings
from .store import InventoryStore
from .transport import ITransport, LoopbackTransport, MQTTTransport, ShelfTopics

logging.basicConfig(level=logging.INFO, format='[VENDING] %(asctime)s | %(levelname)s | %(name)s | %(message)s',
                    datefmt='%H:%M:%S')
logger = logging.getLogger("VendingAPI")


def build_transport(settings: VendingSettings, kind: str = "mqtt") -> ITransport:
    if kind == "loopback":
        return LoopbackTransport(
            shelves=[r.shelf_id for r in settings.shelves],
            heartbeat_interval=settings.dispense.sweep_interval_sec,
        )
    return MQTTTransport(
        settings.mqtt.host,
        settings.mqtt.port,
        topics=ShelfTopics.from_settings(settings.mqtt),
        keepalive=settings.mqtt.keepalive,
        qos=settings.mqtt.qos,
    )


def create_app(settings: Optional[VendingSettings] = None, transport: Optional[ITransport] = None) -> FastAPI:
    settings = settings or load_settings()
    transport = transport or build_transport(settings)

    routes = [ShelfRoute(r.shelf_id, r.id_low, r.id_high) for r in settings.shelves]
    partitioner = OrderPartitioner(routes, descending=settings.dispense.batch_order == "descending")
    monitor = ShelfHealthMonitor(partitioner.shelf_ids, stale_after=settings.dispense.heartbeat_stale_sec)
    broadcaster = StatusBroadcaster()
    store = InventoryStore.from_settings(settings.products)
    coordinator = DispenseCoordinator(
        transport,
        partitioner,
        monitor,
        broadcaster,
        recorder=store,
        response_timeout=settings.dispense.response_timeout_sec,
        sweep_interval=settings.dispense.sweep_interval_sec,
        fail_pending_on_disconnect=settings.dispense.fail_pending_on_disconnect,
    )

    app = FastAPI(title="Vending Machine Dispense API")
    app.state.settings = settings
    app.state.coordinator = coordinator
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Lifecycle ---
    @app.on_event("startup")
    async def startup_event():
        coordinator.start()
        transport.connect()
        logger.info(f"Dispense coordinator started with shelves {partitioner.shelf_ids}")

    @app.on_event("shutdown")
    async def shutdown_event():
        transport.disconnect()
        await coordinator.stop()

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request, exc):
        logger.info(f"Order rejected: invalid body ({len(exc.errors())} error(s))")
        return JSONResponse(status_code=400, content={"success": False, "message": "Invalid or empty products array"})

    # --- Endpoints ---
    @app.get("/")
    def read_root():
        return {"status": "ok", "service": "Vending Dispense"}

    @app.get("/api/products")
    def get_products():
        return store.get_all_products()

    @app.post("/api/order")
    async def place_order(request: OrderRequest):
        try:
            result = await coordinator.submit_order(request.to_items())
        except InvalidOrder as e:
            logger.warning(f"Order failed: {e}")
            return JSONResponse(status_code=400, content={"success": False, "message": f"Order failed: {e}"})
        except Exception as e:
            logger.error(f"Order error: {e}")
            return JSONResponse(status_code=500, content={"success": False, "message": f"Order failed: {e}"})

        logger.info(f"Order {result.order_id} placed successfully")
        body = result.to_dict()
        body["message"] = "Order placed and processed by vending machine"
        return body

    @app.get("/api/esp32-status")
    def esp32_status():
        return {"connected": coordinator.is_link_healthy()}

    @app.get("/api/shelves")
    def shelf_status():
        return {str(shelf_id): state for shelf_id, state in monitor.snapshot().items()}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        broadcaster.add(websocket)
        try:
            while True:
                # Push-only feed; reads keep the connection open
                await websocket.receive_text()
        except WebSocketDisconnect:
            broadcaster.remove(websocket)

    return app


def main():
    parser = argparse.ArgumentParser(description="Vending Machine Dispense Service")
    parser.add_argument("--transport", choices=["mqtt", "loopback"], default="mqtt",
                        help="Shelf transport (loopback simulates every shelf in-process)")
    parser.add_argument("--settings", default=None, help="Path to settings.json")
    args = parser.parse_args()

    settings = load_settings(args.settings)
    logging.getLogger().setLevel(settings.log_level.upper())

    print(f">>> Initializing Dispense Service using {args.transport.upper()} transport...")
    app = create_app(settings, build_transport(settings, args.transport))
    uvicorn.run(app, host=settings.http.host, port=settings.http.port)


if __name__ == "__main__":
    main()
