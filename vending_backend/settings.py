"""
Service Configuration

Settings are read from config/settings.json (or the file named by
VENDING_SETTINGS) and validated with pydantic. A missing file falls back
to the built-in defaults, which match the deployed five-shelf machine.
"""

import json
import logging
import os
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("Settings")

DEFAULT_SETTINGS_PATH = os.path.join(os.path.dirname(__file__), "config", "settings.json")


class HttpSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 5001


class MqttSettings(BaseModel):
    host: str = "localhost"
    port: int = 1883
    keepalive: int = 60
    qos: int = Field(default=0, ge=0, le=2)
    topic_prefix: str = "vending"
    heartbeat_segment: str = "heartbit"
    response_segment: str = "response"
    command_segment: str = "shelf"


class DispenseSettings(BaseModel):
    response_timeout_sec: float = Field(default=15.0, gt=0)
    heartbeat_stale_sec: float = Field(default=30.0, gt=0)
    sweep_interval_sec: float = Field(default=5.0, gt=0)
    batch_order: str = "descending"
    fail_pending_on_disconnect: bool = False

    @field_validator("batch_order")
    @classmethod
    def _check_order(cls, value: str) -> str:
        if value not in ("descending", "ascending"):
            raise ValueError(f"batch_order must be 'descending' or 'ascending', got {value!r}")
        return value


class ShelfRouteSettings(BaseModel):
    shelf_id: int = Field(ge=1)
    id_low: int
    id_high: int

    @model_validator(mode="after")
    def _check_range(self):
        if self.id_low > self.id_high:
            raise ValueError(f"shelf {self.shelf_id}: id_low {self.id_low} > id_high {self.id_high}")
        return self


class ProductSettings(BaseModel):
    id: int
    name: str
    price: float = Field(ge=0)
    quantity: int = Field(default=0, ge=0)
    image: Optional[str] = None


def _default_shelves() -> List[ShelfRouteSettings]:
    ranges = [(1, 1, 4), (2, 5, 8), (3, 9, 16), (4, 17, 24), (5, 25, 32)]
    return [ShelfRouteSettings(shelf_id=s, id_low=lo, id_high=hi) for s, lo, hi in ranges]


class VendingSettings(BaseModel):
    log_level: str = "INFO"
    http: HttpSettings = Field(default_factory=HttpSettings)
    mqtt: MqttSettings = Field(default_factory=MqttSettings)
    dispense: DispenseSettings = Field(default_factory=DispenseSettings)
    shelves: List[ShelfRouteSettings] = Field(default_factory=_default_shelves)
    products: List[ProductSettings] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_shelves(self):
        if not self.shelves:
            raise ValueError("at least one shelf route is required")

        seen = set()
        for route in self.shelves:
            if route.shelf_id in seen:
                raise ValueError(f"duplicate shelf id {route.shelf_id}")
            seen.add(route.shelf_id)

        ordered = sorted(self.shelves, key=lambda r: r.id_low)
        for prev, nxt in zip(ordered, ordered[1:]):
            if nxt.id_low <= prev.id_high:
                raise ValueError(
                    f"shelf {prev.shelf_id} ({prev.id_low}-{prev.id_high}) overlaps "
                    f"shelf {nxt.shelf_id} ({nxt.id_low}-{nxt.id_high})"
                )
        return self


def load_settings(path: Optional[str] = None) -> VendingSettings:
    """
    Load and validate service settings.

    Resolution order for the file: explicit path, $VENDING_SETTINGS, the
    packaged default. Broker address can be overridden with
    $VENDING_MQTT_HOST / $VENDING_MQTT_PORT.
    """
    config_path = path or os.getenv("VENDING_SETTINGS", DEFAULT_SETTINGS_PATH)
    try:
        with open(config_path, "r") as f:
            raw = json.load(f)
    except FileNotFoundError:
        logger.warning(f"Settings file {config_path} not found, using defaults")
        raw = {}

    settings = VendingSettings.model_validate(raw)

    host = os.getenv("VENDING_MQTT_HOST")
    if host:
        settings.mqtt.host = host
    port = os.getenv("VENDING_MQTT_PORT")
    if port:
        settings.mqtt.port = int(port)

    return settings
