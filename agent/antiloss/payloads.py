"""
Telemetry payloads and their wire encoding.

The server hashes the exact body bytes, so keys are emitted in a fixed
order with compact separators.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone


def utc_now_iso():
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def to_json(fields):
    """Compact JSON, insertion order preserved."""
    return json.dumps(fields, separators=(",", ":"), ensure_ascii=False)


@dataclass
class HeartbeatPayload:
    collected_at: str
    battery_pct: int
    charging: bool
    network_type: str
    app_version: str

    def to_dict(self):
        return {
            "collectedAt": self.collected_at,
            "batteryPct": self.battery_pct,
            "charging": self.charging,
            "networkType": self.network_type,
            "appVersion": self.app_version,
        }

    def to_json(self):
        return to_json(self.to_dict())


@dataclass
class LocationPayload:
    collected_at: str
    lat: float
    lon: float
    accuracy_m: float
    speed_mps: float

    def to_dict(self):
        return {
            "collectedAt": self.collected_at,
            "lat": self.lat,
            "lon": self.lon,
            "accuracyM": self.accuracy_m,
            "speedMps": self.speed_mps,
        }

    def to_json(self):
        return to_json(self.to_dict())


@dataclass(frozen=True)
class DeviceInfo:
    """Static hardware/OS descriptor sent once at registration."""
    model: str
    brand: str
    os_version: str
    sdk_int: str
    manufacturer: str

    def to_dict(self):
        return {
            "model": self.model,
            "brand": self.brand,
            "osVersion": self.os_version,
            "sdkInt": self.sdk_int,
            "manufacturer": self.manufacturer,
        }
