"""
Platform collaborators: device descriptor, battery/network state, location.

Location is best effort. Sources are tried in a fixed order
(fused → gps → network), each bounded by its own timeout; the first
source that produces a fix wins and None means no fix this cycle.
"""

import threading
import platform
from dataclasses import dataclass
from pathlib import Path

import psutil

from .config import log
from .constants import AGENT_VERSION, LOCATION_SOURCE_ORDER, LOCATION_TIMEOUTS_SEC
from .payloads import DeviceInfo, HeartbeatPayload, LocationPayload, utc_now_iso
from . import network

_DMI_DIR = Path("/sys/class/dmi/id")


# ─── Device info ─────────────────────────────────────────────────

def _read_dmi(name):
    try:
        value = (_DMI_DIR / name).read_text(encoding="utf-8").strip()
    except OSError:
        return ""
    return value


def get_device_info():
    """Static hardware/OS descriptor used at registration."""
    system = platform.system() or "unknown"
    return DeviceInfo(
        model=_read_dmi("product_name") or platform.machine() or "unknown",
        brand=_read_dmi("board_vendor") or system,
        os_version=platform.release() or "unknown",
        sdk_int=platform.version() or "unknown",
        manufacturer=_read_dmi("sys_vendor") or system,
    )


# ─── Battery / network state ─────────────────────────────────────

def read_battery():
    """(percent, charging). Hosts without a battery report (100, True)."""
    try:
        battery = psutil.sensors_battery()
    except (AttributeError, OSError) as e:
        log.warning("Battery sensor unavailable: %s", e)
        battery = None
    if battery is None:
        return 100, True
    percent = max(0, min(100, int(round(battery.percent))))
    # power_plugged covers both "charging" and "full"
    return percent, bool(battery.power_plugged)


def collect_heartbeat(app_version=AGENT_VERSION):
    battery_pct, charging = read_battery()
    return HeartbeatPayload(
        collected_at=utc_now_iso(),
        battery_pct=battery_pct,
        charging=charging,
        network_type=network.network_type(),
        app_version=app_version,
    )


# ─── Location ────────────────────────────────────────────────────

@dataclass
class LocationFix:
    lat: float
    lon: float
    accuracy_m: float = 0.0
    speed_mps: float = 0.0


class StaticLocationSource:
    """Fixed coordinate (stationary installs configured with staticLocation)."""

    def __init__(self, lat, lon, accuracy_m=0.0, speed_mps=0.0):
        self._fix = LocationFix(float(lat), float(lon), float(accuracy_m), float(speed_mps))

    def get_fix(self):
        return self._fix


class CallableLocationSource:
    """Adapts any zero-argument callable returning a LocationFix or None."""

    def __init__(self, func):
        self._func = func

    def get_fix(self):
        return self._func()


def _start_fix(name, source):
    """Run source.get_fix() on a daemon thread. Returns (thread, result dict)."""
    result = {"fix": None}

    def worker():
        try:
            result["fix"] = source.get_fix()
        except Exception as e:
            log.warning("Location source %s failed: %s", name, e)

    t = threading.Thread(target=worker, name=f"location-{name}", daemon=True)
    t.start()
    return t, result


class LocationCollector:
    """Tries the configured sources in LOCATION_SOURCE_ORDER."""

    def __init__(self, sources=None, timeouts=None):
        self._sources = dict(sources or {})
        self._timeouts = dict(LOCATION_TIMEOUTS_SEC)
        if timeouts:
            self._timeouts.update(timeouts)
        self._pending = {}

    @property
    def source_names(self):
        return [name for name in LOCATION_SOURCE_ORDER if name in self._sources]

    def collect(self):
        """LocationPayload from the first source with a fix, or None."""
        for name in self.source_names:
            fix = self._fix_from(name)
            if fix is not None:
                return LocationPayload(
                    collected_at=utc_now_iso(),
                    lat=fix.lat,
                    lon=fix.lon,
                    accuracy_m=fix.accuracy_m,
                    speed_mps=fix.speed_mps,
                )
        return None

    def _fix_from(self, name):
        # At most one worker per source; a hung provider is skipped until it returns
        pending = self._pending.get(name)
        if pending is not None and pending.is_alive():
            log.info("Location source %s still busy from an earlier cycle, skipping", name)
            return None
        timeout = self._timeouts.get(name, 4.0)
        t, result = _start_fix(name, self._sources[name])
        t.join(timeout)
        if t.is_alive():
            self._pending[name] = t
            log.info("Location source %s timed out after %.1fs", name, timeout)
            return None
        self._pending.pop(name, None)
        return result["fix"]


def build_location_collector(config):
    """LocationCollector from the agent config (staticLocation, locationTimeouts)."""
    sources = {}
    static = config.get("staticLocation")
    if static:
        sources["network"] = StaticLocationSource(
            static["lat"],
            static["lon"],
            static.get("accuracyM", 0.0),
            static.get("speedMps", 0.0),
        )
    return LocationCollector(sources, config.get("locationTimeouts"))
