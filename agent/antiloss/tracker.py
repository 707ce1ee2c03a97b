"""
Tracker — the periodic tracking loop.

Each cycle sends one heartbeat and, when a fix is available, one
location. The two submissions are independent: a failure of one is
reported and the other is still attempted. Cycles never overlap; the
next one starts TRACKING_INTERVAL_SEC after the previous one finished.

Runs on its own worker thread (start/stop) or on the caller's thread
(run_forever / run_cycle).
"""

import threading
from dataclasses import dataclass
from datetime import datetime

from .config import log
from .constants import TRACKING_INTERVAL_SEC, STOP_JOIN_TIMEOUT_SEC, AGENT_VERSION, NETWORK_OFFLINE
from .errors import AgentError, TransportError
from .state import TrackerState
from . import collectors
from . import network


@dataclass
class CycleResult:
    heartbeat_ok: bool = False
    location_ok: bool = False
    location_available: bool = False


class Tracker:

    def __init__(
        self,
        api,
        events,
        location_collector=None,
        interval=TRACKING_INTERVAL_SEC,
        app_version=AGENT_VERSION,
        heartbeat_collector=collectors.collect_heartbeat,
    ):
        self._api = api
        self._events = events
        self._location_collector = location_collector or collectors.LocationCollector()
        self._interval = interval
        self._app_version = app_version
        self._heartbeat_collector = heartbeat_collector
        self._stop_event = threading.Event()
        self._thread = None
        self.state = TrackerState()

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    # ─── Single cycle ────────────────────────────────────────

    def run_cycle(self):
        """One heartbeat + (optional) location submission. Never raises AgentError."""
        result = CycleResult()
        self.state.on_cycle_start()
        now = datetime.now().strftime("%H:%M:%S")
        self._events.emit(f"[{now}] Starting upload cycle...")
        try:
            result.heartbeat_ok = self._submit_heartbeat()
            result.location_available, result.location_ok = self._submit_location()
        finally:
            self.state.on_cycle_end()
        return result

    def _submit_heartbeat(self):
        try:
            payload = self._heartbeat_collector(self._app_version)
            self._api.send_heartbeat(payload)
        except AgentError as e:
            self.state.on_heartbeat(False, str(e))
            self._events.warning(f"Heartbeat upload failed: {e}")
            self._report_transport(e)
            return False
        except Exception as e:
            self.state.on_heartbeat(False, str(e))
            log.error("Heartbeat step crashed: %s", e, exc_info=True)
            self._events.error(f"Heartbeat upload failed: {e}")
            return False
        self.state.on_heartbeat(True)
        self._events.emit("Heartbeat uploaded")
        return True

    def _submit_location(self):
        """Returns (fix_available, uploaded)."""
        try:
            payload = self._location_collector.collect()
        except Exception as e:
            log.error("Location collection crashed: %s", e, exc_info=True)
            payload = None
        if payload is None:
            self._events.warning("No location fix available this cycle")
            return False, False

        try:
            self._api.send_location(payload)
        except AgentError as e:
            self.state.on_location(False, str(e))
            self._events.warning(f"Location upload failed: {e}")
            self._report_transport(e)
            return True, False
        except Exception as e:
            self.state.on_location(False, str(e))
            log.error("Location step crashed: %s", e, exc_info=True)
            self._events.error(f"Location upload failed: {e}")
            return True, False
        self.state.on_location(True)
        self._events.emit(f"Location uploaded: {payload.lat}, {payload.lon}")
        return True, True

    def _report_transport(self, error):
        if not isinstance(error, TransportError):
            return
        if network.network_type() == NETWORK_OFFLINE:
            log.warning("Device has no active network interface")
        elif not network.is_online(error.url):
            log.warning("Server %s unreachable from this network", error.url)

    # ─── Periodic loop ───────────────────────────────────────

    def run_forever(self, stop_event=None):
        """Run cycles until stop_event (default: the tracker's own) is set."""
        stop_event = stop_event or self._stop_event
        self._events.emit(f"Periodic tracking started (interval: {self._interval}s)")
        while not stop_event.is_set():
            try:
                self.run_cycle()
            except Exception as e:
                log.error("Unexpected error in tracking cycle: %s", e, exc_info=True)
                self._api.reset_session()
            if stop_event.wait(self._interval):
                break
        self._events.emit("Periodic tracking stopped")

    def start(self):
        if self.running:
            self._events.emit("Tracker already running")
            return
        # Fresh event per run; a loop that outlived stop() keeps its set event
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self.run_forever, args=(self._stop_event,), name="tracker", daemon=True
        )
        self._thread.start()

    def stop(self, timeout=STOP_JOIN_TIMEOUT_SEC):
        """Stop the loop; closing the session aborts pooled connections."""
        self._events.emit("Stopping tracker...")
        self._stop_event.set()
        self._api.close()
        if self._thread is None:
            return
        self._thread.join(timeout)
        if self._thread.is_alive():
            log.warning("Tracker cycle still in flight after %.1fs; it exits when the cycle ends", timeout)
            return
        self._thread = None
