"""
TrackerState — bookkeeping for the periodic tracking loop.

Mutated only by the tracker's worker thread; other threads read it for
status display.
"""

import time
from dataclasses import dataclass


@dataclass
class TrackerState:
    # ── Cycle lifecycle ──────────────────────────────────────
    cycles_run: int = 0
    cycle_in_flight: bool = False
    last_cycle_started: float = 0.0
    last_cycle_finished: float = 0.0

    # ── Uploads ──────────────────────────────────────────────
    last_heartbeat_ok: float = 0.0
    last_location_ok: float = 0.0
    last_error: str = ""

    # ── Failure streaks ──────────────────────────────────────
    consecutive_hb_failures: int = 0
    consecutive_loc_failures: int = 0

    def on_cycle_start(self):
        self.cycle_in_flight = True
        self.last_cycle_started = time.time()

    def on_cycle_end(self):
        self.cycle_in_flight = False
        self.last_cycle_finished = time.time()
        self.cycles_run += 1

    def on_heartbeat(self, ok, error=""):
        if ok:
            self.last_heartbeat_ok = time.time()
            self.consecutive_hb_failures = 0
        else:
            self.consecutive_hb_failures += 1
            self.last_error = error

    def on_location(self, ok, error=""):
        if ok:
            self.last_location_ok = time.time()
            self.consecutive_loc_failures = 0
        else:
            self.consecutive_loc_failures += 1
            self.last_error = error
