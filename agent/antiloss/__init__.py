"""
antiloss — Device tracking agent with signed telemetry
======================================================
Architecture: one worker thread, one blocking HTTP call at a time.

  constants.py    → Version, API paths, intervals, timeouts
  config.py       → Paths, logging, config load/save, safe_print
  errors.py       → Error kinds (configuration / transport / auth / server / protocol)
  store.py        → CredentialStore + immutable DeviceIdentity
  signing.py      → URL normalisation, SHA-256/HMAC, canonical string
  payloads.py     → Heartbeat / location / device-info payloads
  http_client.py  → HTTP session with pooling + connect-only retry
  listeners.py    → LogEventBus (on_log_event observer channel)
  api.py          → ApiClient (register, login, signed submissions)
  network.py      → Connection-type label, reachability probe
  collectors.py   → Device info, battery/network state, location chain
  state.py        → TrackerState dataclass
  tracker.py      → Tracker (periodic cycles, start/stop)
  enrollment.py   → Login-or-register setup flow
  runner.py       → CLI main() + auto-restart wrapper
"""
