"""
Anti-loss Tracking Agent
========================
Reports battery level, charging state, connection type and (when a fix
is available) location to the tracking server every 60 seconds.

Every telemetry request is signed with HMAC-SHA256 over
method/path/timestamp/nonce/body-hash using the device secret, and
carries the bearer token obtained at device login.

Usage:
    python agent.py --server https://guard.example.com --admin-key KEY --enroll
    python agent.py
"""

from antiloss.runner import cli

if __name__ == "__main__":
    cli()
