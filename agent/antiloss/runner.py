"""
Entry point and auto-restart wrapper.
"""

import argparse
import sys
import time
from pathlib import Path

from .constants import AGENT_VERSION, TRACKING_INTERVAL_SEC
from .config import BASE_DIR, log, safe_print, setup_logging, load_config, credentials_file
from .errors import AgentError
from .store import CredentialStore
from .listeners import LogEventBus
from .api import ApiClient
from .collectors import build_location_collector
from .enrollment import enroll
from .tracker import Tracker


def build_parser():
    parser = argparse.ArgumentParser(
        prog="antiloss-agent",
        description="Report battery, network and location to the tracking server.",
    )
    parser.add_argument("--home", type=Path, default=None,
                        help=f"Data directory (default: {BASE_DIR})")
    parser.add_argument("--server", help="Server base URL (http:// or https://)")
    parser.add_argument("--admin-key", help="Admin key used to register this device")
    parser.add_argument("--enroll", action="store_true",
                        help="Log in (registering if needed) and exit")
    parser.add_argument("--once", action="store_true",
                        help="Run a single tracking cycle and exit")
    parser.add_argument("--interval", type=int, default=None,
                        help=f"Seconds between cycles (default: {TRACKING_INTERVAL_SEC})")
    parser.add_argument("--version", action="version", version=f"%(prog)s {AGENT_VERSION}")
    return parser


def main(argv=None):
    """Primary agent entry point. Returns a process exit code."""
    args = build_parser().parse_args(argv)
    base_dir = args.home or BASE_DIR

    setup_logging(base_dir)
    safe_print("Anti-loss tracking agent v" + AGENT_VERSION)

    config = load_config(base_dir)
    store = CredentialStore(credentials_file(base_dir))
    identity = store.ensure_initialized()
    log.info("Device identity: %s", identity.device_id)

    events = LogEventBus()
    api = ApiClient(store, identity)

    if args.enroll or args.server or args.admin_key:
        try:
            enroll(store, api, events, server_url=args.server, admin_key=args.admin_key)
        except AgentError as e:
            safe_print(f"Setup failed: {e}")
            api.close()
            return 1
        if args.enroll:
            api.close()
            return 0

    tracker = Tracker(
        api,
        events,
        location_collector=build_location_collector(config),
        interval=args.interval or config.get("intervalSec", TRACKING_INTERVAL_SEC),
        app_version=config.get("appVersion", AGENT_VERSION),
    )

    if args.once:
        result = tracker.run_cycle()
        api.close()
        return 0 if result.heartbeat_ok else 1

    try:
        tracker.run_forever()
    except KeyboardInterrupt:
        safe_print("\nAgent stopped by user.")
    finally:
        tracker.stop()
    return 0


def run_with_auto_restart(argv=None):
    """
    Wrapper that restarts main() on crash.
    Crash counter resets if the agent ran for 2+ minutes (not a boot-loop).
    """
    crash_count = 0
    crash_window = 120
    max_rapid_crashes = 10

    while True:
        start_time = time.time()
        try:
            return main(argv)
        except KeyboardInterrupt:
            safe_print("\nAgent stopped by user.")
            return 0
        except Exception as e:
            elapsed = time.time() - start_time
            log.error("Agent crashed after %.0fs: %s", elapsed, e, exc_info=True)

            if elapsed > crash_window:
                crash_count = 0
            crash_count += 1

            if crash_count >= max_rapid_crashes:
                wait = 120
                log.warning("Many rapid crashes (%d). Waiting %ds...", crash_count, wait)
            else:
                wait = min(10 * crash_count, 60)

            log.info("Restarting in %ds (crash %d)...", wait, crash_count)
            time.sleep(wait)


def cli():
    sys.exit(run_with_auto_restart())
