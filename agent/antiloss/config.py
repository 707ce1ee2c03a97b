"""
Paths, logging setup, config load/save, safe_print.
"""

import os
import json
import sys
import logging
from pathlib import Path


# ─── Paths ───────────────────────────────────────────────────────
# One config + credential file per installation. ANTILOSS_HOME moves
# everything (used by tests and by --home).

def _default_base_dir():
    env_home = os.environ.get("ANTILOSS_HOME")
    if env_home:
        return Path(env_home)
    return Path.home() / ".antiloss"


BASE_DIR = _default_base_dir()


def config_file(base_dir=None):
    return Path(base_dir or BASE_DIR) / "config.json"


def credentials_file(base_dir=None):
    return Path(base_dir or BASE_DIR) / "credentials.json"


def log_file(base_dir=None):
    return Path(base_dir or BASE_DIR) / "agent.log"


# ─── Safe print (no crash when stdout is gone) ───────────────────

def safe_print(*args, **kwargs):
    try:
        print(*args, **kwargs)
    except (OSError, ValueError):
        pass


# ─── Logging ─────────────────────────────────────────────────────

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_BYTES = 1_000_000

log = logging.getLogger("antiloss")


def setup_logging(base_dir=None, level=logging.INFO):
    """Attach file + console handlers to the agent logger (idempotent)."""
    if log.handlers:
        return log

    path = log_file(base_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        if path.exists() and path.stat().st_size > MAX_LOG_BYTES:
            path.write_text("")
    except OSError:
        pass

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    file_handler = logging.FileHandler(str(path), encoding="utf-8")
    file_handler.setFormatter(formatter)
    log.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    log.addHandler(console_handler)

    log.setLevel(level)
    log.propagate = False
    return log


# ─── Config Management ──────────────────────────────────────────

def load_config(base_dir=None):
    """Load config from disk. Returns dict (empty if missing or unreadable)."""
    path = config_file(base_dir)
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                return data
        except (json.JSONDecodeError, IOError):
            log.warning("Config at %s is unreadable — using defaults", path)
    return {}


def save_config(config, base_dir=None):
    """Save config dict to disk."""
    path = config_file(base_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)
    log.info("Config saved to %s", path)
