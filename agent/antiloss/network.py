"""
Network utilities — connection-type label and server reachability.

Connection type: derived from the interfaces psutil reports as up,
reduced to the labels the server understands (WIFI / ETHERNET / MOBILE /
UNKNOWN), or OFFLINE when nothing but loopback is up.
"""

import socket
from urllib.parse import urlsplit

import psutil

from .config import log
from .constants import (
    NETWORK_WIFI, NETWORK_ETHERNET, NETWORK_MOBILE, NETWORK_UNKNOWN, NETWORK_OFFLINE,
)

_WIFI_PREFIXES = ("wl", "wifi", "wi-fi", "wlan", "airport")
_MOBILE_PREFIXES = ("wwan", "rmnet", "ccmni", "ppp", "usb", "cellular")
_ETHERNET_PREFIXES = ("eth", "en", "em", "ethernet")
_IGNORED_PREFIXES = ("lo", "docker", "veth", "br-", "virbr", "tun", "tap", "utun")


def classify_interface(name):
    lowered = name.lower()
    if lowered.startswith(_IGNORED_PREFIXES):
        return None
    if lowered.startswith(_WIFI_PREFIXES):
        return NETWORK_WIFI
    if lowered.startswith(_MOBILE_PREFIXES):
        return NETWORK_MOBILE
    if lowered.startswith(_ETHERNET_PREFIXES):
        return NETWORK_ETHERNET
    return NETWORK_UNKNOWN


def network_type(stats=None):
    """Label of the active connection. WIFI > ETHERNET > MOBILE > UNKNOWN."""
    if stats is None:
        try:
            stats = psutil.net_if_stats()
        except OSError as e:
            log.warning("Interface stats unavailable: %s", e)
            return NETWORK_UNKNOWN

    labels = set()
    for name, st in stats.items():
        if not st.isup:
            continue
        label = classify_interface(name)
        if label:
            labels.add(label)

    if not labels:
        return NETWORK_OFFLINE
    for preferred in (NETWORK_WIFI, NETWORK_ETHERNET, NETWORK_MOBILE):
        if preferred in labels:
            return preferred
    return NETWORK_UNKNOWN


def is_online(server_url, timeout=4):
    """TCP connect to the server's host — True if a connection can be established."""
    parts = urlsplit(server_url)
    host = parts.hostname
    if not host:
        return False
    port = parts.port or (443 if parts.scheme == "https" else 80)
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
        sock.close()
        return True
    except OSError:
        return False
