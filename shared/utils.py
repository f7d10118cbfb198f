from __future__ import annotations
from urllib.parse import urlparse

# ========================================
#           INPUT VALIDATION HELPERS
# ========================================
"""
Helpers used by the configuration layer to decide whether an address
given on the command line, in the environment or in a YAML file is usable.
"""

_WS_SCHEMES = ("ws", "wss")


def is_valid_port(port: object) -> bool:
    return isinstance(port, int) and not isinstance(port, bool) and 0 < port <= 65535


def is_hostport(s: str) -> bool:
    """
    Accepts 'hostname:port' or 'A.B.C.D:port'.

    Validates that:
    - String contains a colon
    - Port is a valid integer between 1 and 65535
    - Hostname is non-empty

    Examples: "localhost:8080", "192.168.1.5:8080", "example.com:443"
    """
    try:
        if ':' not in s:
            return False
        host, port_s = s.rsplit(':', 1)  # rsplit to handle IPv6 future-proofing
        if not host:  # Empty hostname
            return False
        return is_valid_port(int(port_s))
    except (TypeError, ValueError):
        return False


def is_ws_url(s: str) -> bool:
    """
    returns True for 'ws://host[:port][/path]' or 'wss://...' URLs.
    """
    try:
        parsed = urlparse(s)
        if parsed.scheme not in _WS_SCHEMES or not parsed.hostname:
            return False
        # .port raises ValueError on out of range values
        return parsed.port is None or is_valid_port(parsed.port)
    except (TypeError, ValueError):
        return False


def ws_url(host: str, port: int) -> str:
    return f"ws://{host}:{port}"
