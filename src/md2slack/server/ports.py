"""Pick a listening port, walking upward from the configured one if allowed."""

from __future__ import annotations

import logging
import socket

from md2slack.errors import PortUnavailable

logger = logging.getLogger(__name__)

MAX_PORT_TRIES = 20


def port_is_free(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def resolve_port(host: str, port: int, auto_increment: bool, *, max_tries: int = MAX_PORT_TRIES) -> int:
    host = host or "127.0.0.1"
    port = port if port > 0 else 8080
    for offset in range(max_tries):
        candidate = port + offset
        if port_is_free(host, candidate):
            if offset:
                logger.info("server event=port_walk requested=%d chosen=%d", port, candidate)
            return candidate
        if not auto_increment:
            raise PortUnavailable(f"port {port} unavailable")
    raise PortUnavailable(f"no available port found after {max_tries} attempts")
