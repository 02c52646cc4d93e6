"""
HTTP reachability checks used while waiting for a service to come up.
"""
import logging
import socket
from typing import Optional

import httpx

logger = logging.getLogger("devbridge.http")


class HttpProbe:
    """Interface for the HTTP operations the orchestrator needs.

    Swappable so tests can drive readiness without a real server.
    """

    def check(self, url: str, timeout: float = 1.0) -> int:
        """Return the HTTP status for url, or 0 if nothing answered."""
        raise NotImplementedError

    def get(self, url: str, timeout: float = 10.0) -> Optional[str]:
        """Fetch url and return the body, or None on connection failure."""
        raise NotImplementedError

    def is_listening(self, host: str, port: int, timeout: float = 1.0) -> bool:
        """Return True if something accepts TCP connections on host:port."""
        raise NotImplementedError


class HttpxProbe(HttpProbe):
    """httpx-backed probe. Any status code counts as reachable."""

    def check(self, url: str, timeout: float = 1.0) -> int:
        try:
            response = httpx.head(url, timeout=timeout)
            return response.status_code
        except httpx.HTTPError as e:
            logger.debug(f"HEAD {url} failed: {type(e).__name__}: {e}")
            return 0

    def get(self, url: str, timeout: float = 10.0) -> Optional[str]:
        try:
            response = httpx.get(url, timeout=httpx.Timeout(timeout, connect=timeout / 2))
            return response.text
        except httpx.HTTPError as e:
            logger.debug(f"GET {url} failed: {type(e).__name__}: {e}")
            return None

    def is_listening(self, host: str, port: int, timeout: float = 1.0) -> bool:
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError:
            return False
