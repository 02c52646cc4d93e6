"""
Test helper utilities: a recording fake HTTP probe, port allocation and
small real servers for integration tests.
"""

import shlex
import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Set

import httpx

from devbridge.config import Config
from devbridge.http_probe import HttpProbe


class FakeHttpProbe(HttpProbe):
    """Configurable probe that records every request it receives."""

    def __init__(self, default_check: int = 200, default_get: Optional[str] = ''):
        self.check_responses: Dict[str, int] = {}
        self.get_responses: Dict[str, Optional[str]] = {}
        self.listening: Set[int] = set()
        self.default_check = default_check
        self.default_get = default_get
        self.requests: List[Dict] = []

    def fake_check(self, url: str, status: int) -> "FakeHttpProbe":
        self.check_responses[url] = status
        return self

    def fake_get(self, url: str, body: Optional[str]) -> "FakeHttpProbe":
        self.get_responses[url] = body
        return self

    def set_listening(self, port: int) -> "FakeHttpProbe":
        self.listening.add(port)
        return self

    def check(self, url: str, timeout: float = 1.0) -> int:
        self.requests.append({'method': 'HEAD', 'url': url, 'timeout': timeout})
        return self.check_responses.get(url, self.default_check)

    def get(self, url: str, timeout: float = 10.0) -> Optional[str]:
        self.requests.append({'method': 'GET', 'url': url, 'timeout': timeout})
        return self.get_responses.get(url, self.default_get)

    def is_listening(self, host: str, port: int, timeout: float = 1.0) -> bool:
        self.requests.append({'method': 'CONNECT', 'url': f"{host}:{port}", 'timeout': timeout})
        return port in self.listening

    def was_requested(self, url: str, method: Optional[str] = None) -> bool:
        return self.request_count(url, method) > 0

    def request_count(self, url: str, method: Optional[str] = None) -> int:
        return sum(1 for r in self.requests
                   if r['url'] == url and (method is None or r['method'] == method))


def make_config(tmp_dir: Path, **overrides: str) -> Config:
    """Config isolated from the real environment, rooted in tmp_dir."""
    environ = {
        'BRIDGE_MARKER_DIR': str(tmp_dir / 'markers'),
        'BRIDGE_FAKE_CONFIG_PATH': str(tmp_dir / 'bridge_http_fakes.json'),
        'BRIDGE_READY_TIMEOUT': '10',
        'BRIDGE_PROBE_ATTEMPTS': '3',
        'BRIDGE_PROBE_INTERVAL': '0',
        'BRIDGE_STOP_GRACE': '2',
    }
    environ.update(overrides)
    return Config(environ=environ, env_file=tmp_dir / 'missing.env')


def get_available_port() -> int:
    """Ask the OS for a free TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


def dead_pid() -> int:
    """PID of a process that has already exited."""
    proc = subprocess.Popen([sys.executable, '-c', 'pass'])
    proc.wait()
    return proc.pid


def python_command(code: str) -> str:
    """Shell command running a Python snippet with unbuffered output."""
    return f"{shlex.quote(sys.executable)} -u -c {shlex.quote(code)}"


def http_server_command(port: int) -> str:
    """Shell command for a static HTTP server that prints 'Serving HTTP on ...' when ready."""
    return f"{shlex.quote(sys.executable)} -u -m http.server {port} --bind 127.0.0.1"


def wait_for_server(url: str, timeout: float = 10.0) -> bool:
    """Poll url until anything answers."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            httpx.get(url, timeout=1.0)
            return True
        except httpx.HTTPError:
            time.sleep(0.1)
    return False


def wait_for_port_free(port: int, timeout: float = 10.0) -> bool:
    """Poll until nothing accepts connections on port."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            with socket.create_connection(('127.0.0.1', port), timeout=0.5):
                pass
        except OSError:
            return True
        time.sleep(0.1)
    return False
