"""
Lifecycle of a single frontend development server.

Design Principles:
    1. Connection-first: reuse our own live server before spawning a new one
    2. Never talk to the wrong app: a port owned by another directory is an error
    3. Dual readiness: the ready banner AND a live HTTP answer are both required
    4. Only clean up what we started: reused servers are never terminated
"""

import codecs
import logging
import os
import re
import signal
import subprocess
import threading
import time
from enum import Enum
from typing import Dict, Optional
from urllib.parse import urlsplit

import psutil

from devbridge.config import Config
from devbridge.definition import FrontendDefinition
from devbridge.exceptions import PortConflictError, PortInUseError, ServerStartError
from devbridge.http_probe import HttpProbe, HttpxProbe
from devbridge.utils.server_markers import MarkerStatus, ServerMarkers

logger = logging.getLogger("devbridge.server")

# Variables every common frontend framework reads for its API base URL
API_URL_VARIABLES = (
    # Generic
    'API_URL',
    'API_BASE_URL',
    'BACKEND_URL',
    # Vite
    'VITE_API_URL',
    'VITE_API_BASE_URL',
    'VITE_BACKEND_URL',
    # Nuxt 3
    'NUXT_PUBLIC_API_BASE',
    'NUXT_PUBLIC_API_URL',
    # Next.js
    'NEXT_PUBLIC_API_URL',
    'NEXT_PUBLIC_API_BASE_URL',
    # Create React App
    'REACT_APP_API_URL',
    'REACT_APP_API_BASE_URL',
)

# Output kept for pattern matching and failure diagnostics
OUTPUT_BUFFER_LIMIT = 256 * 1024


class ServerState(str, Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    REUSING = "reusing"    # Someone else's live process; ready, never terminated by us
    READY = "ready"
    FAILED = "failed"
    STOPPED = "stopped"


class ProcessHandle:
    """A spawned process plus a background reader collecting its combined output."""

    def __init__(self, process: subprocess.Popen, ready_pattern: str,
                 buffer_limit: int = OUTPUT_BUFFER_LIMIT):
        self.process = process
        self._pattern = re.compile(ready_pattern, re.IGNORECASE)
        self._buffer_limit = buffer_limit
        self._output = ""
        self._lock = threading.Lock()
        self.matched = threading.Event()
        self._reader = threading.Thread(target=self._read_output, name=f"devbridge-output-{process.pid}",
                                        daemon=True)
        self._reader.start()

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def output(self) -> str:
        with self._lock:
            return self._output

    def is_running(self) -> bool:
        return self.process.poll() is None

    def _read_output(self) -> None:
        decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        stream = self.process.stdout
        while True:
            try:
                chunk = stream.read1(4096)
            except (OSError, ValueError):
                break  # Pipe closed during stop()
            if not chunk:
                break
            self._append(decoder.decode(chunk))
        self._append(decoder.decode(b'', final=True))

    def _append(self, text: str) -> None:
        if not text:
            return
        with self._lock:
            self._output += text
            if len(self._output) > self._buffer_limit:
                self._output = self._output[-self._buffer_limit:]
            if not self.matched.is_set() and self._pattern.search(self._output):
                self.matched.set()

    def wait_for_pattern(self, timeout: float, cancel: Optional[threading.Event] = None) -> str:
        """
        Block until the ready pattern appears in the output.

        Returns:
            'matched', 'exited' (process ended without a match),
            'timeout' or 'cancelled'
        """
        deadline = time.monotonic() + timeout
        while True:
            if self.matched.wait(0.05):
                return 'matched'
            if not self.is_running():
                # Drain whatever the process printed before exiting
                self._reader.join(timeout=2)
                return 'matched' if self.matched.is_set() else 'exited'
            if cancel is not None and cancel.is_set():
                return 'cancelled'
            if time.monotonic() >= deadline:
                return 'timeout'

    def terminate(self, grace: float) -> None:
        """
        Stop everything the command started: SIGTERM, wait grace seconds, then SIGKILL.

        On POSIX the command runs in its own session, so the whole process group
        is signalled. That also reaches servers left behind by a shell that has
        already exited (e.g. 'vite & echo ready').
        """
        if os.name == 'nt':
            self._terminate_tree(grace)
        else:
            self._terminate_group(grace)

        try:
            self.process.wait(timeout=2)
        except subprocess.TimeoutExpired:
            logger.error(f"Process {self.process.pid} unresponsive after SIGKILL")
        if self.process.stdout:
            self.process.stdout.close()
        self._reader.join(timeout=2)

    def _terminate_group(self, grace: float) -> None:
        pgid = self.process.pid
        if not self._signal_group(pgid, signal.SIGTERM):
            return
        if self._wait_for_group(pgid, grace):
            return

        logger.warning(f"Process group {pgid} did not stop gracefully, forcing shutdown...")
        if self._signal_group(pgid, signal.SIGKILL):
            self._wait_for_group(pgid, 2)

    @staticmethod
    def _signal_group(pgid: int, sig: int) -> bool:
        """Send sig to the process group. Returns False when the group is gone."""
        try:
            os.killpg(pgid, sig)
            return True
        except ProcessLookupError:
            return False
        except PermissionError as e:
            logger.warning(f"Cannot signal process group {pgid}: {e}")
            return False

    def _wait_for_group(self, pgid: int, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        while True:
            # Reap the session leader; an unreaped zombie keeps the group alive
            self.process.poll()
            if not self._group_has_live_members(pgid):
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.05)

    @staticmethod
    def _group_has_live_members(pgid: int) -> bool:
        """True while a non-zombie process remains in the group. Orphans reaped late count as gone."""
        try:
            os.killpg(pgid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        for proc in psutil.process_iter(['status']):
            try:
                if os.getpgid(proc.pid) == pgid and proc.info['status'] != psutil.STATUS_ZOMBIE:
                    return True
            except (ProcessLookupError, PermissionError):
                continue
        return False

    def _terminate_tree(self, grace: float) -> None:
        procs = []
        if self.is_running():
            try:
                parent = psutil.Process(self.process.pid)
                procs = parent.children(recursive=True) + [parent]
            except psutil.NoSuchProcess:
                pass

        for proc in procs:
            try:
                proc.terminate()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass

        _, alive = psutil.wait_procs(procs, timeout=grace)
        if alive:
            logger.warning(f"{len(alive)} process(es) did not stop gracefully, forcing shutdown...")
            for proc in alive:
                try:
                    proc.kill()
                except (psutil.NoSuchProcess, psutil.AccessDenied):
                    pass
            psutil.wait_procs(alive, timeout=2)


class FrontendServer:
    """Starts, reuses or rejects the server for one FrontendDefinition."""

    def __init__(self, definition: FrontendDefinition,
                 markers: Optional[ServerMarkers] = None,
                 probe: Optional[HttpProbe] = None,
                 config: Optional[Config] = None,
                 api_url: Optional[str] = None):
        self.definition = definition
        self.config = config or Config()
        self.markers = markers or ServerMarkers(self.config.marker_dir)
        self.probe = probe or HttpxProbe()
        self.api_url = api_url if api_url is not None else self.config.api_url
        self.state = ServerState.NOT_STARTED
        self.handle: Optional[ProcessHandle] = None
        self._port: Optional[int] = None

    def __repr__(self) -> str:
        return f"FrontendServer({self.definition.url!r}, state={self.state.value})"

    @property
    def reused(self) -> bool:
        return self.state == ServerState.REUSING

    def is_ready(self) -> bool:
        return self.state in (ServerState.READY, ServerState.REUSING)

    def is_running(self) -> bool:
        """True if this server owns a live process."""
        return self.handle is not None and self.handle.is_running()

    def start(self, cancel: Optional[threading.Event] = None) -> None:
        """
        Make the frontend available, spawning it only when needed.

        Args:
            cancel: Optional event; setting it aborts the wait for the ready pattern

        Raises:
            PortConflictError: the port belongs to another application
            PortInUseError: an unverified process holds the port
            ServerStartError: the process never became ready
        """
        if self.is_ready():
            return

        definition = self.definition
        definition.lock()

        command = definition.command
        if command is None:
            # Externally managed, nothing to control
            self.state = ServerState.READY
            return

        port = definition.port
        cwd = definition.resolved_cwd()
        url = definition.url

        recorded_cwd = self.markers.marker_cwd(port)
        status = self.markers.verify(port, cwd)

        if status == MarkerStatus.MATCH:
            logger.info(f"✅ Reusing our server on port {port} (started from {cwd})")
            self.state = ServerState.REUSING
            return

        if status == MarkerStatus.MISMATCH:
            raise PortConflictError.mismatch(port, url, recorded_cwd, cwd)

        if self.probe.is_listening(definition.host, port):
            if status == MarkerStatus.STALE:
                raise PortConflictError.reoccupied(port, url, recorded_cwd)
            if definition.trust_existing:
                logger.info(f"Port {port} already serving, trusting existing server for {url}")
                self.state = ServerState.REUSING
                return
            raise PortInUseError(port, url)

        self.state = ServerState.STARTING
        self._port = port
        try:
            self._spawn(command, cwd)
            self._wait_until_ready(command, cancel)
        except Exception:
            self.state = ServerState.FAILED
            self._discard_process()
            raise

        self.markers.write(port, cwd, command, self.handle.pid)
        self.state = ServerState.READY
        logger.info(f"✅ Frontend server ready at {url} (PID: {self.handle.pid})")

    def stop(self) -> None:
        """Stop the server if we started it. Safe to call repeatedly."""
        if self.state == ServerState.REUSING:
            logger.info(f"Leaving reused server for {self.definition.url} running")
            self.state = ServerState.STOPPED
            return

        try:
            if self.handle is not None and self._port is not None:
                self.markers.delete(self._port)
            if self.handle is not None and self.handle.is_running():
                logger.info(f"Stopping frontend server (PID: {self.handle.pid})...")
            self._discard_process()
        finally:
            self.handle = None
            self._port = None
            if self.state != ServerState.NOT_STARTED:
                self.state = ServerState.STOPPED

    def environment(self) -> Dict[str, str]:
        """Environment for the child: ours, overlaid with API URL variables."""
        env = dict(os.environ)
        if self.api_url:
            base = self.api_url.rstrip('/')
            for name in API_URL_VARIABLES:
                env[name] = base
            for name, suffix in self.definition.env_vars.items():
                env[name] = f"{base}/{suffix.lstrip('/')}" if suffix else base
        elif self.definition.env_vars:
            logger.warning("Custom env variables configured but no API URL known; skipping injection")
        return env

    def _spawn(self, command: str, cwd: str) -> None:
        logger.info(f"Starting frontend server: {command} (cwd: {cwd})")
        process = subprocess.Popen(
            command,
            shell=True,
            cwd=cwd,
            env=self.environment(),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            start_new_session=(os.name != 'nt'),
        )
        self.handle = ProcessHandle(process, self.definition.ready_pattern)
        logger.info(f"Frontend server process started with PID: {process.pid}")

    def _wait_until_ready(self, command: str, cancel: Optional[threading.Event]) -> None:
        handle = self.handle
        outcome = handle.wait_for_pattern(self.config.ready_timeout, cancel)

        if outcome != 'matched':
            if not handle.is_running():
                raise ServerStartError("Frontend server failed to start", command, handle.output,
                                       exit_code=handle.process.returncode)
            if outcome == 'cancelled':
                raise ServerStartError("Frontend server start was cancelled", command, handle.output)
            raise ServerStartError(
                f"Frontend server did not print its ready pattern within {self.config.ready_timeout:g}s",
                command, handle.output,
            )

        if self._wait_for_http():
            self._warm_up()
        elif self.config.fail_on_probe_timeout:
            raise ServerStartError(f"Frontend server is not reachable at {self.definition.url}",
                                   command, handle.output)
        else:
            logger.warning(f"⚠️ {self.definition.url} did not answer after "
                           f"{self.config.probe_attempts} attempts, continuing anyway")

    def _wait_for_http(self) -> bool:
        """Poll the URL at a fixed interval. Any HTTP status means reachable."""
        url = self.definition.url
        for attempt in range(self.config.probe_attempts):
            status = self.probe.check(url)
            if status > 0:
                logger.debug(f"{url} answered {status} on attempt {attempt + 1}")
                return True
            time.sleep(self.config.probe_interval)
        return False

    def _warm_up(self) -> None:
        parsed = urlsplit(self.definition.url)
        # Prime on-demand compilation before the first real page load
        self.probe.get(f"{parsed.scheme}://{parsed.netloc}/")

        if self.definition.warmup_ms > 0:
            logger.info(f"Warming up for {self.definition.warmup_ms}ms")
            time.sleep(self.definition.warmup_ms / 1000)

    def _discard_process(self) -> None:
        if self.handle is not None:
            self.handle.terminate(self.config.stop_grace)
