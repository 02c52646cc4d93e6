"""
Marker files identifying which frontend server owns a port.

Concrete purpose: remember which directory and PID started the server on a port,
so a later test run can tell its own server apart from a foreign application.
Easy to use correctly: write() after a successful start, verify() before the next one.
Hard to use incorrectly: atomic replace on write, stale and corrupt markers removed on read.

Marker file structure (one file per port):
    {
        "port": 5173,
        "cwd": "/path/to/frontend",
        "command": "npm run dev",
        "pid": 12345,
        "started_at": 1704288600
    }

Two orchestrators racing to claim the same free port can both succeed;
only the read-modify-write of a single marker is serialized.
"""

import logging
import tempfile
import time
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import psutil

from devbridge.utils.atomic_file_ops import AtomicFileOperations, CorruptFileError

logger = logging.getLogger("devbridge.markers")

MARKER_PREFIX = "bridge_server_"
MARKER_EXTENSION = ".json"


class MarkerStatus(str, Enum):
    MATCH = "match"        # Our server, still alive: reuse it
    STALE = "stale"        # Our server died: marker removed, start fresh
    MISMATCH = "mismatch"  # Another application's server owns the port
    NONE = "none"          # No marker: unknown occupant, if any


def is_pid_running(pid: int) -> bool:
    """Return True if pid is a live (non-zombie) process."""
    if pid <= 0 or not psutil.pid_exists(pid):
        return False
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        return True  # Exists but owned by someone else


def normalize_path(path: Union[str, Path]) -> str:
    """Canonical absolute form of path for comparison (symlinks resolved)."""
    return str(Path(path).resolve())


class ServerMarkers:
    """File-backed store of MarkerRecord dicts keyed by port."""

    def __init__(self, marker_dir: Optional[Union[str, Path]] = None):
        self.marker_dir = Path(marker_dir) if marker_dir else Path(tempfile.gettempdir())

    def path_for(self, port: int) -> Path:
        """Marker file path for a port."""
        return self.marker_dir / f"{MARKER_PREFIX}{port}{MARKER_EXTENSION}"

    def write(self, port: int, cwd: Union[str, Path], command: str, pid: int) -> Dict[str, Any]:
        """Record that pid, started from cwd with command, owns port. Replaces any prior marker."""
        marker = {
            'port': port,
            'cwd': normalize_path(cwd),
            'command': command,
            'pid': pid,
            'started_at': int(time.time()),
        }
        path = self.path_for(port)
        with AtomicFileOperations.lock_for(path):
            AtomicFileOperations.write_json_atomic(path, marker)
        logger.debug(f"Wrote marker for port {port} (PID {pid})")
        return marker

    def read(self, port: int) -> Optional[Dict[str, Any]]:
        """
        Read the marker for a port.

        Returns:
            Marker dict, or None when absent. Corrupt markers are deleted.
        """
        path = self.path_for(port)
        try:
            marker = AtomicFileOperations.read_json(path)
        except CorruptFileError as e:
            logger.warning(f"Removing corrupt marker file: {e}")
            self.delete(port)
            return None
        except OSError as e:
            logger.warning(f"Could not read marker {path}: {e}")
            return None

        if marker is None:
            return None
        if not self._is_well_formed(marker):
            logger.warning(f"Removing malformed marker file: {path}")
            self.delete(port)
            return None
        return marker

    def delete(self, port: int) -> None:
        """Remove the marker for a port. Safe when absent."""
        path = self.path_for(port)
        with AtomicFileOperations.lock_for(path):
            if AtomicFileOperations.remove(path):
                logger.debug(f"Deleted marker for port {port}")

    def verify(self, port: int, expected_cwd: Union[str, Path]) -> MarkerStatus:
        """
        Check who owns a port.

        Returns:
            MATCH: marker exists, cwd matches, PID alive -> safe to reuse
            STALE: marker exists, cwd matches, PID dead -> marker deleted, start fresh
            MISMATCH: marker exists but cwd differs -> different app, marker untouched
            NONE: no marker -> unknown process
        """
        marker = self.read(port)
        if marker is None:
            return MarkerStatus.NONE

        if normalize_path(expected_cwd) != marker['cwd']:
            return MarkerStatus.MISMATCH

        if not is_pid_running(marker['pid']):
            logger.info(f"Marker for port {port} is stale (PID {marker['pid']} is gone), removing")
            self.delete(port)
            return MarkerStatus.STALE

        return MarkerStatus.MATCH

    def marker_cwd(self, port: int) -> Optional[str]:
        """Working directory recorded for a port (for error messages)."""
        marker = self.read(port)
        return marker['cwd'] if marker else None

    def list_markers(self) -> List[Dict[str, Any]]:
        """All readable markers in the marker directory, sorted by port."""
        markers = []
        for path in sorted(self.marker_dir.glob(f"{MARKER_PREFIX}*{MARKER_EXTENSION}")):
            port_str = path.name[len(MARKER_PREFIX):-len(MARKER_EXTENSION)]
            if not port_str.isdigit():
                continue
            marker = self.read(int(port_str))
            if marker is not None:
                markers.append(marker)
        return sorted(markers, key=lambda m: m['port'])

    def prune_stale(self) -> List[int]:
        """Delete markers whose PID is gone. Returns the ports that were cleaned."""
        pruned = []
        for marker in self.list_markers():
            if not is_pid_running(marker['pid']):
                self.delete(marker['port'])
                pruned.append(marker['port'])
        return pruned

    @staticmethod
    def _is_well_formed(marker: Any) -> bool:
        if not isinstance(marker, dict):
            return False
        return (isinstance(marker.get('cwd'), str)
                and isinstance(marker.get('pid'), int)
                and isinstance(marker.get('port'), int))
