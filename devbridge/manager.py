"""
Lifecycle of all frontend servers registered for one test run.
"""
import logging
from typing import Dict, List, Optional

from devbridge.config import Config
from devbridge.definition import FrontendDefinition
from devbridge.http_probe import HttpProbe
from devbridge.server import FrontendServer
from devbridge.utils.server_markers import ServerMarkers

logger = logging.getLogger("devbridge.manager")

DEFAULT_KEY = 'default'


class FrontendManager:
    """Holds one FrontendServer per registered definition.

    start_all() runs once per manager; create a new manager for a new run.
    """

    def __init__(self, config: Optional[Config] = None,
                 markers: Optional[ServerMarkers] = None,
                 probe: Optional[HttpProbe] = None,
                 api_url: Optional[str] = None):
        self.config = config or Config()
        self.markers = markers or ServerMarkers(self.config.marker_dir)
        self.probe = probe
        self.api_url = api_url
        self._servers: Dict[str, FrontendServer] = {}
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def register(self, definition: FrontendDefinition) -> FrontendServer:
        """Create (but do not start) the server for a definition."""
        key = definition.name or DEFAULT_KEY
        server = FrontendServer(
            definition,
            markers=self.markers,
            probe=self.probe,
            config=self.config,
            api_url=self.api_url,
        )
        previous = self._servers.get(key)
        if previous is not None:
            previous.stop()
        self._servers[key] = server
        return server

    def get(self, name: Optional[str] = None) -> Optional[FrontendServer]:
        return self._servers.get(name or DEFAULT_KEY)

    def servers(self) -> List[FrontendServer]:
        return list(self._servers.values())

    def has_servers(self) -> bool:
        """True if any registered definition has a serve command."""
        return any(server.definition.has_serve_command() for server in self._servers.values())

    def start_all(self) -> None:
        """
        Start every registered server, once.

        Servers start sequentially in registration order. A failure propagates
        and leaves the manager unstarted so the next call retries.
        """
        if self._started:
            return

        servers = self.servers()
        if servers:
            logger.info(f"Starting {len(servers)} frontend server(s)...")
        for server in servers:
            server.start()

        self._started = True

    def stop_all(self) -> None:
        """Stop every server. Every server gets a stop() attempt even if one fails."""
        errors = []
        for server in self._servers.values():
            try:
                server.stop()
            except Exception as e:
                logger.error(f"Error stopping {server.definition.url}: {e}")
                errors.append(e)
        if errors:
            raise errors[0]

    def reset(self) -> None:
        """Stop all servers and discard every registration."""
        try:
            self.stop_all()
        finally:
            self._servers.clear()
            self._started = False
