"""
Per-run registry of bridged frontends.

One Bridge is created per test run and passed through setup, navigation and
teardown. It owns the frontend URLs, the server manager, the HTTP fake file
and the browser mocks for that run.

Example Usage:
    bridge = Bridge(api_url="http://127.0.0.1:8000")
    bridge.add("http://localhost:5173") \\
        .serve("npm run dev", cwd="../frontend") \\
        .ready_when(r"VITE.*ready") \\
        .env({"VITE_AUTH_URL": "/auth"})

    url = bridge.prepare("/login")   # starts servers on first call
    ...
    bridge.reset()
"""
import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlsplit

from devbridge.browser_mocks import BrowserMockTable
from devbridge.config import Config
from devbridge.definition import FrontendDefinition
from devbridge.exceptions import ConfigurationError
from devbridge.fakes import FakeStore
from devbridge.http_probe import HttpProbe
from devbridge.manager import FrontendManager
from devbridge.utils.server_markers import ServerMarkers

logger = logging.getLogger("devbridge")


def validate_url(url: str) -> None:
    """Require an absolute URL with a scheme and host."""
    if not url or any(c.isspace() for c in url):
        raise ConfigurationError(f"Invalid URL: {url}")
    try:
        parsed = urlsplit(url)
        # .port raises ValueError for a malformed or out-of-range port
        valid = bool(parsed.scheme and parsed.hostname) and (parsed.port is None or parsed.port > 0)
    except ValueError:
        valid = False
    if not valid:
        raise ConfigurationError(f"Invalid URL: {url}")


def join_url(base: str, path: str) -> str:
    """Join base and path with exactly one slash between them."""
    return base.rstrip('/') + '/' + path.lstrip('/')


class Bridge:
    """Configuration registry and lifecycle owner for one test run."""

    def __init__(self, config: Optional[Config] = None,
                 api_url: Optional[str] = None,
                 probe: Optional[HttpProbe] = None):
        self.config = config or Config()
        self.api_url = api_url if api_url is not None else self.config.api_url
        self.markers = ServerMarkers(self.config.marker_dir)
        self.manager = FrontendManager(self.config, markers=self.markers, probe=probe, api_url=self.api_url)
        self.fakes = FakeStore(self.config.fake_config_path)
        self.browser_mocks = BrowserMockTable()
        self._default_url: Optional[str] = None
        self._frontends: Dict[str, str] = {}

    # Frontend registry

    def add(self, url: str, name: Optional[str] = None) -> FrontendDefinition:
        """
        Register a frontend. Without a name it becomes the default frontend.

        Raises:
            ConfigurationError: invalid URL or empty name
        """
        validate_url(url)
        if name == '':
            raise ConfigurationError('Frontend name cannot be empty')

        definition = FrontendDefinition(url, name, bridge=self)
        if name is None:
            self._default_url = url
        else:
            self._frontends[name] = url

        self.manager.register(definition)
        return definition

    def register_child(self, parent_url: str, path: str, name: str) -> None:
        """
        Register parent_url + path under name.

        A child is only a URL: it shares the parent's server and has no
        definition of its own, so there is nothing to serve() or configure.
        Use FrontendDefinition.child() to chain from the parent.
        """
        if not name:
            raise ConfigurationError('Frontend name cannot be empty')
        self._frontends[name] = join_url(parent_url, path)

    def url(self, name: Optional[str] = None) -> str:
        """
        URL of a frontend (the default one when name is None).

        Raises:
            ConfigurationError: the frontend is not configured
        """
        if name is None:
            if self._default_url is not None:
                return self._default_url
            if self.config.external_url:
                return self.config.external_url
            raise ConfigurationError(
                'Default frontend not configured. Call bridge.add(url) or set BRIDGE_EXTERNAL_URL'
            )

        if name not in self._frontends:
            raise ConfigurationError(f"Frontend '{name}' not configured. Call bridge.add(url, '{name}')")
        return self._frontends[name]

    def has(self, name: Optional[str] = None) -> bool:
        if name is None:
            return self._default_url is not None or bool(self.config.external_url)
        return name in self._frontends

    def build_url(self, path: str = '/', frontend: Optional[str] = None) -> str:
        """Full URL for path on a frontend."""
        return join_url(self.url(frontend), path)

    def prepare(self, path: str = '/', frontend: Optional[str] = None) -> str:
        """
        Make sure every server is up, then return the URL to navigate to.

        The first call starts all registered servers; later calls only build the URL.
        """
        url = self.build_url(path, frontend)
        self.manager.start_all()
        return url

    # HTTP fakes for the server under test

    def fake(self, rules: Mapping[str, Dict[str, Any]]) -> None:
        """
        Fake outbound HTTP calls made by the server under test.

            bridge.fake({
                'https://api.stripe.com/*': {'status': 200, 'body': {'id': 'ch_123'}},
            })

        The server must mount devbridge.consumer.BridgeFakeTransport.
        """
        self.fakes.fake(rules)

    def has_fakes(self) -> bool:
        return self.fakes.has_fakes()

    def get_fakes(self) -> Dict[str, Dict[str, Any]]:
        return self.fakes.get_fakes()

    def clear_fakes(self) -> None:
        self.fakes.clear_fakes()

    # Browser mocks

    def mock_browser(self, mocks: Mapping[str, Dict[str, Any]]) -> None:
        """Intercept matching fetch()/XHR calls made by page JavaScript."""
        self.browser_mocks.set(mocks)

    def clear_browser_mocks(self) -> None:
        self.browser_mocks.clear()

    def has_browser_mocks(self) -> bool:
        return self.browser_mocks.has_mocks()

    def browser_mock_script(self) -> Optional[str]:
        """Init script for the browser context, or None when no mocks are set."""
        if not self.browser_mocks.has_mocks():
            return None
        return self.browser_mocks.script()

    # Teardown

    def reset(self) -> None:
        """Stop owned servers, delete their markers and remove every fake and mock."""
        try:
            self.manager.reset()
        finally:
            self._default_url = None
            self._frontends = {}
            self.browser_mocks.clear()
            self.clear_fakes()

    def __enter__(self) -> "Bridge":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.reset()
