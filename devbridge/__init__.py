"""Start, reuse and stop frontend dev servers for browser tests"""

from .bridge import Bridge
from .browser_mocks import BrowserMockTable, generate_mock_script
from .config import Config
from .definition import FrontendDefinition
from .exceptions import (
    BridgeError,
    ConfigurationError,
    DefinitionLockedError,
    PortConflictError,
    PortInUseError,
    ServerStartError,
)
from .fakes import FakeStore, url_matches
from .manager import FrontendManager
from .server import FrontendServer, ServerState
from .utils.server_markers import MarkerStatus, ServerMarkers

__version__ = "0.1.0"

__all__ = [
    'Bridge',
    'BrowserMockTable',
    'generate_mock_script',
    'Config',
    'FrontendDefinition',
    'BridgeError',
    'ConfigurationError',
    'DefinitionLockedError',
    'PortConflictError',
    'PortInUseError',
    'ServerStartError',
    'FakeStore',
    'url_matches',
    'FrontendManager',
    'FrontendServer',
    'ServerState',
    'MarkerStatus',
    'ServerMarkers',
]
