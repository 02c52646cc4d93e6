"""
Fluent definition of one frontend service and how to run it.
"""
import re
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional, Union
from urllib.parse import urlsplit

from devbridge.exceptions import ConfigurationError, DefinitionLockedError

if TYPE_CHECKING:
    from devbridge.bridge import Bridge


# Covers most frontend dev servers:
#   Nuxt "Local: http://localhost:3000", Vite "VITE ready in 500ms",
#   Next.js "ready - started server", CRA "Compiled successfully!",
#   Angular "listening on localhost:4200", or any printed URL.
DEFAULT_READY_PATTERN = r'ready|localhost|started|listening|compiled|http://|https://'


class FrontendDefinition:
    """Describes one frontend: where it lives and, optionally, how to start it.

    Builder methods return the definition itself so calls can be chained.
    Validation of url and name happens when the definition is registered.
    Once its server begins starting the definition is locked.
    """

    def __init__(self, url: str, name: Optional[str] = None, bridge: Optional["Bridge"] = None):
        self.url = url
        self.name = name
        self._bridge = bridge
        self._command: Optional[str] = None
        self._cwd: Optional[str] = None
        self._ready_pattern = DEFAULT_READY_PATTERN
        self._warmup_ms = 0
        self._env_vars: Dict[str, str] = {}
        self._trust_existing = False
        self._locked = False

    def __repr__(self) -> str:
        return f"FrontendDefinition(url={self.url!r}, name={self.name!r}, command={self._command!r})"

    # Builder methods

    def serve(self, command: str, cwd: Optional[Union[str, Path]] = None) -> "FrontendDefinition":
        """
        Set the shell command that starts the frontend server

        Args:
            command: Shell command, e.g. 'npm run dev'
            cwd: Working directory for the command (defaults to the current directory)
        """
        self._ensure_mutable()
        self._command = command
        self._cwd = str(cwd) if cwd is not None else None
        return self

    def ready_when(self, pattern: str) -> "FrontendDefinition":
        """Set the regex (case-insensitive) that marks the server's output as ready"""
        self._ensure_mutable()
        try:
            re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise ConfigurationError(f"Invalid ready pattern {pattern!r}: {e}") from e
        self._ready_pattern = pattern
        return self

    def warmup(self, milliseconds: int) -> "FrontendDefinition":
        """
        Wait this long after the server is ready and reachable.

        Large frontends may report "ready" before they can serve a page quickly.
        """
        self._ensure_mutable()
        if milliseconds < 0:
            raise ConfigurationError(f"Warmup delay cannot be negative: {milliseconds}")
        self._warmup_ms = int(milliseconds)
        return self

    def env(self, variables: Dict[str, str]) -> "FrontendDefinition":
        """
        Inject extra variables pointing at the API under test.

        Each value is a path suffix appended to the API base URL, so
        {'VITE_AUTH_URL': '/auth'} becomes 'http://127.0.0.1:8000/auth'.
        """
        self._ensure_mutable()
        self._env_vars.update(variables)
        return self

    def trust_existing_server(self) -> "FrontendDefinition":
        """Reuse an unknown server already listening on the port instead of failing."""
        self._ensure_mutable()
        self._trust_existing = True
        return self

    def child(self, path: str, name: str) -> "FrontendDefinition":
        """
        Register a sub-path of this frontend under its own name.

        The child shares this definition's server process. Returns this
        definition so several children can be chained.
        """
        if self._bridge is None:
            raise ConfigurationError("child() requires a definition registered through Bridge.add()")
        self._bridge.register_child(self.url, path, name)
        return self

    # Accessors

    @property
    def command(self) -> Optional[str]:
        return self._command

    @property
    def cwd(self) -> Optional[str]:
        return self._cwd

    @property
    def ready_pattern(self) -> str:
        return self._ready_pattern

    @property
    def warmup_ms(self) -> int:
        return self._warmup_ms

    @property
    def env_vars(self) -> Dict[str, str]:
        return dict(self._env_vars)

    @property
    def trust_existing(self) -> bool:
        return self._trust_existing

    @property
    def locked(self) -> bool:
        return self._locked

    def has_serve_command(self) -> bool:
        return self._command is not None

    @property
    def port(self) -> int:
        """Port from the URL, falling back to the scheme default."""
        parsed = urlsplit(self.url)
        if parsed.port:
            return parsed.port
        return 443 if parsed.scheme == 'https' else 80

    @property
    def host(self) -> str:
        return urlsplit(self.url).hostname or 'localhost'

    def resolved_cwd(self) -> str:
        """Canonical absolute working directory the command runs in."""
        return str(Path(self._cwd or Path.cwd()).resolve())

    def lock(self) -> None:
        """Freeze the definition. Called by the server when it starts."""
        self._locked = True

    def _ensure_mutable(self) -> None:
        if self._locked:
            raise DefinitionLockedError(
                f"Frontend definition for {self.url} cannot be changed after its server started"
            )
