"""
Exception types raised by devbridge.

Configuration problems surface at registration time, port problems before
anything is spawned, and startup problems carry the command and everything
the process printed.
"""
from typing import Optional


class BridgeError(Exception):
    """Base class for all devbridge errors."""


class ConfigurationError(BridgeError, ValueError):
    """Invalid URL, empty name, unknown frontend or bad definition value."""


class DefinitionLockedError(BridgeError):
    """A service definition was modified after its server began starting."""


class PortConflictError(BridgeError):
    """The target port is owned by something we must not reuse."""

    def __init__(self, message: str, port: int, url: str, recorded_cwd: Optional[str] = None):
        super().__init__(message)
        self.port = port
        self.url = url
        self.recorded_cwd = recorded_cwd

    @classmethod
    def mismatch(cls, port: int, url: str, recorded_cwd: str, expected_cwd: str) -> "PortConflictError":
        return cls(
            f"Port {port} is used by a different application.\n"
            f"\n"
            f"The frontend server at {url} cannot start because the port is claimed by\n"
            f"a server started from:\n"
            f"  {recorded_cwd}\n"
            f"but this service runs from:\n"
            f"  {expected_cwd}\n"
            f"\n"
            f"Stop that server or configure a different port.",
            port=port, url=url, recorded_cwd=recorded_cwd,
        )

    @classmethod
    def reoccupied(cls, port: int, url: str, recorded_cwd: str) -> "PortConflictError":
        return cls(
            f"Port {port} was taken over by another process.\n"
            f"\n"
            f"A previous server for {url} (started from {recorded_cwd}) has exited,\n"
            f"but something else is now listening on port {port}.\n"
            f"Free the port and run the tests again.",
            port=port, url=url, recorded_cwd=recorded_cwd,
        )


class PortInUseError(PortConflictError):
    """An unknown, unverified process is listening on the target port."""

    def __init__(self, port: int, url: str):
        message = (
            f"Port {port} is already in use.\n"
            f"\n"
            f"The frontend server at {url} cannot start because the port is occupied\n"
            f"by a process that devbridge did not start.\n"
            f"\n"
            f"This usually means:\n"
            f"  - A previous test run didn't clean up properly\n"
            f"  - Another development server is using this port\n"
            f"  - A background process is holding the port\n"
            f"\n"
            f"Options:\n"
            f"  1. Stop the process using port {port}:\n"
            f"     lsof -ti:{port} | xargs kill\n"
            f"\n"
            f"  2. Use a different port:\n"
            f"     bridge.add('http://localhost:XXXX')\n"
            f"\n"
            f"  3. Reuse the existing server (if it's yours):\n"
            f"     .trust_existing_server()\n"
            f"\n"
            f"  4. For Vite: add --strictPort to fail fast:\n"
            f"     .serve('npm run dev -- --strictPort', cwd=...)"
        )
        super().__init__(message, port=port, url=url)


class ServerStartError(BridgeError):
    """The service never became ready. Carries the command and captured output."""

    def __init__(self, reason: str, command: str, output: str, exit_code: Optional[int] = None):
        message = f"{reason}: {command}\nOutput: {output}"
        if exit_code is not None:
            message = f"{reason} (exit code {exit_code}): {command}\nOutput: {output}"
        super().__init__(message)
        self.reason = reason
        self.command = command
        self.output = output
        self.exit_code = exit_code
