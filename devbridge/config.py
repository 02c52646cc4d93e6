"""
Configuration management for devbridge
"""
import os
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Union

from dotenv import dotenv_values


_TRUE_VALUES = {'1', 'true', 'yes', 'on'}


class Config:
    """Configuration settings, read from BRIDGE_* variables and an optional .env file"""

    def __init__(self, environ: Optional[Mapping[str, str]] = None,
                 env_file: Optional[Path] = None):
        self._values = self._load(environ, env_file)
        self._errors: List[str] = []
        temp_dir = Path(tempfile.gettempdir())

        # Paths
        self.marker_dir = Path(self._get('BRIDGE_MARKER_DIR', str(temp_dir)))
        self.fake_config_path = Path(self._get('BRIDGE_FAKE_CONFIG_PATH',
                                               str(temp_dir / 'bridge_http_fakes.json')))

        # URLs
        self.api_url = self._get('BRIDGE_API_URL')
        self.external_url = self._get('BRIDGE_EXTERNAL_URL')

        # Timeouts
        self.ready_timeout = self._number('BRIDGE_READY_TIMEOUT', 120.0, float)
        self.probe_attempts = self._number('BRIDGE_PROBE_ATTEMPTS', 30, int)
        self.probe_interval = self._number('BRIDGE_PROBE_INTERVAL', 0.5, float)
        self.stop_grace = self._number('BRIDGE_STOP_GRACE', 3.0, float)

        self.fail_on_probe_timeout = self._get('BRIDGE_FAIL_ON_PROBE_TIMEOUT', '').lower() in _TRUE_VALUES

    @staticmethod
    def _load(environ: Optional[Mapping[str, str]], env_file: Optional[Path]) -> Dict[str, str]:
        """Merge .env values under the real environment (environment wins)."""
        env_file = env_file if env_file is not None else Path.cwd() / '.env'
        values: Dict[str, str] = {}
        if env_file.is_file():
            values.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
        values.update(os.environ if environ is None else environ)
        return values

    def _get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self._values.get(name)
        return value if value else default

    def _number(self, name: str, default: Union[int, float],
                cast: Callable[[str], Union[int, float]]) -> Union[int, float]:
        """Parse a numeric setting; a malformed value is reported by validate()."""
        raw = self._get(name)
        if raw is None:
            return default
        try:
            return cast(raw.strip())
        except ValueError:
            kind = 'an integer' if cast is int else 'a number'
            self._errors.append(f"{name} must be {kind}, got {raw!r}")
            return default

    def validate(self) -> tuple[bool, str]:
        """Validate configuration"""
        if self._errors:
            return False, self._errors[0]

        if self.ready_timeout <= 0:
            return False, "BRIDGE_READY_TIMEOUT must be positive"

        if self.probe_attempts < 1:
            return False, "BRIDGE_PROBE_ATTEMPTS must be at least 1"

        if self.probe_interval < 0 or self.stop_grace < 0:
            return False, "BRIDGE_PROBE_INTERVAL and BRIDGE_STOP_GRACE cannot be negative"

        return True, "Configuration valid"
