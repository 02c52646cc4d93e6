"""
File-based HTTP fakes shared between the test process and the server under test.

The test process writes rules with FakeStore.fake(); the server process, which
cannot see the test's memory, reads the same file on each outbound request
(see devbridge.consumer).

File format (JSON, pattern order preserved, first match wins):
    {
        "https://api.stripe.com/*": {"status": 200, "body": {"id": "ch_123"}},
        "https://api.sendgrid.com/*": {"status": 202, "headers": {"X-Id": "1"}}
    }
"""
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from devbridge.utils.atomic_file_ops import AtomicFileOperations, CorruptFileError

logger = logging.getLogger("devbridge.fakes")

DEFAULT_STATUS = 200


@lru_cache(maxsize=256)
def _compile_pattern(pattern: str) -> "re.Pattern[str]":
    # Everything literal except '*', which matches any substring
    return re.compile('.*'.join(re.escape(part) for part in pattern.split('*')), re.DOTALL)


def url_matches(pattern: str, url: str) -> bool:
    """Wildcard match anchored to the whole URL."""
    return _compile_pattern(pattern).fullmatch(url) is not None


def find_rule(rules: Mapping[str, Dict[str, Any]], url: str) -> Optional[Tuple[str, Dict[str, Any]]]:
    """Return (pattern, rule) for the first pattern matching url, in insertion order."""
    for pattern, rule in rules.items():
        if url_matches(pattern, url):
            return pattern, rule
    return None


def normalize_rule(rule: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Fill in defaults: status 200, empty body, no headers.

    Never raises: missing or null fields get their default, and an unusable
    status or headers value is logged and replaced, so a bad rule cannot
    break the request it answers.
    """
    if not isinstance(rule, dict):
        rule = {}

    status = rule.get('status')
    if status is None:
        status = DEFAULT_STATUS
    try:
        status = int(status)
    except (TypeError, ValueError):
        logger.warning(f"Invalid fake status {status!r}, using {DEFAULT_STATUS}")
        status = DEFAULT_STATUS

    body = rule.get('body')
    headers = rule.get('headers') or {}
    if not isinstance(headers, dict):
        logger.warning(f"Ignoring fake headers {headers!r}: expected an object")
        headers = {}

    return {
        'status': status,
        'body': {} if body is None else body,
        'headers': dict(headers),
    }


class FakeStore:
    """Reads and writes the shared fake configuration file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def fake(self, rules: Mapping[str, Dict[str, Any]]) -> None:
        """
        Replace the active fakes with rules.

        Raises:
            OSError, TypeError: the file could not be written; the fakes would not take effect
        """
        AtomicFileOperations.write_json_atomic(self.path, dict(rules))
        logger.info(f"Registered {len(rules)} HTTP fake(s) in {self.path}")

    def has_fakes(self) -> bool:
        return self.path.exists()

    def get_fakes(self) -> Dict[str, Dict[str, Any]]:
        """Active fakes, or {} when none are registered or the file is unreadable."""
        try:
            data = AtomicFileOperations.read_json(self.path)
        except (CorruptFileError, OSError) as e:
            logger.warning(f"Ignoring unreadable fake config: {e}")
            return {}

        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring fake config {self.path}: expected a JSON object")
            return {}
        return data

    def clear_fakes(self) -> None:
        """Remove all fakes. Safe when none are registered."""
        if AtomicFileOperations.remove(self.path):
            logger.info("Cleared HTTP fakes")

    def match(self, url: str) -> Optional[Dict[str, Any]]:
        """Normalized rule for the first fake matching url, or None."""
        found = find_rule(self.get_fakes(), url)
        if found is None:
            return None
        return normalize_rule(found[1])
