"""
Unit tests for the file-based HTTP fake store and wildcard matching.
"""
import json
import tempfile
from pathlib import Path

import pytest

from devbridge.fakes import FakeStore, find_rule, normalize_rule, url_matches


@pytest.mark.parametrize("pattern,url,expected", [
    ("https://api.stripe.com/*", "https://api.stripe.com/v1/charges", True),
    ("https://api.stripe.com/*", "https://api.stripe.com/", True),
    ("https://api.stripe.com/*", "https://api.stripe.com", False),
    ("*/api/users", "http://localhost:8000/api/users", True),
    ("*/api/users", "http://localhost:8000/api/users/1", False),
    ("https://api.example.com/v1/users", "https://api.example.com/v1/users", True),
    ("https://api.example.com/v1/users", "https://api.example.com/v1/users?page=2", False),
    ("https://*.example.com/*", "https://cdn.example.com/a.js", True),
    ("https://api.example.com/v1.0/*", "https://api.example.com/v1x0/x", False),
    ("https://api.example.com/search?q=*", "https://api.example.com/search?q=hello", True),
    ("*", "anything at all", True),
])
def test_url_matches(pattern, url, expected):
    assert url_matches(pattern, url) is expected


def test_find_rule_first_match_wins():
    rules = {
        "https://api.example.com/users/*": {"status": 404},
        "https://api.example.com/*": {"status": 200},
    }
    assert find_rule(rules, "https://api.example.com/users/1") == (
        "https://api.example.com/users/*", {"status": 404})
    assert find_rule(rules, "https://api.example.com/orders")[1] == {"status": 200}
    assert find_rule(rules, "https://other.example.com/") is None


def test_normalize_rule_defaults():
    assert normalize_rule({}) == {'status': 200, 'body': {}, 'headers': {}}
    assert normalize_rule(None) == {'status': 200, 'body': {}, 'headers': {}}
    assert normalize_rule({'status': 500, 'body': 'boom', 'headers': {'X-A': '1'}}) == {
        'status': 500, 'body': 'boom', 'headers': {'X-A': '1'}}


@pytest.mark.parametrize("rule", [
    {'status': None, 'body': None, 'headers': None},
    {'status': 'not-a-number'},
    {'status': [500]},
    {'headers': ['X-A', '1']},
])
def test_normalize_rule_tolerates_bad_values(rule):
    normalized = normalize_rule(rule)

    assert normalized['status'] == 200
    assert normalized['body'] == {}
    assert normalized['headers'] == {}


def test_normalize_rule_accepts_numeric_string_status():
    assert normalize_rule({'status': '404'})['status'] == 404


class TestFakeStore:

    def setup_method(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "bridge_http_fakes.json"
        self.store = FakeStore(self.path)

    def teardown_method(self):
        self._tmp.cleanup()

    def test_no_fakes_initially(self):
        assert not self.store.has_fakes()
        assert self.store.get_fakes() == {}
        assert self.store.match("https://api.stripe.com/v1") is None

    def test_fake_writes_file_readable_by_another_store(self):
        rules = {"https://api.stripe.com/*": {"status": 201, "body": {"id": "ch_1"}}}
        self.store.fake(rules)

        assert self.store.has_fakes()
        assert json.loads(self.path.read_text()) == rules
        assert FakeStore(self.path).get_fakes() == rules

    def test_fake_replaces_previous_rules(self):
        self.store.fake({"https://a.test/*": {}})
        self.store.fake({"https://b.test/*": {}})

        assert list(self.store.get_fakes()) == ["https://b.test/*"]

    def test_pattern_order_preserved(self):
        rules = {f"https://host{i}.test/*": {"status": 200 + i} for i in range(10)}
        self.store.fake(rules)

        assert list(self.store.get_fakes()) == list(rules)

    def test_clear_fakes_is_idempotent(self):
        self.store.fake({"https://a.test/*": {}})
        self.store.clear_fakes()
        self.store.clear_fakes()

        assert not self.store.has_fakes()

    def test_corrupt_file_reads_as_empty(self):
        self.path.write_text("{oops")
        assert self.store.get_fakes() == {}

    def test_non_object_file_reads_as_empty(self):
        self.path.write_text("[1, 2, 3]")
        assert self.store.get_fakes() == {}

    def test_match_returns_normalized_rule(self):
        self.store.fake({"https://api.sendgrid.com/*": {"status": 202}})

        assert self.store.match("https://api.sendgrid.com/v3/mail/send") == {
            'status': 202, 'body': {}, 'headers': {}}
        assert self.store.match("https://api.stripe.com/v1") is None

    def test_match_with_null_status_uses_default(self):
        self.store.fake({"https://api.example.com/*": {"status": None, "body": {"ok": True}}})

        assert self.store.match("https://api.example.com/v1") == {
            'status': 200, 'body': {'ok': True}, 'headers': {}}

    def test_unserializable_rules_raise(self):
        with pytest.raises(TypeError):
            self.store.fake({"https://a.test/*": {"body": object()}})
