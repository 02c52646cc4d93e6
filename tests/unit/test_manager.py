"""
Unit tests for FrontendManager orchestration across several servers.
"""
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from devbridge.definition import FrontendDefinition
from devbridge.exceptions import ServerStartError
from devbridge.manager import FrontendManager
from devbridge.server import FrontendServer, ServerState
from tests.test_helpers import FakeHttpProbe, make_config


class TestFrontendManager:

    def setup_method(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.manager = FrontendManager(make_config(Path(self._tmp.name)), probe=FakeHttpProbe())

    def teardown_method(self):
        self.manager.reset()
        self._tmp.cleanup()

    def test_register_keys_by_name(self):
        default = self.manager.register(FrontendDefinition("http://localhost:5173"))
        admin = self.manager.register(FrontendDefinition("http://localhost:5174", "admin"))

        assert self.manager.get() is default
        assert self.manager.get("admin") is admin
        assert self.manager.get("missing") is None
        assert self.manager.servers() == [default, admin]

    def test_has_servers_only_counts_serve_commands(self):
        self.manager.register(FrontendDefinition("http://localhost:5173"))
        assert not self.manager.has_servers()

        self.manager.register(FrontendDefinition("http://localhost:5174", "app").serve("npm run dev"))
        assert self.manager.has_servers()

    def test_reregistering_replaces_and_stops_previous(self):
        first = self.manager.register(FrontendDefinition("http://localhost:5173"))
        first.start()

        second = self.manager.register(FrontendDefinition("http://localhost:5180"))

        assert first.state == ServerState.STOPPED
        assert self.manager.servers() == [second]

    def test_start_all_runs_once(self):
        self.manager.register(FrontendDefinition("http://localhost:5173"))
        self.manager.register(FrontendDefinition("http://localhost:5174", "admin"))

        with patch.object(FrontendServer, 'start', autospec=True) as start:
            self.manager.start_all()
            self.manager.start_all()

        assert start.call_count == 2
        assert self.manager.started

    def test_start_all_failure_leaves_manager_unstarted(self):
        self.manager.register(FrontendDefinition("http://localhost:5173"))
        error = ServerStartError("Frontend server failed to start", "npm run dev", "boom")

        with patch.object(FrontendServer, 'start', autospec=True, side_effect=error):
            with pytest.raises(ServerStartError):
                self.manager.start_all()

        assert not self.manager.started

    def test_reset_stops_everything(self):
        default = self.manager.register(FrontendDefinition("http://localhost:5173"))
        self.manager.start_all()
        assert default.is_ready()

        self.manager.reset()

        assert default.state == ServerState.STOPPED
        assert self.manager.servers() == []
        assert not self.manager.started

    def test_stop_all_attempts_every_server(self):
        self.manager.register(FrontendDefinition("http://localhost:5173"))
        self.manager.register(FrontendDefinition("http://localhost:5174", "admin"))
        calls = []

        def failing_stop(server):
            calls.append(server.definition.url)
            raise RuntimeError("stop failed")

        with patch.object(FrontendServer, 'stop', autospec=True, side_effect=failing_stop):
            with pytest.raises(RuntimeError):
                self.manager.stop_all()

        assert calls == ["http://localhost:5173", "http://localhost:5174"]
