"""Tests for health check endpoints."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from nsx_operator.health import HealthState, create_combined_wsgi_app, start_health_server


def environ(path: str) -> dict:
    return {
        "REQUEST_METHOD": "GET",
        "PATH_INFO": path,
        "SCRIPT_NAME": "",
        "SERVER_NAME": "localhost",
        "SERVER_PORT": "8080",
        "wsgi.url_scheme": "http",
    }


def call(app, path: str) -> tuple[str, bytes]:
    start_response = MagicMock()
    body = b"".join(app(environ(path), start_response))
    return start_response.call_args[0][0], body


class TestHealthState:
    """Test cases for HealthState."""

    def test_no_checks_is_ready(self):
        """Test an empty state is ready."""
        assert HealthState().unready() == []

    def test_failing_checks_are_listed(self):
        """Test failing and raising checks are reported by name."""
        state = HealthState()
        state.register("ok", lambda: True)
        state.register("store", lambda: False)
        state.register("broken", MagicMock(side_effect=RuntimeError("x")))
        assert state.unready() == ["broken", "store"]


class TestCombinedApp:
    """Test cases for the combined WSGI application."""

    def test_healthz(self):
        """Test /healthz always answers ok."""
        state = HealthState()
        state.register("store", lambda: False)
        status, body = call(create_combined_wsgi_app(state), "/healthz")
        assert status.startswith("200")
        assert b'"status":"ok"' in body

    def test_readyz_ready(self):
        """Test /readyz answers 200 once every check passes."""
        state = HealthState()
        state.register("store", lambda: True)
        status, body = call(create_combined_wsgi_app(state), "/readyz")
        assert status.startswith("200")
        assert b'"status":"ready"' in body

    def test_readyz_not_ready(self):
        """Test /readyz answers 503 and names the failing checks."""
        state = HealthState()
        state.register("ipaddressallocation-store", lambda: False)
        status, body = call(create_combined_wsgi_app(state), "/readyz")
        assert status.startswith("503")
        assert b"ipaddressallocation-store" in body

    @patch("nsx_operator.health.make_wsgi_app")
    def test_delegates_to_metrics(self, mock_make_wsgi):
        """Test other paths are served by the prometheus app."""
        metrics_app = MagicMock(return_value=[b"metrics"])
        mock_make_wsgi.return_value = metrics_app
        app = create_combined_wsgi_app(HealthState())

        start_response = MagicMock()
        assert app(environ("/metrics"), start_response) == [b"metrics"]
        metrics_app.assert_called_once()


class TestStartHealthServer:
    """Test cases for start_health_server."""

    @patch("nsx_operator.health.make_server")
    @patch("nsx_operator.health.threading.Thread")
    def test_starts_daemon_thread(self, mock_thread, mock_make_server):
        """Test the server runs on a daemon thread."""
        server = MagicMock()
        mock_make_server.return_value = server

        assert start_health_server(8080, HealthState()) is server
        assert mock_make_server.call_args[0][:2] == ("", 8080)
        assert mock_thread.call_args[1]["daemon"] is True
        mock_thread.return_value.start.assert_called_once()
