"""Health check and metrics endpoints for the operator."""

from __future__ import annotations

import threading
from typing import Any, Callable

from prometheus_client import make_wsgi_app
from werkzeug.serving import make_server
from werkzeug.wrappers import Response

ReadinessCheck = Callable[[], bool]


class HealthState:
    """Readiness checks registered by components during startup."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._checks: dict[str, ReadinessCheck] = {}

    def register(self, name: str, check: ReadinessCheck) -> None:
        with self._lock:
            self._checks[name] = check

    def unready(self) -> list[str]:
        """Return names of checks that currently fail."""
        with self._lock:
            checks = dict(self._checks)
        failing = []
        for name, check in checks.items():
            try:
                if not check():
                    failing.append(name)
            except Exception:
                failing.append(name)
        return sorted(failing)


def create_combined_wsgi_app(state: HealthState) -> Any:
    """Create a WSGI app that combines metrics and health check endpoints.

    Args:
        state: Readiness checks consulted by /readyz

    Returns:
        Combined WSGI application
    """
    metrics_app = make_wsgi_app()

    def combined_app(environ: dict[str, Any], start_response: Any) -> list[bytes]:
        """WSGI app that routes /healthz and /readyz, delegates /metrics to prometheus."""
        path = environ.get("PATH_INFO", "")

        if path == "/healthz":
            response = Response('{"status":"ok"}', mimetype="application/json", status=200)
            return response(environ, start_response)
        if path == "/readyz":
            failing = state.unready()
            if failing:
                body = '{"status":"not ready","waiting":[%s]}' % ",".join(f'"{name}"' for name in failing)
                response = Response(body, mimetype="application/json", status=503)
            else:
                response = Response('{"status":"ready"}', mimetype="application/json", status=200)
            return response(environ, start_response)
        return metrics_app(environ, start_response)

    return combined_app


def start_health_server(port: int, state: HealthState) -> Any:
    """Serve metrics and health endpoints from a background thread."""
    server = make_server("", port, create_combined_wsgi_app(state), threaded=True)
    thread = threading.Thread(target=server.serve_forever, name="health-server", daemon=True)
    thread.start()
    return server
