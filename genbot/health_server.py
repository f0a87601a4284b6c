"""Health and status HTTP endpoint served from a background thread."""
import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

HealthCheck = Callable[[], bool]
StatusProvider = Callable[[], dict]


def run_checks(checks: Dict[str, HealthCheck]) -> Tuple[bool, dict]:
    """Evaluate every check; a check that raises counts as unhealthy."""
    results = {}
    all_healthy = True

    for name, check in checks.items():
        try:
            healthy = bool(check())
            results[name] = {"status": "healthy" if healthy else "unhealthy", "healthy": healthy}
        except Exception as e:
            healthy = False
            results[name] = {"status": "error", "healthy": False, "error": str(e)}
        all_healthy = all_healthy and healthy

    return all_healthy, results


class HealthCheckHandler(BaseHTTPRequestHandler):
    """Serves ``/health`` (200 or 503) and ``/status``."""

    server: "_HealthHTTPServer"

    def do_GET(self):
        owner = self.server.owner

        if self.path == "/health":
            healthy, results = run_checks(owner.health_checks)
            self._send_json(200 if healthy else 503, {
                "service": owner.service_name,
                "status": "healthy" if healthy else "unhealthy",
                "checks": results,
            })
        elif self.path == "/status" and owner.status_provider is not None:
            try:
                self._send_json(200, {"service": owner.service_name, **owner.status_provider()})
            except Exception as e:
                self._send_json(500, {"service": owner.service_name, "status": "error", "error": str(e)})
        else:
            self.send_response(404)
            self.end_headers()

    def _send_json(self, status_code: int, body: dict) -> None:
        self.send_response(status_code)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        self.wfile.write(json.dumps(body, default=str).encode())

    def log_message(self, format, *args):
        pass  # Suppress HTTP logs


class _HealthHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address, owner: "HealthCheckServer"):
        self.owner = owner
        super().__init__(address, HealthCheckHandler)


class HealthCheckServer:
    """Health check server for the bot process."""

    def __init__(self, service_name: str, port: int = 9998, host: str = "0.0.0.0"):
        self.service_name = service_name
        self.host = host
        self.port = port
        self.health_checks: Dict[str, HealthCheck] = {}
        self.status_provider: Optional[StatusProvider] = None
        self.server: Optional[_HealthHTTPServer] = None
        self.thread: Optional[threading.Thread] = None

    def register_check(self, name: str, check_func: HealthCheck):
        """Register a health check function.

        Args:
            name: Name of the check (e.g., "transport", "queue")
            check_func: Function that returns True if healthy, False otherwise
        """
        self.health_checks[name] = check_func

    def set_status_provider(self, provider: StatusProvider):
        """Expose ``provider()`` on ``/status``."""
        self.status_provider = provider

    def start(self):
        """Start the health check HTTP server."""
        self.server = _HealthHTTPServer((self.host, self.port), self)
        self.port = self.server.server_address[1]
        self.thread = threading.Thread(
            target=self.server.serve_forever,
            name=f"{self.service_name}-health",
            daemon=True,
        )
        self.thread.start()
        logger.info(f"✅ Health check server started for {self.service_name} on port {self.port}")

    def stop(self):
        """Stop the health check server."""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
