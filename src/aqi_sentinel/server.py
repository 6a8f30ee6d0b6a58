"""HTTP server exposing the feed, health checks and metrics."""

import threading
from collections.abc import Callable
from typing import Any
from wsgiref.simple_server import WSGIRequestHandler, make_server

import structlog
from flask import Blueprint, Flask, Response, current_app, jsonify
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .feed import PLACEHOLDER_DOCUMENT
from .throttle import FeedThrottleState

log = structlog.get_logger()

FEED_PATH = "/aqi.xml"

HealthCheck = Callable[[], tuple[str, bool]]

health_bp = Blueprint("health", __name__)


@health_bp.route("/health")
def health_check() -> tuple[Any, int]:
    """Report the status of every registered check."""
    checks = {}
    all_healthy = True

    for check in current_app.config.get("HEALTH_CHECKS", []):
        try:
            name, healthy = check()
        except Exception:
            log.exception("Health check raised", check=getattr(check, "__name__", repr(check)))
            name, healthy = getattr(check, "__name__", repr(check)), False
        checks[name] = healthy
        all_healthy = all_healthy and healthy

    status = "ok" if all_healthy else "degraded"
    return jsonify({"status": status, "service": current_app.name, "checks": checks}), (
        200 if all_healthy else 503
    )


def register_health_check(app: Flask, check: HealthCheck) -> None:
    """Register a function returning a (name, is_healthy) tuple."""
    app.config.setdefault("HEALTH_CHECKS", []).append(check)


def create_app(feed_state: FeedThrottleState, service_name: str = "aqi-sentinel") -> Flask:
    """Create the Flask application serving the feed.

    Args:
        feed_state: Feed state to read the current document from
        service_name: Name reported by the health endpoint

    Returns:
        Configured Flask application
    """
    app = Flask(service_name)
    app.register_blueprint(health_bp)

    @app.route(FEED_PATH)
    def feed() -> Response:
        document = feed_state.current_document()
        return Response(document or PLACEHOLDER_DOCUMENT, content_type="text/xml; charset=utf-8")

    @app.route("/metrics")
    def metrics() -> Response:
        return Response(generate_latest(REGISTRY), content_type=CONTENT_TYPE_LATEST)

    return app


class _QuietHandler(WSGIRequestHandler):
    """WSGI handler that doesn't log every request."""

    def log_message(self, format: str, *args: object) -> None:
        pass


def start_server(app: Flask, host: str = "127.0.0.1", port: int = 8080) -> threading.Thread:
    """Serve the app from a background daemon thread.

    Returns:
        The daemon thread running the server
    """
    server = make_server(host, port, app, handler_class=_QuietHandler)

    def serve_forever() -> None:
        try:
            log.info("Feed server listening", url=f"http://{host}:{port}{FEED_PATH}")
            server.serve_forever()
        except Exception:
            log.exception("Feed server failed unexpectedly")

    thread = threading.Thread(target=serve_forever, name="feed-server", daemon=True)
    thread.start()
    return thread
