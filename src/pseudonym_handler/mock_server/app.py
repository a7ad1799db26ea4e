"""Flask application for the mock record-linkage service."""

import logging
import signal
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

from flask import Flask, jsonify, request

from .config import MockServerConfig, load_config
from .linkage_endpoint import register_linkage_endpoint


# Server state tracking
_server_start_time: datetime | None = None
_request_count: int = 0
_config: MockServerConfig | None = None

# Create Flask app
app = Flask(__name__)

ENDPOINTS = [
    "/health",
    "/tokens/addPatient",
    "/tokens/readPatients",
    "/patients",
    "/patients/send/mdat",
    "/patients/request",
]


def setup_logging(config: MockServerConfig) -> logging.Logger:
    """Configure logging for mock server with rotation.

    Args:
        config: Mock server configuration

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("pseudonym_handler.mock_server")
    logger.setLevel(config.log_level)

    # Remove existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    log_path = Path(config.log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger


logger = logging.getLogger("pseudonym_handler.mock_server")


@app.before_request
def log_request():
    """Log all incoming requests."""
    global _request_count
    _request_count += 1

    logger.info(
        f"Request #{_request_count}: {request.method} {request.path} "
        f"(Content-Length: {request.content_length or 0})"
    )


@app.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint.

    Returns JSON with server status, endpoints, uptime, request count and
    timestamp.
    """
    uptime_seconds = 0
    if _server_start_time:
        uptime_seconds = int((datetime.now(timezone.utc) - _server_start_time).total_seconds())

    health_response = {
        "status": "healthy",
        "port": _config.port if _config else None,
        "use_callback": _config.use_callback if _config else False,
        "endpoints": ENDPOINTS,
        "uptime_seconds": uptime_seconds,
        "request_count": _request_count,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    return jsonify(health_response), 200


@app.errorhandler(404)
def not_found(error):
    return jsonify({"error": "Not Found", "detail": str(error)}), 404


@app.errorhandler(405)
def method_not_allowed(error):
    return jsonify({"error": "Method Not Allowed", "detail": str(error)}), 405


@app.errorhandler(500)
def internal_error(error):
    """Handle 500 Internal Server errors with a JSON body."""
    logger.error(f"Internal error: {error}")
    return jsonify({"error": "Internal Server Error", "detail": str(error)}), 500


def setup_graceful_shutdown():
    """Setup graceful shutdown handlers for SIGTERM and SIGINT.

    Signal handlers can only be registered in the main thread; elsewhere
    this logs a warning and continues.
    """
    def shutdown_handler(signum, frame):
        logger.info(f"Received shutdown signal ({signum}), shutting down mock server")
        sys.exit(0)

    try:
        signal.signal(signal.SIGTERM, shutdown_handler)
        signal.signal(signal.SIGINT, shutdown_handler)
        logger.info("Graceful shutdown handlers registered successfully")
    except ValueError as e:
        logger.warning(
            f"Could not register signal handlers (not in main thread): {e}. "
            f"Graceful shutdown via signals will not be available."
        )


def initialize_app(config: MockServerConfig, handle_signals: bool = True) -> None:
    """Initialize Flask app with configuration.

    Args:
        config: Mock server configuration
        handle_signals: Install SIGTERM/SIGINT handlers
    """
    global _config, _server_start_time
    _config = config
    _server_start_time = datetime.now(timezone.utc)

    setup_logging(config)
    logger.info("Mock linkage service initialized")

    if handle_signals:
        setup_graceful_shutdown()

    register_linkage_endpoint(app, config)


def run_server(
    host: str | None = None,
    port: int | None = None,
    config: MockServerConfig | None = None,
    debug: bool = False,
) -> None:
    """Run the Flask mock linkage service.

    Args:
        host: Host address (default: from config)
        port: Port number (default: from config)
        config: Mock server configuration (loads from file if not provided)
        debug: Enable debug mode (default: False)
    """
    if config is None:
        config = load_config()

    updates = {}
    if host is not None:
        updates["host"] = host
    if port is not None:
        updates["port"] = port
    if updates:
        config = config.model_copy(update=updates)

    initialize_app(config)

    logger.info(f"Starting mock linkage service on http://{config.host}:{config.port}")
    logger.info(f"Health check available at: http://{config.host}:{config.port}/health")

    app.run(
        host=config.host,
        port=config.port,
        debug=debug,
        threaded=True,
        use_reloader=False,  # Disable reloader to avoid duplicate startup
    )


if __name__ == "__main__":
    run_server()
