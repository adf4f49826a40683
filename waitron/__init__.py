"""Waitron Application Factory.

Waitron drives unattended OS provisioning over network boot:
- Build mode with a per-build bearer token
- Boot descriptors for the network-boot protocol layer
- Preseed/kickstart, finish and cloud-init templates
- Stale build recovery
"""

from typing import Optional

import structlog
from flask import Flask, jsonify, send_from_directory
from prometheus_client import make_wsgi_app
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.dispatcher import DispatcherMiddleware

from .config import WaitronConfig
from .exceptions import WaitronError
from .services import WaitronService

__version__ = "1.0.0"

logger = structlog.get_logger()


def create_app(config: WaitronConfig, service: Optional[WaitronService] = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__, static_folder=None)
    app.config["WAITRON"] = config

    # Store the service root in app for access in blueprints
    app.waitron = service or WaitronService(config)

    # Register blueprints
    from .api.builds import builds_bp
    from .api.catalog import catalog_bp
    from .api.provisioning import provisioning_bp

    app.register_blueprint(builds_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(provisioning_bp)

    @app.errorhandler(WaitronError)
    def handle_waitron_error(error: WaitronError):
        logger.error(
            "request_failed",
            error_type=type(error).__name__,
            detail=error.detail,
            status=error.status_code,
        )
        return jsonify({"State": "", "Error": error.message}), error.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("request_unexpected_error", error=str(error))
        return jsonify({"State": "", "Error": "Internal error"}), 500

    # Health check endpoint
    @app.route("/health")
    def health_check():
        """Check that Waitron is running."""
        return jsonify({"State": "OK"}), 200

    if config.static_files_path:
        static_root = config.static_files_path

        @app.route("/files/<path:filename>")
        def static_files(filename: str):
            """Serve installer support files."""
            return send_from_directory(static_root, filename)

        logger.info("serving_static_files", path=static_root)

    # Add Prometheus metrics endpoint
    app.wsgi_app = DispatcherMiddleware(
        app.wsgi_app,
        {"/metrics": make_wsgi_app()}
    )

    return app
