"""Flask app factory."""

from __future__ import annotations

from typing import Optional

from flask import Flask

from pdf_relay.bootstrap import RelayRuntime, build_runtime
from pdf_relay.config import RuntimeConfig, load_runtime_config, log_effective_config
from pdf_relay.routes.api_routes import api_bp
from pdf_relay.routes.web_routes import web_bp
from pdf_relay.services import relay_service


def create_app(
    config: Optional[RuntimeConfig] = None,
    runtime: Optional[RelayRuntime] = None,
    start_background: bool = True,
) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    if runtime is None:
        runtime_config = config or load_runtime_config()
        log_effective_config(runtime_config)
        runtime = build_runtime(runtime_config)
    app.config["MAX_CONTENT_LENGTH"] = runtime.config.max_content_length
    app.extensions[relay_service.EXTENSION_KEY] = runtime

    app.register_blueprint(web_bp)
    app.register_blueprint(api_bp)
    relay_service.register_error_handlers(app)

    if start_background:
        runtime.start()
    return app
