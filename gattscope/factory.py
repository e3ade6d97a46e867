"""
Application factory.

Wires together all modules and returns a configured Flask app + SocketIO instance.
"""

import logging

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

from gattscope.api.background import BackgroundLoop
from gattscope.api.routes import register_routes
from gattscope.api.socket_events import register_socket_events
from gattscope.config.settings import AppConfig, load_config
from gattscope.domain.controller import DiagnosticController

logger = logging.getLogger(__name__)


def create_app(config: AppConfig = None, transport=None) -> tuple[Flask, SocketIO]:
    if config is None:
        config = load_config()

    # Flask
    app = Flask(__name__)
    app.config["SECRET_KEY"] = "gattscope-secret"
    CORS(app, resources={r"/api/*": {"origins": config.server.cors_origins}})

    # SocketIO
    socketio = SocketIO(
        app,
        cors_allowed_origins=config.server.cors_origins,
        async_mode=config.server.socketio_async_mode,
        logger=False,
        engineio_logger=False,
    )

    # BLE work runs on its own loop
    runner = BackgroundLoop(timeout=config.server.loop_timeout_sec)
    runner.start()

    # Domain
    controller = DiagnosticController(config, transport)

    # API
    register_routes(app, controller, runner)
    register_socket_events(socketio, controller, runner)

    # Store references for testing
    app.extensions["controller"] = controller
    app.extensions["loop"] = runner

    logger.info("Application created successfully")
    return app, socketio
