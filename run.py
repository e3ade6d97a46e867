"""
Entry point for the GATT Scope server.

Usage:
    python run.py
    python run.py --host 0.0.0.0 --port 5000 --debug
    python run.py --services "0xffe0, 0xffe5" --name HMSoft
"""

import argparse
import logging
import sys

from gattscope.config.settings import load_config, split_service_list
from gattscope.factory import create_app


def setup_logging(debug: bool = False):
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
    )
    # Silence noisy libraries
    logging.getLogger("engineio").setLevel(logging.WARNING)
    logging.getLogger("socketio").setLevel(logging.WARNING)
    logging.getLogger("bleak").setLevel(logging.WARNING)


def main():
    parser = argparse.ArgumentParser(description="BLE GATT diagnostic server")
    parser.add_argument("--host", default=None, help="Host address")
    parser.add_argument("--port", type=int, default=None, help="Port number")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument("--services", default=None,
                        help='Comma-separated service UUIDs, e.g. "0xffe0, 0xffe5"')
    parser.add_argument("--name", default=None, help="Only connect to devices whose name contains this")
    args = parser.parse_args()

    config = load_config()
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port
    if args.debug:
        config.server.debug = True
    if args.services:
        config.ble.service_uuids = split_service_list(args.services)
    if args.name:
        config.ble.device_name = args.name

    setup_logging(config.server.debug)

    app, socketio = create_app(config)

    logger = logging.getLogger(__name__)
    logger.info(
        "Starting server on %s:%d (debug=%s)",
        config.server.host,
        config.server.port,
        config.server.debug,
    )

    # the reloader would start a second BLE loop
    socketio.run(
        app,
        host=config.server.host,
        port=config.server.port,
        debug=config.server.debug,
        use_reloader=False,
        allow_unsafe_werkzeug=True,
    )


if __name__ == "__main__":
    main()
