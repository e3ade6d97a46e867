"""
WebSocket (Socket.IO) event handlers.

Live side of the diagnostic UI:
- Emits every polled sample, every notification value and device state
- Receives streaming commands (start_polling / stop_polling,
  subscribe / unsubscribe)

Failures are reported to the browser as an "error" event, which the
front end shows as a transient toast.
"""

import logging

from flask_socketio import SocketIO, emit

from gattscope.acquisition.transport import DeviceInfo
from gattscope.api.background import BackgroundLoop
from gattscope.domain.controller import DiagnosticController
from gattscope.storage.sample_store import Sample

logger = logging.getLogger(__name__)


def register_socket_events(
    socketio: SocketIO,
    controller: DiagnosticController,
    runner: BackgroundLoop,
):
    """Register all Socket.IO event handlers."""

    # ─── Controller callbacks → Socket.IO emissions ───

    def _on_sample(sample: Sample):
        socketio.emit("sample", sample.to_dict())

    def _on_notification(sample: Sample):
        socketio.emit("notification", sample.to_dict())

    def _on_state_change(info: DeviceInfo):
        socketio.emit("device_state", info.to_dict())

    def _on_disconnect():
        logger.warning("Device disconnected, next operation will reconnect")
        socketio.emit("polling_status", controller.poller.status())

    controller.on_sample(_on_sample)
    controller.on_notification(_on_notification)
    controller.on_state_change(_on_state_change)
    controller.on_disconnect(_on_disconnect)

    # ─── Client events ───

    @socketio.on("connect")
    def handle_connect():
        logger.info("Client connected")
        emit("device_state", controller.device_info.to_dict())
        emit("polling_status", controller.poller.status())

    @socketio.on("disconnect")
    def handle_disconnect():
        logger.info("Client disconnected")

    @socketio.on("start_polling")
    def handle_start_polling(data=None):
        data = data or {}
        logger.info("Start polling requested")
        try:
            status = runner.run(controller.start_polling(
                data.get("service"),
                data.get("characteristic"),
                data.get("format"),
                data.get("interval_ms"),
            ))
            emit("polling_status", status)
        except Exception as e:
            logger.error("Start polling failed: %s", e, exc_info=True)
            emit("error", {"message": f"Start polling failed: {e}"})

    @socketio.on("stop_polling")
    def handle_stop_polling():
        logger.info("Stop polling requested")
        try:
            emit("polling_status", runner.run(controller.stop_polling()))
        except Exception as e:
            logger.error("Stop polling failed: %s", e, exc_info=True)
            emit("error", {"message": f"Stop polling failed: {e}"})

    @socketio.on("subscribe")
    def handle_subscribe(data=None):
        data = data or {}
        try:
            subscription = runner.run(controller.subscribe(
                data.get("service"), data.get("characteristic"), data.get("format"),
            ))
            if subscription is None:
                emit("error", {"message": "Characteristic does not support notifications"})
                return
            emit("subscription", {"active": True, **subscription.ref.to_dict()})
        except Exception as e:
            logger.error("Subscribe failed: %s", e, exc_info=True)
            emit("error", {"message": f"Subscribe failed: {e}"})

    @socketio.on("unsubscribe")
    def handle_unsubscribe():
        try:
            runner.run(controller.unsubscribe())
            emit("subscription", {"active": False})
        except Exception as e:
            logger.error("Unsubscribe failed: %s", e, exc_info=True)
            emit("error", {"message": f"Unsubscribe failed: {e}"})
