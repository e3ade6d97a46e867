"""
REST API routes.

Device connection, GATT listing, single read/write, polling status, the
in-memory sample series (JSON, chart projection, CSV export) and clearing.
"""

import logging

from flask import Blueprint, Response, jsonify, request

from gattscope.acquisition.transport import WriteMode
from gattscope.api.background import BackgroundLoop
from gattscope.codec.byte_codec import Format, to_hex
from gattscope.domain.controller import DiagnosticController
from gattscope.domain.operations import Terminator
from gattscope.errors import (
    DiscoveryFailed,
    GattScopeError,
    InvalidInput,
    LinkInactive,
    TransportUnavailable,
    UnsupportedOperation,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidInput: 400,
    UnsupportedOperation: 409,
    DiscoveryFailed: 502,
    LinkInactive: 502,
    TransportUnavailable: 503,
}


def error_status(error: GattScopeError) -> int:
    for cls, status in ERROR_STATUS.items():
        if isinstance(error, cls):
            return status
    return 500


def register_routes(app, controller: DiagnosticController, runner: BackgroundLoop):
    """Register all REST routes on the Flask app."""

    api_bp = Blueprint("api", __name__, url_prefix="/api")

    @api_bp.errorhandler(GattScopeError)
    def handle_error(error: GattScopeError):
        status = error_status(error)
        logger.warning("%s: %s", type(error).__name__, error)
        return jsonify({"error": str(error), "type": type(error).__name__}), status

    # ─── Health ───

    @api_bp.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    @api_bp.route("/formats", methods=["GET"])
    def formats():
        return jsonify({
            "formats": [f.value for f in Format],
            "write_modes": [m.value for m in WriteMode],
            "terminators": [t.value for t in Terminator],
        })

    # ─── Device ───

    @api_bp.route("/device", methods=["GET"])
    def device():
        return jsonify({
            "device": controller.device_info.to_dict(),
            "subscription": (
                controller.session.subscription.ref.to_dict()
                if controller.session.subscription else None
            ),
        })

    @api_bp.route("/device/connect", methods=["POST"])
    def connect():
        data = request.get_json(silent=True) or {}
        info = runner.run(controller.connect(data.get("services"), data.get("name", "")))
        return jsonify({"device": info.to_dict()})

    @api_bp.route("/device/disconnect", methods=["POST"])
    def disconnect():
        runner.run(controller.disconnect())
        return jsonify({"device": controller.device_info.to_dict()})

    @api_bp.route("/device/gatt", methods=["GET"])
    def gatt():
        services = runner.run(controller.list_gatt())
        return jsonify({"services": services})

    # ─── Characteristic ───

    @api_bp.route("/characteristic/read", methods=["POST"])
    def read():
        data = request.get_json(silent=True) or {}
        sample = runner.run(controller.read(
            data.get("service"), data.get("characteristic"), data.get("format"),
        ))
        return jsonify({"sample": sample.to_dict()})

    @api_bp.route("/characteristic/write", methods=["POST"])
    def write():
        data = request.get_json(silent=True) or {}
        payload = runner.run(controller.write(
            data.get("service"),
            data.get("characteristic"),
            str(data.get("value", "")),
            fmt=data.get("format"),
            write_mode=data.get("write_mode"),
            terminator=data.get("terminator"),
        ))
        return jsonify({"sent": to_hex(payload), "length": len(payload)})

    # ─── Polling & samples ───

    @api_bp.route("/polling", methods=["GET"])
    def polling_status():
        return jsonify(controller.poller.status())

    @api_bp.route("/samples", methods=["GET"])
    def samples():
        since = request.args.get("since", 0, type=int)
        return jsonify({
            "count": len(controller.series),
            "samples": [s.to_dict() for s in controller.series.since(since)],
        })

    @api_bp.route("/samples/chart", methods=["GET"])
    def samples_chart():
        return jsonify(controller.series.chart())

    @api_bp.route("/samples/export/csv", methods=["GET"])
    def export_csv():
        return Response(
            controller.series.to_csv(),
            mimetype="text/csv",
            headers={"Content-Disposition": "attachment; filename=samples.csv"},
        )

    @api_bp.route("/samples", methods=["DELETE"])
    def clear_samples():
        return jsonify({"cleared": controller.clear_samples()})

    app.register_blueprint(api_bp)
