"""Build Lifecycle API Endpoints.

Puts machines in and out of build mode and reports build status.
"""

from __future__ import annotations

from flask import Blueprint, Response, current_app, jsonify

builds_bp = Blueprint("builds", __name__)


def _result(**fields):
    """Lifecycle result shape: State, plus Token or Error when present."""
    body = {"State": "OK"}
    body.update({k: v for k, v in fields.items() if v})
    return jsonify(body)


@builds_bp.route("/build/<hostname>", methods=["PUT"])
def build(hostname: str):
    """Put the server in build mode.

    Returns:
        200: {"State": "OK", "Token": <token of the build>}
        404: Unable to find host definition for hostname
        500: Failed to set build mode on hostname
    """
    token = current_app.waitron.controller.set_build_mode(hostname)
    return _result(Token=token), 200


@builds_bp.route("/rescue/<hostname>", methods=["GET", "PUT"])
def rescue(hostname: str):
    """Put the server in build mode for a rescue boot.

    Returns:
        200: {"State": "OK", "Token": <token of the build>}
        404: Unable to find host definition for hostname
        500: Failed to set build mode for rescue on hostname
    """
    token = current_app.waitron.controller.set_build_mode(hostname, rescue=True)
    return _result(Token=token), 200


@builds_bp.route("/done/<hostname>/<token>", methods=["GET"])
def done(hostname: str, token: str):
    """Remove the server from build mode.

    Returns:
        200: {"State": "OK"}
        400: Not in build mode or definition does not exist
        401: Invalid token
    """
    current_app.waitron.controller.done_build_mode(hostname, token)
    return _result(), 200


@builds_bp.route("/cancel/<hostname>/<token>", methods=["GET"])
def cancel(hostname: str, token: str):
    """Cancel the build and run the post-hooks.

    Returns:
        200: {"State": "OK"}
        400: Not in build mode or definition does not exist
        401: Invalid token
        500: Build cancelled but post hooks failed
    """
    current_app.waitron.controller.cancel_build_mode(hostname, token)
    return _result(), 200


@builds_bp.route("/status/<hostname>", methods=["GET"])
def host_status(hostname: str):
    """Build status of the server (Installing or Installed).

    Returns:
        200: The status
        500: Unknown state
    """
    status = current_app.waitron.controller.host_status(hostname)
    if status is None:
        return Response("Unknown state", status=500, mimetype="text/plain")
    return Response(status, mimetype="text/plain")


@builds_bp.route("/status", methods=["GET"])
def status():
    """Hostname to build status for every machine in build mode."""
    return jsonify(current_app.waitron.controller.statuses()), 200
