"""Provisioning API Endpoints.

Artifacts fetched by machines while they build: boot descriptors for the
network-boot layer and rendered installer templates.
"""

from __future__ import annotations

from flask import Blueprint, Response, current_app, jsonify

from ..exceptions import NotBuildingError

provisioning_bp = Blueprint("provisioning", __name__)


@provisioning_bp.route("/template/<template>/<hostname>/<token>", methods=["GET"])
def template(template: str, hostname: str, token: str):
    """Render the preseed, finish or cloud-init template of a build.

    Returns:
        200: Rendered template
        400: Not in build mode or definition does not exist
        401: Invalid token
        500: Unable to render template / Cannot execute pre hooks
    """
    rendered = current_app.waitron.templates.render(template, hostname, token)
    return Response(rendered, mimetype="text/plain")


@provisioning_bp.route("/v1/boot/<macaddr>", methods=["GET"])
def boot(macaddr: str):
    """Kernel, initrd(s) and command line for a net-booting machine.

    Returns:
        200: {"kernel": ..., "initrd": [...], "cmdline": ...}
        404: Not in build mode
    """
    try:
        descriptor = current_app.waitron.boot.boot(macaddr)
    except NotBuildingError as e:
        # The boot layer falls back to a local boot on 404
        return jsonify({"State": "", "Error": e.message}), 404
    return jsonify(descriptor.to_dict()), 200
