"""Manifest Catalog API Endpoints.

Read-only views of machine definitions, VM definitions and hooks.
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

catalog_bp = Blueprint("catalog", __name__)


@catalog_bp.route("/list", methods=["GET"])
def list_machines():
    """List machines handled by Waitron.

    Returns:
        200: List of hostnames
        500: Unable to list machines
    """
    return jsonify(current_app.waitron.controller.list_machines()), 200


@catalog_bp.route("/hooks", methods=["GET"])
def list_hooks():
    """List all available pre- and post-hooks."""
    return jsonify(current_app.waitron.hooks.list_hooks()), 200


@catalog_bp.route("/config/<hostname>", methods=["GET"])
def host_config(hostname: str):
    """Machine definition of a host.

    Returns:
        200: Definition
        404: No definition for hostname
    """
    definition = current_app.waitron.source.resolve_by_hostname(hostname)
    return jsonify(definition.to_dict()), 200


@catalog_bp.route("/config/<hostname>/vm", methods=["GET"])
def host_vm_config(hostname: str):
    """VM definitions hosted on a host.

    Returns:
        200: {"vm": [definitions]}
        404: No VM definition for hostname
    """
    vms = current_app.waitron.source.resolve_by_vm_hostname(hostname)
    return jsonify({"vm": [vm.to_dict() for vm in vms]}), 200
