"""
PM Tracker
Tracking blueprint — generic CRUD for every tracked kind plus their
actions and audit log.

<kind> is one of: issues | risks | changes | escalations | faults

Endpoints summary:
    ITEM     /api/v1/<kind>                          GET, POST
             /api/v1/<kind>/<id>                     GET, PUT, DELETE

    ACTION   /api/v1/<kind>/<id>/actions             GET, POST
             /api/v1/<kind>/<id>/actions/<aid>       PUT, DELETE

    LOG      /api/v1/<kind>/<id>/log                 GET  (newest first; ?order=asc)
             /api/v1/<kind>/<id>/log                 POST (comment)

Status changes on changes/risks are guarded: statuses owned by the approval
workflow are refused with 403 (see workflow_bp for the transition routes).
"""

import logging

from flask import Blueprint, jsonify, request

from pmtracker.auth import require_role
from pmtracker.blueprints import json_body, paginate_query
from pmtracker.services import action_service, audit_service, tracking_service
from pmtracker.utils.errors import register_error_handlers
from pmtracker.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

tracking_bp = Blueprint("tracking", __name__, url_prefix="/api/v1")
register_error_handlers(tracking_bp)

KIND = "<any(issues, risks, changes, escalations, faults):kind>"


# ═══════════════════════════════════════════════════════════════════════════
#  ITEM CRUD
# ═══════════════════════════════════════════════════════════════════════════

@tracking_bp.route(f"/{KIND}", methods=["GET"])
def list_items(kind):
    k = tracking_service.get_kind(kind)
    items, total = paginate_query(tracking_service.list_items(k, request.args))
    return jsonify({"items": [i.to_dict() for i in items], "total": total})


@tracking_bp.route(f"/{KIND}", methods=["POST"])
def create_item(kind):
    k = tracking_service.get_kind(kind)
    item = tracking_service.create_item(k, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(item.to_dict()), 201


@tracking_bp.route(f"/{KIND}/<int:item_id>", methods=["GET"])
def get_item(kind, item_id):
    k = tracking_service.get_kind(kind)
    return jsonify(tracking_service.get_detail(k, item_id))


@tracking_bp.route(f"/{KIND}/<int:item_id>", methods=["PUT"])
def update_item(kind, item_id):
    k = tracking_service.get_kind(kind)
    result = tracking_service.update_item(k, item_id, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result)


@tracking_bp.route(f"/{KIND}/<int:item_id>", methods=["DELETE"])
@require_role("editor")
def delete_item(kind, item_id):
    k = tracking_service.get_kind(kind)
    result = tracking_service.delete_item(k, item_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result)


# ═══════════════════════════════════════════════════════════════════════════
#  ACTIONS
# ═══════════════════════════════════════════════════════════════════════════

@tracking_bp.route(f"/{KIND}/<int:item_id>/actions", methods=["GET"])
def list_actions(kind, item_id):
    k = tracking_service.get_kind(kind)
    tracking_service.get_item(k, item_id)
    actions = action_service.list_actions(k.entity_type, item_id)
    return jsonify({"items": [a.to_dict() for a in actions], "total": len(actions)})


@tracking_bp.route(f"/{KIND}/<int:item_id>/actions", methods=["POST"])
def create_action(kind, item_id):
    k = tracking_service.get_kind(kind)
    tracking_service.get_item(k, item_id)
    action = action_service.create_action(k.entity_type, item_id, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(action.to_dict()), 201


@tracking_bp.route(f"/{KIND}/<int:item_id>/actions/<int:action_id>", methods=["PUT"])
def update_action(kind, item_id, action_id):
    k = tracking_service.get_kind(kind)
    action = action_service.get_action(k.entity_type, item_id, action_id)
    action_service.update_action(action, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(action.to_dict())


@tracking_bp.route(f"/{KIND}/<int:item_id>/actions/<int:action_id>", methods=["DELETE"])
@require_role("editor")
def delete_action(kind, item_id, action_id):
    k = tracking_service.get_kind(kind)
    action = action_service.get_action(k.entity_type, item_id, action_id)
    action_service.delete_action(action)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"deleted": action_id})


# ═══════════════════════════════════════════════════════════════════════════
#  AUDIT LOG
# ═══════════════════════════════════════════════════════════════════════════

@tracking_bp.route(f"/{KIND}/<int:item_id>/log", methods=["GET"])
def get_log(kind, item_id):
    k = tracking_service.get_kind(kind)
    tracking_service.get_item(k, item_id)
    newest_first = request.args.get("order", "desc").lower() != "asc"
    rows = audit_service.list_log(k.entity_type, item_id, newest_first=newest_first)
    return jsonify({"items": [r.to_dict() for r in rows], "total": len(rows)})


@tracking_bp.route(f"/{KIND}/<int:item_id>/log", methods=["POST"])
def add_comment(kind, item_id):
    k = tracking_service.get_kind(kind)
    tracking_service.get_item(k, item_id)
    log = audit_service.add_comment(k.entity_type, item_id, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(log.to_dict()), 201
