"""
PM Tracker
Workflow blueprint — approval transitions for changes and risk closure.

Endpoints summary:
    CHANGE   /api/v1/changes/<id>/request-approval     POST
             /api/v1/changes/<id>/approve              POST
             /api/v1/changes/<id>/reject               POST
             /api/v1/changes/<id>/resubmit             POST
             /api/v1/changes/<id>/mark-implemented     POST  (also PUT status=Implemented)
             /api/v1/changes/<id>/request-closure      POST
             /api/v1/changes/<id>/approve-closure      POST
             /api/v1/changes/<id>/reject-closure       POST
             /api/v1/changes/<id>/transitions          GET

    RISK     /api/v1/risks/<id>/request-closure        POST
             /api/v1/risks/<id>/approve-closure        POST
             /api/v1/risks/<id>/reject-closure         POST
             /api/v1/risks/<id>/transitions            GET

Every transition response carries:
    data, previous_status, new_status, transition, next_step, log_entry
"""

import logging

from flask import Blueprint, jsonify

from pmtracker.blueprints import json_body
from pmtracker.models.tracking import Change, Risk
from pmtracker.services.workflow import (
    CHANGE_WORKFLOW,
    RISK_CLOSURE_WORKFLOW,
    apply_transition,
    available_transitions,
)
from pmtracker.utils.errors import register_error_handlers
from pmtracker.utils.helpers import db_commit_or_error, get_or_raise

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1")
register_error_handlers(workflow_bp)


def _any(names):
    return "any(" + ", ".join(f'"{n}"' for n in names) + ")"


CHANGE_TRANSITIONS = _any(CHANGE_WORKFLOW.transitions)
RISK_TRANSITIONS = _any(RISK_CLOSURE_WORKFLOW.transitions)


def _run(entity_type, item_id, transition):
    result = apply_transition(entity_type, item_id, transition, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result)


@workflow_bp.route(f"/changes/<int:item_id>/<{CHANGE_TRANSITIONS}:transition>", methods=["POST"])
def change_transition(item_id, transition):
    return _run("change", item_id, transition)


@workflow_bp.route(f"/risks/<int:item_id>/<{RISK_TRANSITIONS}:transition>", methods=["POST"])
def risk_transition(item_id, transition):
    return _run("risk", item_id, transition)


@workflow_bp.route("/changes/<int:item_id>/transitions", methods=["GET"])
def change_transitions(item_id):
    change = get_or_raise(Change, item_id, "Change")
    return jsonify({
        "id": change.id,
        "status": change.status,
        "closure_pending": change.closure_pending,
        "transitions": available_transitions(change),
    })


@workflow_bp.route("/risks/<int:item_id>/transitions", methods=["GET"])
def risk_transitions(item_id):
    risk = get_or_raise(Risk, item_id, "Risk")
    return jsonify({
        "id": risk.id,
        "status": risk.status,
        "closure_pending": risk.closure_pending,
        "transitions": available_transitions(risk),
    })
