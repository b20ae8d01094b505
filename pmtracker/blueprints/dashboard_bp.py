"""
PM Tracker
Dashboard & reports blueprint.

Every endpoint accepts an optional ?project_id= scope.

Endpoints:
    GET /api/v1/dashboard
    GET /api/v1/reports/risk-heat-map
    GET /api/v1/reports/issue-aging
    GET /api/v1/reports/pending-approvals
    GET /api/v1/reports/action-items       (?days=N, default DUE_SOON_DAYS)
    GET /api/v1/reports/change-impact
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from pmtracker.models.project import Project
from pmtracker.services import dashboard_service
from pmtracker.utils.errors import register_error_handlers
from pmtracker.utils.helpers import get_or_raise

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1")
register_error_handlers(dashboard_bp)


def _project_scope():
    project_id = request.args.get("project_id", type=int)
    if project_id is not None:
        get_or_raise(Project, project_id, "Project")
    return project_id


@dashboard_bp.route("/dashboard", methods=["GET"])
def dashboard():
    return jsonify(dashboard_service.get_dashboard(_project_scope()))


@dashboard_bp.route("/reports/risk-heat-map", methods=["GET"])
def risk_heat_map():
    return jsonify(dashboard_service.risk_heat_map(_project_scope()))


@dashboard_bp.route("/reports/issue-aging", methods=["GET"])
def issue_aging():
    return jsonify(dashboard_service.issue_aging(_project_scope()))


@dashboard_bp.route("/reports/pending-approvals", methods=["GET"])
def pending_approvals():
    return jsonify(dashboard_service.pending_approvals(_project_scope()))


@dashboard_bp.route("/reports/action-items", methods=["GET"])
def action_items():
    days = request.args.get("days", type=int)
    if days is None or days < 0:
        days = current_app.config.get("DUE_SOON_DAYS", dashboard_service.DUE_SOON_DAYS)
    return jsonify(dashboard_service.action_items(_project_scope(), days=days))


@dashboard_bp.route("/reports/change-impact", methods=["GET"])
def change_impact():
    return jsonify(dashboard_service.change_impact(_project_scope()))
