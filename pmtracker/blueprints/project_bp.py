"""
PM Tracker
Project & People blueprint.

Endpoints summary:
    PROJECT  /api/v1/projects                    GET, POST
             /api/v1/projects/<id>               GET, PUT, DELETE
             /api/v1/projects/<id>/summary       GET

    PEOPLE   /api/v1/people                      GET, POST   (?active=true)
             /api/v1/people/<id>                 GET, PUT, DELETE
             /api/v1/people/workload             GET
"""

import logging

from flask import Blueprint, jsonify, request

from pmtracker.auth import require_role
from pmtracker.blueprints import json_body
from pmtracker.models.project import Person, Project
from pmtracker.services import project_service
from pmtracker.utils.errors import register_error_handlers
from pmtracker.utils.helpers import db_commit_or_error, get_or_404

logger = logging.getLogger(__name__)

project_bp = Blueprint("project", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


# ═══════════════════════════════════════════════════════════════════════════
#  PROJECT
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects", methods=["GET"])
def list_projects():
    projects = project_service.list_projects(status=request.args.get("status"))
    return jsonify({"items": [p.to_dict() for p in projects], "total": len(projects)})


@project_bp.route("/projects", methods=["POST"])
def create_project():
    project = project_service.create_project(json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    return jsonify(project.to_dict())


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
def update_project(project_id):
    project = project_service.update_project(project_id, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict())


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
@require_role("editor")
def delete_project(project_id):
    result = project_service.delete_project(project_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result)


@project_bp.route("/projects/<int:project_id>/summary", methods=["GET"])
def project_summary(project_id):
    return jsonify(project_service.project_summary(project_id))


# ═══════════════════════════════════════════════════════════════════════════
#  PEOPLE
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/people", methods=["GET"])
def list_people():
    active_only = request.args.get("active", "").lower() in ("1", "true", "yes")
    people = project_service.list_people(active_only=active_only)
    return jsonify({"items": [p.to_dict() for p in people], "total": len(people)})


@project_bp.route("/people", methods=["POST"])
def create_person():
    person = project_service.create_person(json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(person.to_dict()), 201


@project_bp.route("/people/workload", methods=["GET"])
def people_workload():
    rows = project_service.people_workload()
    return jsonify({"items": rows, "total": len(rows)})


@project_bp.route("/people/<int:person_id>", methods=["GET"])
def get_person(person_id):
    person, err = get_or_404(Person, person_id)
    if err:
        return err
    return jsonify(person.to_dict())


@project_bp.route("/people/<int:person_id>", methods=["PUT"])
def update_person(person_id):
    person = project_service.update_person(person_id, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(person.to_dict())


@project_bp.route("/people/<int:person_id>", methods=["DELETE"])
@require_role("editor")
def delete_person(person_id):
    project_service.delete_person(person_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"deleted": person_id})
