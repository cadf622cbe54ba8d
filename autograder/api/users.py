"""User and assignment read endpoints."""
from __future__ import annotations
from dataclasses import dataclass

from flask import Blueprint, current_app

from autograder.api.decorators import api_endpoint
from autograder.core.context import AssignmentFields, CourseUserFields, Layer, request_type
from autograder.core.errors import InternalError, RosterStoreError
from autograder.core.roles import Role

bp = Blueprint("users", __name__)


@request_type(min_role=Role.OTHER)
@dataclass
class UserGetRequest(CourseUserFields):
    pass


@request_type(min_role=Role.GRADER)
@dataclass
class UserListRequest(CourseUserFields):
    pass


@request_type(min_role=Role.OTHER, layer=Layer.ASSIGNMENT)
@dataclass
class AssignmentGetRequest(AssignmentFields):
    pass


@bp.route("/user/get", methods=["POST"])
@api_endpoint(UserGetRequest)
def user_get(api_request, context):
    """Return the caller's own user record."""
    return {"user": context.user.to_public_dict()}


@bp.route("/user/list", methods=["POST"])
@api_endpoint(UserListRequest)
def user_list(api_request, context):
    """Return the course roster (graders and above)."""
    try:
        roster = current_app.config["ROSTER_STORE"].load(context.course_id)
    except RosterStoreError as exc:
        raise InternalError("Failed to load course users.").add("course-id", context.course_id).add(
            "error", str(exc)
        )
    return {"users": [roster[email].to_public_dict() for email in sorted(roster)]}


@bp.route("/assignment/get", methods=["POST"])
@api_endpoint(AssignmentGetRequest)
def assignment_get(api_request, context):
    return {"assignment": context.assignment.to_dict()}
