"""Course administration routes (course reload, user add/sync)."""
from __future__ import annotations
from dataclasses import dataclass, field

from flask import Blueprint, current_app

from autograder.api.decorators import api_endpoint
from autograder.core.context import CourseUserFields, request_type
from autograder.core.errors import BadRequestError, CourseConfigError, InternalError, SyncError
from autograder.core.roles import Role
from autograder.core.sync import SyncOptions
from autograder.core.validators import user_from_raw
from scripts import audit

bp = Blueprint("admin", __name__)

MAX_USERS_PER_REQUEST = 5000


@request_type(min_role=Role.ADMIN)
@dataclass
class CourseReloadRequest(CourseUserFields):
    pass


@request_type(min_role=Role.ADMIN)
@dataclass
class UserAddRequest(CourseUserFields):
    new_users: list = field(default_factory=list)
    skip_updates: bool = False
    dry_run: bool = False
    send_emails: bool = False


@bp.route("/course/reload", methods=["POST"])
@api_endpoint(CourseReloadRequest)
def course_reload(api_request, context):
    """Re-read the course config from disk."""
    courses = current_app.config["COURSES"]
    try:
        course = courses.reload(context.course_id)
    except CourseConfigError as exc:
        raise InternalError("Failed to reload course.").add("course-id", context.course_id).add(
            "error", str(exc)
        )

    audit.safe_log_roster_event(
        "course_reload",
        context.user_email,
        operator=context.user_email,
        course_id=course.id,
        details={"assignments": len(course.assignments)},
    )

    return {"course-id": course.id, "assignments": sorted(course.assignments)}


@bp.route("/user/add", methods=["POST"])
@api_endpoint(UserAddRequest)
def user_add(api_request, context):
    """Add users to the roster, or merge them into existing entries.

    Plaintext passwords in `new-users` are hashed before the sync; users
    without one get a generated password.
    """
    options = SyncOptions(
        merge=not _flag(api_request.skip_updates, "skip-updates"),
        dry_run=_flag(api_request.dry_run, "dry-run"),
        send_emails=_flag(api_request.send_emails, "send-emails"),
    )

    if not isinstance(api_request.new_users, list):
        raise BadRequestError("Field 'new-users' must be a list.")
    if len(api_request.new_users) > MAX_USERS_PER_REQUEST:
        raise BadRequestError(f"At most {MAX_USERS_PER_REQUEST} users may be added per request.")

    new_users = []
    for index, entry in enumerate(api_request.new_users):
        try:
            new_users.append(user_from_raw(entry))
        except ValueError as exc:
            raise BadRequestError(f"Invalid user at index {index}: {exc}")

    engine = current_app.config["SYNC_ENGINE"]
    try:
        result = engine.sync(context.course_id, new_users, options)
    except SyncError as exc:
        raise InternalError("Failed to sync users.").add("course-id", context.course_id).add(
            "error", str(exc)
        )

    current_app.logger.info(
        "User add by %s on course '%s': %d added, %d modified, %d skipped",
        context.user_email, context.course_id,
        len(result.added), len(result.modified), len(result.skipped),
    )

    cfg = current_app.config["APP_CONFIG"]
    return result.to_dict(include_passwords=(cfg.demo_mode or options.dry_run))


def _flag(value, key: str) -> bool:
    if not isinstance(value, bool):
        raise BadRequestError(f"Field '{key}' must be a boolean.")
    return value
