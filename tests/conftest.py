"""Pytest shared fixtures: courses, rosters, resolver, and Flask client."""
import json
import os
import pathlib
import sys
from unittest.mock import MagicMock

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any app imports
os.environ.setdefault("DEMO_MODE", "true")
# scrypt is deliberately slow; a cheap pbkdf2 keeps the suite fast.
os.environ["PASSWORD_HASH_METHOD"] = "pbkdf2:sha256:1000"

import pytest

from autograder.config import AppConfig
from autograder.core.context import ContextResolver
from autograder.core.courses import Assignment, Course, CourseRegistry
from autograder.core.notify import Notifier
from autograder.core.passwords import hash_password
from autograder.core.roles import Role
from autograder.core.roster import InMemoryRosterStore
from autograder.core.users import User
from scripts import audit

COURSE_ID = "cse-101"

# email -> (role, plaintext password)
ROSTER = {
    "owner@test.edu": (Role.OWNER, "owner-pass"),
    "admin@test.edu": (Role.ADMIN, "admin-pass"),
    "grader@test.edu": (Role.GRADER, "grader-pass"),
    "student@test.edu": (Role.STUDENT, "student-pass"),
    "other@test.edu": (Role.OTHER, "other-pass"),
}


def make_user(email, role=Role.STUDENT, password=None, name="", lms_id=""):
    return User(
        email=email,
        name=name,
        role=role,
        password_hash=hash_password(password) if password else "",
        lms_id=lms_id,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Audit isolation
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _isolated_audit_log(monkeypatch, tmp_path):
    """Keep audit events written by syncs out of the working tree."""
    audit_dir = tmp_path / "audit"
    monkeypatch.setattr(audit, "AUDIT_LOG_DIR", audit_dir)
    monkeypatch.setattr(audit, "AUDIT_LOG_FILE", audit_dir / "roster-events.jsonl")
    monkeypatch.setenv("AUDIT_LOG_SIGNING_KEY", "test-signing-key")
    yield audit_dir


# ─────────────────────────────────────────────────────────────────────────────
# Courses and rosters
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(scope="session")
def _hashed_roster():
    """Hash the shared roster once per session."""
    return {
        email: make_user(email, role=role, password=password, name=email.split("@")[0].title())
        for email, (role, password) in ROSTER.items()
    }


@pytest.fixture()
def course():
    return Course(
        id=COURSE_ID,
        name="Intro to Programming",
        assignments={
            "hw0": Assignment(id="hw0", course_id=COURSE_ID, name="Hello World"),
            "hw1": Assignment(id="hw1", course_id=COURSE_ID, name="Loops"),
        },
    )


@pytest.fixture()
def courses(course):
    registry = CourseRegistry()
    registry.add_course(course)
    return registry


@pytest.fixture()
def roster_store(_hashed_roster):
    return InMemoryRosterStore({COURSE_ID: _hashed_roster})


@pytest.fixture()
def resolver(courses, roster_store):
    return ContextResolver(courses, roster_store)


@pytest.fixture()
def user_factory():
    return make_user


@pytest.fixture()
def notifier():
    return MagicMock(spec=Notifier)


# ─────────────────────────────────────────────────────────────────────────────
# Flask Test Client
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def app_config():
    return AppConfig(demo_mode=False, secret_key="test-secret-key")


@pytest.fixture()
def flask_app(app_config, courses, roster_store, notifier):
    from autograder.flask_app import create_app

    app = create_app(cfg=app_config, courses=courses, roster_store=roster_store, notifier=notifier)
    app.config.update(TESTING=True)
    return app


@pytest.fixture()
def client(flask_app):
    with flask_app.test_client() as client:
        yield client


@pytest.fixture()
def api_post(client):
    """POST a JSON payload to an API endpoint as the given roster user."""

    def _post(endpoint, content=None, as_user="admin@test.edu", password=None, as_form=False):
        payload = {"course-id": COURSE_ID, "user-email": as_user}
        if as_user in ROSTER:
            payload["user-pass"] = password if password is not None else ROSTER[as_user][1]
        elif password is not None:
            payload["user-pass"] = password
        payload.update(content or {})

        url = f"/api/v01/{endpoint}"
        if as_form:
            return client.post(url, data={"content": json.dumps(payload)})
        return client.post(url, json=payload)

    return _post
