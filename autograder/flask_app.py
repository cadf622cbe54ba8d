"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the Flask application with all blueprints, services, and configuration.
"""
from __future__ import annotations
import logging
from typing import Optional

from flask import Flask

from autograder.config import AppConfig, load_settings
from autograder.core.context import ContextResolver
from autograder.core.courses import CourseRegistry
from autograder.core.notify import Notifier, build_notifier
from autograder.core.roster import FileRosterStore, RosterStore
from autograder.core.sync import UserSyncEngine

API_URL_PREFIX = "/api/v01"
JSON_MAX_SIZE_BYTES = 4 * 1024 * 1024


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(
    cfg: Optional[AppConfig] = None,
    courses: Optional[CourseRegistry] = None,
    roster_store: Optional[RosterStore] = None,
    notifier: Optional[Notifier] = None,
) -> Flask:
    """Create and configure Flask application.

    Every collaborator can be injected; missing ones are built from the
    loaded settings (courses from COURSES_DIR, users.json roster files,
    SMTP or log-only notifications).
    """
    if cfg is None:
        cfg = load_settings()

    app = Flask(__name__)
    app.config["APP_CONFIG"] = cfg
    app.config["SECRET_KEY"] = cfg.secret_key
    app.config["MAX_CONTENT_LENGTH"] = JSON_MAX_SIZE_BYTES

    if courses is None:
        courses = CourseRegistry(cfg.courses_dir)
        courses.load_all()
    if roster_store is None:
        roster_store = FileRosterStore(courses)
    if notifier is None:
        notifier = build_notifier(cfg)

    app.config["COURSES"] = courses
    app.config["ROSTER_STORE"] = roster_store
    app.config["RESOLVER"] = ContextResolver(courses, roster_store)
    app.config["SYNC_ENGINE"] = UserSyncEngine(
        roster_store,
        notifier,
        password_length=cfg.generated_password_length,
        operator="api",
    )

    # Register blueprints
    from autograder.api import admin, errors, health, users

    app.register_blueprint(health.bp)
    app.register_blueprint(users.bp, url_prefix=API_URL_PREFIX)
    app.register_blueprint(admin.bp, url_prefix=f"{API_URL_PREFIX}/admin")

    # Register error handlers
    errors.register_error_handlers(app)

    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    print(f"[flask_app] Mode={mode_label}")
    print(f"[flask_app] API registered at {API_URL_PREFIX} ({len(courses.list_courses())} course(s))")

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_app().run(host="0.0.0.0", port=5000, debug=True)
