"""Roster persistence.

A roster is the email -> User mapping of one course. Stores hand out
fresh copies on load, so callers can mutate a loaded roster freely and
nothing changes until save().
"""
from __future__ import annotations
import json
import logging
import os
import tempfile
import threading
from collections import defaultdict
from pathlib import Path
from typing import Optional

from autograder.core.courses import CourseRegistry
from autograder.core.errors import RosterStoreError
from autograder.core.users import User

logger = logging.getLogger(__name__)

USERS_FILENAME = "users.json"

Roster = dict[str, User]


class RosterStore:
    """Interface for loading and saving course rosters."""

    def load(self, course_id: str) -> Roster:
        raise NotImplementedError

    def save(self, course_id: str, users: Roster) -> None:
        raise NotImplementedError

    def get_user(self, course_id: str, email: str) -> Optional[User]:
        return self.load(course_id).get(email)


class InMemoryRosterStore(RosterStore):
    """Process-local store (tests, demo mode)."""

    def __init__(self, rosters: Optional[dict[str, Roster]] = None):
        self._rosters: dict[str, Roster] = {}
        self._lock = threading.Lock()
        for course_id, users in (rosters or {}).items():
            self.save(course_id, users)

    def load(self, course_id: str) -> Roster:
        with self._lock:
            return {email: user.copy() for email, user in self._rosters.get(course_id, {}).items()}

    def save(self, course_id: str, users: Roster) -> None:
        with self._lock:
            self._rosters[course_id] = {email: user.copy() for email, user in users.items()}


class FileRosterStore(RosterStore):
    """JSON roster file stored beside each course config.

    Writes are atomic (temp file + rename) and serialized per course, so at
    most one write per course is in flight.
    """

    def __init__(self, courses: CourseRegistry, filename: str = USERS_FILENAME):
        self.courses = courses
        self.filename = filename
        self._locks: defaultdict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    def _lock_for(self, course_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks[course_id]

    def path_for(self, course_id: str) -> Path:
        """Resolve the roster file path for a course.

        Raises:
            RosterStoreError: If the course is unknown or has no source directory
        """
        course = self.courses.get_course(course_id)
        if course is None:
            raise RosterStoreError(f"Unknown course '{course_id}'")
        if course.source_dir is None:
            raise RosterStoreError(f"Course '{course_id}' has no source directory")
        return Path(course.source_dir) / self.filename

    def load(self, course_id: str) -> Roster:
        path = self.path_for(course_id)
        if not path.exists():
            return {}

        try:
            with path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise RosterStoreError(f"Failed to read users file '{path}': {exc}") from exc

        if not isinstance(raw, dict):
            raise RosterStoreError(f"Users file '{path}' must contain an object keyed by email")

        users: Roster = {}
        for email, entry in raw.items():
            try:
                user = User.from_dict(entry, email=email)
            except ValueError as exc:
                raise RosterStoreError(f"Invalid user entry '{email}' in '{path}': {exc}") from exc
            users[user.email] = user
        return users

    def save(self, course_id: str, users: Roster) -> None:
        path = self.path_for(course_id)
        payload = {email: users[email].to_dict() for email in sorted(users)}

        with self._lock_for(course_id):
            fd, tmp_name = tempfile.mkstemp(prefix=".users-", suffix=".json", dir=str(path.parent))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(payload, handle, indent=4, ensure_ascii=False)
                    handle.write("\n")
                os.chmod(tmp_name, 0o600)
                os.replace(tmp_name, path)
            except OSError as exc:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
                raise RosterStoreError(f"Failed to save users file '{path}': {exc}") from exc

        logger.debug("Saved %d user(s) for course '%s' to %s", len(users), course_id, path)
