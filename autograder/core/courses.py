"""Courses, assignments, and the registry that locates them.

Course configs live one per directory under the courses root:

    <courses_dir>/<anything>/course.yaml   (or course.json)

    id: cse-101
    name: Intro to Programming
    assignments:
      - id: hw0
        name: Hello World

The roster file (users.json) sits next to the config; see roster.py.
"""
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from autograder.core.errors import CourseConfigError

logger = logging.getLogger(__name__)

COURSE_CONFIG_FILENAMES = ("course.yaml", "course.yml", "course.json")


@dataclass(frozen=True)
class Assignment:
    id: str
    course_id: str
    name: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "course-id": self.course_id, "name": self.name or self.id}


@dataclass
class Course:
    id: str
    name: str = ""
    assignments: dict[str, Assignment] = field(default_factory=dict)
    source_dir: Optional[Path] = None

    def get_assignment(self, assignment_id: str) -> Optional[Assignment]:
        return self.assignments.get(assignment_id)

    @classmethod
    def from_dict(cls, data: dict[str, Any], source_dir: Optional[Path] = None) -> "Course":
        """Build a course from a parsed config document.

        Raises:
            CourseConfigError: If the document is not a valid course config
        """
        if not isinstance(data, dict):
            raise CourseConfigError("Course config must be a mapping")

        course_id = str(data.get("id") or "").strip()
        if not course_id:
            raise CourseConfigError("Course config is missing an id")

        raw_assignments = data.get("assignments") or []
        if not isinstance(raw_assignments, list):
            raise CourseConfigError(f"Course '{course_id}': assignments must be a list")

        assignments: dict[str, Assignment] = {}
        for entry in raw_assignments:
            if not isinstance(entry, dict) or not entry.get("id"):
                raise CourseConfigError(f"Course '{course_id}': every assignment needs an id")
            assignment_id = str(entry["id"]).strip()
            if assignment_id in assignments:
                raise CourseConfigError(
                    f"Course '{course_id}': duplicate assignment id '{assignment_id}'"
                )
            assignments[assignment_id] = Assignment(
                id=assignment_id,
                course_id=course_id,
                name=str(entry.get("name") or ""),
            )

        return cls(
            id=course_id,
            name=str(data.get("name") or ""),
            assignments=assignments,
            source_dir=source_dir,
        )


def find_course_config(directory: Path) -> Optional[Path]:
    for filename in COURSE_CONFIG_FILENAMES:
        candidate = directory / filename
        if candidate.is_file():
            return candidate
    return None


def load_course(config_path: Path) -> Course:
    """Load a single course config file (YAML or JSON).

    Raises:
        CourseConfigError: If the file cannot be read or parsed
    """
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        raise CourseConfigError(f"Failed to read course config '{config_path}': {exc}") from exc
    except yaml.YAMLError as exc:
        raise CourseConfigError(f"Failed to parse course config '{config_path}': {exc}") from exc

    return Course.from_dict(data, source_dir=config_path.parent)


class CourseRegistry:
    """Active courses, keyed by id.

    Injected into the resolver and the roster store in place of a
    process-wide course map.
    """

    def __init__(self, courses_dir: Optional[Path] = None):
        self.courses_dir = Path(courses_dir) if courses_dir else None
        self._courses: dict[str, Course] = {}
        self._lock = threading.Lock()

    def load_all(self) -> int:
        """Scan courses_dir for course configs.

        Invalid configs are logged and skipped so one broken course does not
        take down the others.

        Returns:
            Number of courses loaded
        """
        if self.courses_dir is None or not self.courses_dir.is_dir():
            logger.warning("Courses directory %s does not exist; no courses loaded", self.courses_dir)
            return 0

        loaded: dict[str, Course] = {}
        for directory in sorted(path for path in self.courses_dir.iterdir() if path.is_dir()):
            config_path = find_course_config(directory)
            if config_path is None:
                continue
            try:
                course = load_course(config_path)
            except CourseConfigError as exc:
                logger.error("Skipping course in %s: %s", directory, exc)
                continue
            if course.id in loaded:
                logger.error("Skipping duplicate course id '%s' in %s", course.id, directory)
                continue
            loaded[course.id] = course

        with self._lock:
            self._courses = loaded

        logger.info("Loaded %d course(s) from %s", len(loaded), self.courses_dir)
        return len(loaded)

    def add_course(self, course: Course) -> None:
        with self._lock:
            self._courses[course.id] = course

    def get_course(self, course_id: str) -> Optional[Course]:
        with self._lock:
            return self._courses.get(course_id)

    def list_courses(self) -> list[Course]:
        with self._lock:
            return sorted(self._courses.values(), key=lambda course: course.id)

    def reload(self, course_id: str) -> Course:
        """Re-read a course config from disk.

        Raises:
            CourseConfigError: If the course is unknown, has no source, or
                its config changed id
        """
        current = self.get_course(course_id)
        if current is None:
            raise CourseConfigError(f"Unknown course '{course_id}'")
        if current.source_dir is None:
            raise CourseConfigError(f"Course '{course_id}' has no source directory to reload from")

        config_path = find_course_config(current.source_dir)
        if config_path is None:
            raise CourseConfigError(f"Course config for '{course_id}' no longer exists")

        course = load_course(config_path)
        if course.id != course_id:
            raise CourseConfigError(
                f"Course config in {current.source_dir} now declares id '{course.id}', expected '{course_id}'"
            )

        self.add_course(course)
        logger.info("Reloaded course '%s' (%d assignment(s))", course_id, len(course.assignments))
        return course
