"""Sync a users file into a course roster.

The users file is a JSON list of records:

    [{"email": "alice@example.com", "name": "Alice", "role": "student", "pass": ""}, ...]

Plaintext passwords are hashed before syncing; records without one get a
generated password.
"""
from __future__ import annotations
import argparse
import json
import logging
import sys
from pathlib import Path

SCRIPT_DIR = Path(__file__).parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from autograder.config import load_settings
from autograder.core.courses import CourseRegistry
from autograder.core.errors import SyncError
from autograder.core.notify import build_notifier
from autograder.core.roster import FileRosterStore
from autograder.core.sync import SyncOptions, UserSyncEngine
from autograder.core.validators import user_from_raw


def load_users_file(path: Path) -> list:
    """Read and validate a users file.

    Raises:
        ValueError: If the file is not a list of valid user records
    """
    try:
        with path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Failed to read users file '{path}': {exc}") from exc

    if not isinstance(raw, list):
        raise ValueError(f"Users file '{path}' must contain a JSON list")

    users = []
    for index, entry in enumerate(raw):
        try:
            users.append(user_from_raw(entry))
        except ValueError as exc:
            raise ValueError(f"Invalid user at index {index}: {exc}") from exc
    return users


def main(argv=None) -> int:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(description="Sync users into a course roster")
    parser.add_argument("users_file", type=Path)
    parser.add_argument("--courses-dir", type=Path, help="Defaults to COURSES_DIR")
    parser.add_argument("--course", required=True, help="Course id")
    parser.add_argument("--skip-updates", action="store_true", help="Leave existing users untouched")
    parser.add_argument("--dry-run", action="store_true", help="Classify only; do not save or send emails")
    parser.add_argument("--send-emails", action="store_true")
    parser.add_argument("--show-passwords", action="store_true", help="Print generated passwords")
    parser.add_argument("--operator", default="cli", help="Operator identifier for audit logs")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        cfg = load_settings(require_secret_key=False)
    except RuntimeError as exc:
        print(f"[sync_users] {exc}", file=sys.stderr)
        return 2
    courses_dir = args.courses_dir or cfg.courses_dir

    courses = CourseRegistry(courses_dir)
    courses.load_all()
    if courses.get_course(args.course) is None:
        print(f"[sync_users] Unknown course '{args.course}' in {courses_dir}", file=sys.stderr)
        return 2

    try:
        new_users = load_users_file(args.users_file)
    except ValueError as exc:
        print(f"[sync_users] {exc}", file=sys.stderr)
        return 2

    engine = UserSyncEngine(
        FileRosterStore(courses),
        build_notifier(cfg),
        password_length=cfg.generated_password_length,
        operator=args.operator,
    )
    options = SyncOptions(merge=not args.skip_updates, dry_run=args.dry_run, send_emails=args.send_emails)

    try:
        result = engine.sync(args.course, new_users, options)
    except SyncError as exc:
        print(f"[sync_users] Sync failed: {exc}", file=sys.stderr)
        return 1

    prefix = "[sync_users] (dry run) " if args.dry_run else "[sync_users] "
    print(f"{prefix}added={len(result.added)} modified={len(result.modified)} skipped={len(result.skipped)}")
    for label, users in (("add", result.added), ("mod", result.modified), ("skip", result.skipped)):
        for user in users:
            line = f"  {label:<4} {user.email} ({user.role.label()})"
            if args.show_passwords and user.email in result.cleartext_passwords:
                line += f" password={result.cleartext_passwords[user.email]}"
            print(line)

    if result.failed_notifications:
        print(f"{prefix}failed notifications: {', '.join(result.failed_notifications)}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
