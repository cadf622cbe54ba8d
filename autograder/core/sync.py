"""User synchronization: reconcile incoming user records with a course roster.

Each incoming user is classified as exactly one of:

    skipped   user exists and merging is disabled (existing record kept)
    added     user did not exist
    modified  user existed, merging is enabled, and some field changed

or none of them when a merge changes nothing. Any user that is not skipped
gets a password: a freshly generated one when the record carries none
(plaintext kept in the result for notifications), otherwise the record's
value, which must already be a password hash.

The call is all-or-nothing with respect to the stored roster: a failure
before or during save leaves the stored roster untouched.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Union

from autograder.core.errors import NotificationError, RosterStoreError, SyncError
from autograder.core.notify import Notifier
from autograder.core.passwords import DEFAULT_PASSWORD_LENGTH, generate_password, hash_password
from autograder.core.roles import Role
from autograder.core.roster import Roster, RosterStore
from autograder.core.users import User
from scripts import audit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncOptions:
    merge: bool = True
    dry_run: bool = False
    send_emails: bool = False


@dataclass
class UserSyncResult:
    skipped: list[User] = field(default_factory=list)
    added: list[User] = field(default_factory=list)
    modified: list[User] = field(default_factory=list)
    # Generated passwords only; never persisted.
    cleartext_passwords: dict[str, str] = field(default_factory=dict)
    failed_notifications: list[str] = field(default_factory=list)

    def count(self) -> int:
        return len(self.skipped) + len(self.added) + len(self.modified)

    def to_dict(self, include_passwords: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "skip-users": [user.to_public_dict() for user in self.skipped],
            "add-users": [user.to_public_dict() for user in self.added],
            "mod-users": [user.to_public_dict() for user in self.modified],
        }
        if self.failed_notifications:
            data["failed-notifications"] = list(self.failed_notifications)
        if include_passwords:
            data["cleartext-passwords"] = dict(self.cleartext_passwords)
        return data


class UserSyncEngine:
    """Applies user syncs to rosters held by a RosterStore.

    Callers must serialize syncs against the same course; the engine
    assumes exclusive use of the roster for the duration of one call.
    """

    def __init__(
        self,
        roster_store: RosterStore,
        notifier: Optional[Notifier] = None,
        *,
        password_length: int = DEFAULT_PASSWORD_LENGTH,
        password_generator: Callable[[int], str] = generate_password,
        password_hasher: Callable[[str], str] = hash_password,
        operator: str = "system",
    ):
        self.roster_store = roster_store
        self.notifier = notifier
        self.password_length = password_length
        self.password_generator = password_generator
        self.password_hasher = password_hasher
        self.operator = operator

    def add_user(self, course_id: str, user: User, options: SyncOptions = SyncOptions()) -> UserSyncResult:
        """Sync a single user. See sync()."""
        return self.sync(course_id, [user], options)

    def sync(
        self,
        course_id: str,
        new_users: Union[Iterable[User], dict[str, User]],
        options: SyncOptions = SyncOptions(),
    ) -> UserSyncResult:
        """Reconcile new_users with the roster of course_id.

        Args:
            course_id: Course whose roster is updated
            new_users: Incoming records (iterable, or dict keyed by email).
                Records are copied; the caller's objects are not modified.
                A later record for the same email replaces an earlier one.
            options: merge / dry_run / send_emails

        Returns:
            UserSyncResult with the classification and generated passwords

        Raises:
            SyncError: Roster load/save or password generation failed;
                nothing was persisted
        """
        if isinstance(new_users, dict):
            new_users = new_users.values()

        candidates: dict[str, User] = {}
        for user in new_users:
            candidates[user.email] = user.copy()

        try:
            roster = self.roster_store.load(course_id)
        except RosterStoreError as exc:
            raise SyncError(f"Failed to fetch local users for course '{course_id}': {exc}") from exc

        result = UserSyncResult()
        for candidate in candidates.values():
            self._resolve(roster, candidate, options, result)

        logger.info(
            "User sync for course '%s': %d added, %d modified, %d skipped (merge=%s, dry_run=%s)",
            course_id, len(result.added), len(result.modified), len(result.skipped),
            options.merge, options.dry_run,
        )

        if options.dry_run:
            return result

        try:
            self.roster_store.save(course_id, roster)
        except RosterStoreError as exc:
            raise SyncError(f"Failed to save users for course '{course_id}': {exc}") from exc

        self._audit(course_id, result)

        if options.send_emails:
            self._notify(result, options, sleep=(len(candidates) > 1))

        return result

    def _resolve(self, roster: Roster, candidate: User, options: SyncOptions, result: UserSyncResult) -> None:
        local_user = roster.get(candidate.email)

        if local_user is not None and not options.merge:
            result.skipped.append(local_user)
            return

        if not candidate.password_hash:
            cleartext = self._generate_password(candidate.email)
            candidate.password_hash = self._hash(cleartext, candidate.email)
            result.cleartext_passwords[candidate.email] = cleartext

        if local_user is None:
            if candidate.role == Role.UNKNOWN:
                candidate.role = Role.OTHER
            roster[candidate.email] = candidate
            result.added.append(candidate)
            return

        if local_user.merge(candidate):
            result.modified.append(local_user)

    def _generate_password(self, email: str) -> str:
        try:
            return self.password_generator(self.password_length)
        except (OSError, NotImplementedError, ValueError) as exc:
            raise SyncError(f"Failed to generate a password for '{email}': {exc}") from exc

    def _hash(self, cleartext: str, email: str) -> str:
        try:
            return self.password_hasher(cleartext)
        except (OSError, ValueError) as exc:
            raise SyncError(f"Failed to hash the generated password for '{email}': {exc}") from exc

    def _audit(self, course_id: str, result: UserSyncResult) -> None:
        for event_type, users in (("user_add", result.added), ("user_modify", result.modified)):
            for user in users:
                audit.safe_log_roster_event(
                    event_type,
                    user.email,
                    operator=self.operator,
                    course_id=course_id,
                    details={
                        "role": user.role.label(),
                        "password_generated": user.email in result.cleartext_passwords,
                    },
                )

    def _notify(self, result: UserSyncResult, options: SyncOptions, sleep: bool) -> None:
        if self.notifier is None:
            logger.warning("send_emails requested but no notifier is configured; skipping notifications")
            return

        for user in result.added:
            password = result.cleartext_passwords.get(user.email)
            self._deliver(self.notifier.notify_account_created, user, password, options, sleep, result)

        for user in result.modified:
            password = result.cleartext_passwords.get(user.email)
            if not password:
                # Caller-supplied hashes and metadata-only edits do not trigger a reset email.
                continue
            self._deliver(self.notifier.notify_password_reset, user, password, options, sleep, result)

    @staticmethod
    def _deliver(send, user: User, password: Optional[str], options: SyncOptions, sleep: bool,
                 result: UserSyncResult) -> None:
        try:
            send(user, password, options.dry_run, sleep)
        except NotificationError as exc:
            logger.error("Notification for %s failed: %s", user.email, exc)
            result.failed_notifications.append(user.email)
