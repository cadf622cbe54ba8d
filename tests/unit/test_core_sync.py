import json
from unittest.mock import MagicMock

import pytest

from autograder.core.courses import Course, CourseRegistry
from autograder.core.errors import NotificationError, RosterStoreError, SyncError
from autograder.core.passwords import hash_password, verify_password
from autograder.core.roles import Role
from autograder.core.roster import FileRosterStore, InMemoryRosterStore, RosterStore
from autograder.core.sync import SyncOptions, UserSyncEngine, UserSyncResult
from autograder.core.users import User
from scripts import audit

COURSE = "cse-101"


def store_with(*users):
    return InMemoryRosterStore({COURSE: {user.email: user for user in users}})


@pytest.fixture()
def file_store(tmp_path):
    course_dir = tmp_path / COURSE
    course_dir.mkdir()
    courses = CourseRegistry()
    courses.add_course(Course(id=COURSE, source_dir=course_dir))
    return FileRosterStore(courses)


# ─────────────────────────────────────────────────────────────────────────────
# Worked examples
# ─────────────────────────────────────────────────────────────────────────────
def test_add_to_empty_roster_defaults_role_and_generates_password():
    store = store_with()
    engine = UserSyncEngine(store)

    result = engine.sync(COURSE, [User(email="a@x.com", role=Role.UNKNOWN)])

    assert [user.email for user in result.added] == ["a@x.com"]
    assert result.added[0].role == Role.OTHER
    assert result.skipped == [] and result.modified == []
    assert set(result.cleartext_passwords) == {"a@x.com"}

    roster = store.load(COURSE)
    assert list(roster) == ["a@x.com"]
    assert roster["a@x.com"].role == Role.OTHER


def test_no_merge_skips_existing_user_and_keeps_roster():
    store = store_with(User(email="a@x.com", role=Role.STUDENT, password_hash="h1"))
    engine = UserSyncEngine(store)

    result = engine.sync(COURSE, [User(email="a@x.com", role=Role.GRADER)], SyncOptions(merge=False))

    assert [user.email for user in result.skipped] == ["a@x.com"]
    assert result.skipped[0].role == Role.STUDENT
    assert result.added == [] and result.modified == []
    assert result.cleartext_passwords == {}
    assert store.load(COURSE)["a@x.com"] == User(email="a@x.com", role=Role.STUDENT, password_hash="h1")


def test_merge_keeps_name_and_overwrites_supplied_hash(notifier):
    store = store_with(User(email="a@x.com", name="Al", role=Role.STUDENT, password_hash="old-hash"))
    engine = UserSyncEngine(store, notifier)

    result = engine.sync(
        COURSE,
        [User(email="a@x.com", name="", password_hash="new-hash")],
        SyncOptions(merge=True, send_emails=True),
    )

    assert [user.email for user in result.modified] == ["a@x.com"]
    stored = store.load(COURSE)["a@x.com"]
    assert stored.name == "Al"
    assert stored.role == Role.STUDENT
    assert stored.password_hash == "new-hash"
    assert "a@x.com" not in result.cleartext_passwords
    notifier.notify_password_reset.assert_not_called()
    notifier.notify_account_created.assert_not_called()


# ─────────────────────────────────────────────────────────────────────────────
# Classification
# ─────────────────────────────────────────────────────────────────────────────
def test_classification_is_a_partition():
    store = store_with(
        User(email="keep@x.com", name="Keep", role=Role.STUDENT, password_hash="same"),
        User(email="change@x.com", name="Old", role=Role.STUDENT, password_hash="h"),
    )
    engine = UserSyncEngine(store)

    result = engine.sync(
        COURSE,
        [
            User(email="keep@x.com", password_hash="same"),
            User(email="change@x.com", name="New", password_hash="h"),
            User(email="new@x.com", role=Role.STUDENT, password_hash="h"),
        ],
    )

    classified = [user.email for user in result.skipped + result.added + result.modified]
    assert sorted(classified) == ["change@x.com", "new@x.com"]
    assert len(classified) == len(set(classified))
    assert result.count() == 2


def test_password_only_change_counts_as_modified():
    store = store_with(User(email="a@x.com", name="Al", password_hash="old"))
    result = UserSyncEngine(store).sync(COURSE, [User(email="a@x.com", name="Al", password_hash="new")])
    assert [user.email for user in result.modified] == ["a@x.com"]


def test_merge_without_password_rotates_to_generated_one():
    store = store_with(User(email="a@x.com", name="Al", role=Role.STUDENT, password_hash="old"))

    result = UserSyncEngine(store).sync(COURSE, [User(email="a@x.com")])

    assert [user.email for user in result.modified] == ["a@x.com"]
    stored = store.load(COURSE)["a@x.com"]
    assert verify_password(stored.password_hash, result.cleartext_passwords["a@x.com"])


def test_generated_password_verifies_against_stored_hash(file_store):
    result = UserSyncEngine(file_store).sync(COURSE, [User(email="a@x.com", role=Role.STUDENT)])

    stored = file_store.load(COURSE)["a@x.com"]
    plaintext = result.cleartext_passwords["a@x.com"]
    assert stored.password_hash != plaintext
    assert verify_password(stored.password_hash, plaintext)


def test_supplied_password_stored_verbatim():
    hashed = hash_password("chosen-pass")
    store = store_with()

    result = UserSyncEngine(store).sync(COURSE, [User(email="a@x.com", password_hash=hashed)])

    assert result.cleartext_passwords == {}
    assert store.load(COURSE)["a@x.com"].password_hash == hashed


def test_inputs_are_not_mutated():
    candidate = User(email="a@x.com", role=Role.UNKNOWN)
    UserSyncEngine(store_with()).sync(COURSE, [candidate])
    assert candidate == User(email="a@x.com", role=Role.UNKNOWN)


def test_dict_input_and_duplicate_email_last_wins():
    store = store_with()
    engine = UserSyncEngine(store)

    engine.sync(COURSE, {"a@x.com": User(email="a@x.com", name="First", password_hash="h")})
    result = engine.sync(
        COURSE,
        [
            User(email="b@x.com", name="One", password_hash="h"),
            User(email="b@x.com", name="Two", password_hash="h"),
        ],
    )

    assert [user.name for user in result.added] == ["Two"]
    assert store.load(COURSE)["a@x.com"].name == "First"


def test_add_user_syncs_single_record():
    store = store_with()
    result = UserSyncEngine(store).add_user(COURSE, User(email="a@x.com", role=Role.GRADER, password_hash="h"))
    assert [user.email for user in result.added] == ["a@x.com"]
    assert store.load(COURSE)["a@x.com"].role == Role.GRADER


# ─────────────────────────────────────────────────────────────────────────────
# Persistence
# ─────────────────────────────────────────────────────────────────────────────
def test_skip_leaves_roster_file_byte_identical(file_store):
    UserSyncEngine(file_store).sync(COURSE, [User(email="a@x.com", role=Role.STUDENT, password_hash="h")])
    path = file_store.path_for(COURSE)
    before = path.read_bytes()

    result = UserSyncEngine(file_store).sync(
        COURSE, [User(email="a@x.com", role=Role.OWNER)], SyncOptions(merge=False)
    )

    assert [user.email for user in result.skipped] == ["a@x.com"]
    assert path.read_bytes() == before


def test_dry_run_never_persists_or_notifies(file_store, notifier):
    UserSyncEngine(file_store).sync(COURSE, [User(email="a@x.com", role=Role.STUDENT, password_hash="h")])
    path = file_store.path_for(COURSE)
    before = path.read_bytes()

    engine = UserSyncEngine(file_store, notifier)
    result = engine.sync(
        COURSE,
        [User(email="a@x.com", role=Role.ADMIN), User(email="b@x.com")],
        SyncOptions(dry_run=True, send_emails=True),
    )

    assert [user.email for user in result.added] == ["b@x.com"]
    assert [user.email for user in result.modified] == ["a@x.com"]
    assert path.read_bytes() == before
    notifier.notify_account_created.assert_not_called()
    notifier.notify_password_reset.assert_not_called()


def test_load_failure_raises_sync_error():
    store = MagicMock(spec=RosterStore)
    store.load.side_effect = RosterStoreError("unreadable")

    with pytest.raises(SyncError):
        UserSyncEngine(store).sync(COURSE, [User(email="a@x.com")])
    store.save.assert_not_called()


def test_save_failure_raises_sync_error_and_skips_notifications(notifier):
    store = MagicMock(spec=RosterStore)
    store.load.return_value = {}
    store.save.side_effect = RosterStoreError("disk full")

    with pytest.raises(SyncError):
        UserSyncEngine(store, notifier).sync(COURSE, [User(email="a@x.com")], SyncOptions(send_emails=True))
    notifier.notify_account_created.assert_not_called()


def test_generation_failure_aborts_whole_batch():
    store = store_with(User(email="a@x.com", password_hash="h"))
    calls = []

    def flaky_generator(length):
        calls.append(length)
        if len(calls) > 1:
            raise OSError("entropy source unavailable")
        return "x" * length

    engine = UserSyncEngine(store, password_generator=flaky_generator)
    with pytest.raises(SyncError):
        engine.sync(COURSE, [User(email="b@x.com"), User(email="c@x.com")])

    assert list(store.load(COURSE)) == ["a@x.com"]


def test_password_length_is_passed_to_generator():
    generator = MagicMock(return_value="generated-password")
    engine = UserSyncEngine(store_with(), password_length=24, password_generator=generator)

    result = engine.sync(COURSE, [User(email="a@x.com")])

    generator.assert_called_once_with(24)
    assert result.cleartext_passwords == {"a@x.com": "generated-password"}


# ─────────────────────────────────────────────────────────────────────────────
# Notifications
# ─────────────────────────────────────────────────────────────────────────────
def test_notifications_for_added_and_reset_users(notifier):
    store = store_with(
        User(email="reset@x.com", password_hash="h"),
        User(email="meta@x.com", name="Old", password_hash="h"),
    )
    engine = UserSyncEngine(store, notifier)

    result = engine.sync(
        COURSE,
        [
            User(email="new@x.com"),
            User(email="reset@x.com"),
            User(email="meta@x.com", name="New", password_hash="h"),
        ],
        SyncOptions(send_emails=True),
    )

    created = notifier.notify_account_created.call_args_list
    assert len(created) == 1
    user, password, dry_run, sleep = created[0].args
    assert user.email == "new@x.com"
    assert password == result.cleartext_passwords["new@x.com"]
    assert dry_run is False
    assert sleep is True

    reset = notifier.notify_password_reset.call_args_list
    assert [call.args[0].email for call in reset] == ["reset@x.com"]


def test_single_user_batch_does_not_ask_for_spacing(notifier):
    UserSyncEngine(store_with(), notifier).sync(COURSE, [User(email="a@x.com")], SyncOptions(send_emails=True))
    assert notifier.notify_account_created.call_args.args[3] is False


def test_no_notifications_unless_requested(notifier):
    UserSyncEngine(store_with(), notifier).sync(COURSE, [User(email="a@x.com")])
    notifier.notify_account_created.assert_not_called()


def test_notification_failure_is_recorded_not_fatal(notifier):
    notifier.notify_account_created.side_effect = [NotificationError("smtp down"), None]
    store = store_with()

    result = UserSyncEngine(store, notifier).sync(
        COURSE, [User(email="a@x.com"), User(email="b@x.com")], SyncOptions(send_emails=True)
    )

    assert result.failed_notifications == ["a@x.com"]
    assert sorted(store.load(COURSE)) == ["a@x.com", "b@x.com"]


def test_missing_notifier_is_tolerated():
    result = UserSyncEngine(store_with()).sync(COURSE, [User(email="a@x.com")], SyncOptions(send_emails=True))
    assert [user.email for user in result.added] == ["a@x.com"]


# ─────────────────────────────────────────────────────────────────────────────
# Audit and serialization
# ─────────────────────────────────────────────────────────────────────────────
def test_persisted_changes_are_audited(_isolated_audit_log):
    store = store_with(User(email="a@x.com", name="Old", password_hash="h"))

    UserSyncEngine(store, operator="tester").sync(
        COURSE, [User(email="a@x.com", name="New", password_hash="h"), User(email="b@x.com")]
    )

    lines = audit.AUDIT_LOG_FILE.read_text(encoding="utf-8").splitlines()
    events = sorted((json.loads(line) for line in lines), key=lambda event: event["email"])
    assert [(event["event_type"], event["email"]) for event in events] == [
        ("user_modify", "a@x.com"),
        ("user_add", "b@x.com"),
    ]
    assert all(event["operator"] == "tester" and event["course_id"] == COURSE for event in events)
    assert events[1]["details"]["password_generated"] is True


def test_dry_run_writes_no_audit_events(_isolated_audit_log):
    UserSyncEngine(store_with()).sync(COURSE, [User(email="a@x.com")], SyncOptions(dry_run=True))
    assert not audit.AUDIT_LOG_FILE.exists()


def test_result_to_dict_hides_passwords_by_default():
    result = UserSyncResult(
        added=[User(email="a@x.com", role=Role.STUDENT, password_hash="secret-hash")],
        cleartext_passwords={"a@x.com": "plain"},
    )

    data = result.to_dict()
    assert data["add-users"] == [{"email": "a@x.com", "name": "", "role": "student", "lms-id": ""}]
    assert "cleartext-passwords" not in data
    assert "secret-hash" not in json.dumps(data)

    assert result.to_dict(include_passwords=True)["cleartext-passwords"] == {"a@x.com": "plain"}
