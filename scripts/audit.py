"""Audit trail for roster changes (HMAC-signed JSONL)."""

from __future__ import annotations
import datetime
import hashlib
import hmac
import json
import logging
import os
from pathlib import Path
from typing import Any, Literal

logger = logging.getLogger(__name__)

AUDIT_LOG_DIR = Path(os.environ.get("AUDIT_LOG_DIR", ".runtime/audit"))
AUDIT_LOG_FILE = AUDIT_LOG_DIR / "roster-events.jsonl"
DEMO_SIGNING_KEY = "demo-audit-signing-key-change-in-production"

EventType = Literal["user_add", "user_modify", "course_reload"]


def _get_signing_key() -> bytes:
    """Read the signing key lazily so tests and secret loaders can set it late."""
    key_file = os.environ.get("AUDIT_LOG_SIGNING_KEY_FILE")
    if key_file:
        path = Path(key_file)
        if path.exists():
            try:
                return path.read_text(encoding="utf-8").strip().encode("utf-8")
            except OSError:
                pass
    if "AUDIT_LOG_SIGNING_KEY" in os.environ:
        return os.environ["AUDIT_LOG_SIGNING_KEY"].strip().encode("utf-8")
    if os.environ.get("DEMO_MODE", "false").lower() == "true":
        return DEMO_SIGNING_KEY.encode("utf-8")
    return b""


def _ensure_audit_dir() -> None:
    AUDIT_LOG_DIR.mkdir(parents=True, exist_ok=True)
    AUDIT_LOG_DIR.chmod(0o700)


def _sign_event(event: dict[str, Any]) -> str:
    """HMAC-SHA256 over the canonical JSON form of the event."""
    signing_key = _get_signing_key()
    if not signing_key:
        return ""
    canonical = json.dumps(event, sort_keys=True, separators=(",", ":"))
    return hmac.new(signing_key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()


def log_roster_event(
    event_type: EventType,
    email: str,
    *,
    operator: str = "system",
    course_id: str = "",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """Append a roster event to the audit trail.

    Args:
        event_type: What happened (user_add, user_modify, course_reload)
        email: User affected (or the operator, for course-level events)
        operator: Who performed the operation
        course_id: Course the roster belongs to
        details: Additional context (role, whether a password was generated, ...)
        success: Whether the operation succeeded
    """
    _ensure_audit_dir()

    event = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "event_type": event_type,
        "course_id": course_id,
        "email": email,
        "operator": operator,
        "success": success,
        "details": details or {},
    }

    signature = _sign_event(event)
    if signature:
        event["signature"] = signature

    with AUDIT_LOG_FILE.open("a", encoding="utf-8") as f:
        f.write(json.dumps(event, ensure_ascii=False) + "\n")

    AUDIT_LOG_FILE.chmod(0o600)


def safe_log_roster_event(
    event_type: EventType,
    email: str,
    *,
    operator: str = "system",
    course_id: str = "",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> bool:
    """log_roster_event() that reports failures instead of raising.

    A roster change that already happened must not be reported as failed
    because the audit file could not be written.

    Returns:
        True if the event was written
    """
    try:
        log_roster_event(
            event_type,
            email,
            operator=operator,
            course_id=course_id,
            details=details,
            success=success,
        )
        return True
    except OSError as e:
        logger.warning("Failed to log %s event for %s: %s", event_type, email, e)
        return False


def verify_audit_log() -> tuple[int, int]:
    """Verify all signatures in the audit log.

    Returns:
        Tuple of (total_events, valid_signatures)
    """
    if not AUDIT_LOG_FILE.exists():
        return 0, 0

    total = 0
    valid = 0

    with AUDIT_LOG_FILE.open("r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            total += 1
            try:
                event = json.loads(line)
                stored_sig = event.pop("signature", "")
                if not stored_sig:
                    continue
                computed_sig = _sign_event(event)
                if computed_sig and hmac.compare_digest(stored_sig, computed_sig):
                    valid += 1
            except (json.JSONDecodeError, AttributeError):
                continue

    return total, valid


if __name__ == "__main__":
    import sys
    total, valid = verify_audit_log()
    print(f"Audit log: {valid}/{total} events with valid signatures")
    sys.exit(0 if total == valid else 1)
