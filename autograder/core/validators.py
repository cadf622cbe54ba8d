"""Input validation helpers for incoming user records."""
from __future__ import annotations
from typing import Any

from autograder.core.passwords import hash_password
from autograder.core.roles import Role
from autograder.core.users import User

EMAIL_MAX_LENGTH = 254
NAME_MAX_LENGTH = 128


def validate_email(email: str) -> str:
    """Validate email address.

    Emails are roster keys and compared case-sensitively, so only
    surrounding whitespace is removed.

    Returns:
        Stripped email address

    Raises:
        ValueError: If email is invalid
    """
    if email is not None and not isinstance(email, str):
        raise ValueError("Email must be a string")
    email = (email or "").strip()
    if not email or "@" not in email:
        raise ValueError("Invalid email format")

    local, domain = email.rsplit("@", 1)
    if not local or not domain or "." not in domain:
        raise ValueError("Invalid email format")
    if any(char.isspace() for char in email):
        raise ValueError("Email must not contain whitespace")
    if len(email) > EMAIL_MAX_LENGTH:
        raise ValueError("Email exceeds maximum length")

    return email


def validate_name(name: str, field: str = "Name") -> str:
    """Validate an optional display name.

    Returns:
        Trimmed name (may be empty)

    Raises:
        ValueError: If name is too long or contains markup characters
    """
    if name is not None and not isinstance(name, str):
        raise ValueError(f"{field} must be a string")
    name = (name or "").strip()
    if len(name) > NAME_MAX_LENGTH:
        raise ValueError(f"{field} exceeds maximum length")
    if any(char in name for char in "<>\"`;&|$"):
        raise ValueError(f"{field} contains invalid characters")
    return name


def validate_role(value: Any) -> Role:
    """Parse a role, rejecting names that are not roles at all.

    An empty value is allowed and means "unspecified" (Role.UNKNOWN).

    Raises:
        ValueError: If the value is not a known role name
    """
    if value in (None, ""):
        return Role.UNKNOWN
    role = Role.parse(value)
    if role == Role.UNKNOWN and str(value).strip().lower() != "unknown":
        raise ValueError(f"Unknown role '{value}'")
    return role


def user_from_raw(entry: Any) -> User:
    """Build a sync candidate from a raw record with a plaintext password.

    The plaintext "pass" (if any) is hashed here, since the sync engine
    stores supplied passwords verbatim.

    Raises:
        ValueError: If any field is invalid
    """
    if not isinstance(entry, dict):
        raise ValueError("User entry must be an object")

    password = entry.get("pass") or ""
    if not isinstance(password, str):
        raise ValueError("Field 'pass' must be a string")

    return User(
        email=validate_email(entry.get("email", "")),
        name=validate_name(entry.get("name", "")),
        role=validate_role(entry.get("role")),
        password_hash=hash_password(password) if password else "",
        lms_id=str(entry.get("lms-id") or "").strip(),
    )
