"""User records as stored in a course roster."""
from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Any, Optional

from autograder.core.roles import Role


@dataclass
class User:
    """A roster entry, keyed by email (case-sensitive)."""

    email: str
    name: str = ""
    role: Role = Role.UNKNOWN
    password_hash: str = ""
    lms_id: str = ""

    def copy(self) -> "User":
        return replace(self)

    def merge(self, other: "User") -> bool:
        """Merge non-empty fields of `other` into this user.

        Empty fields on `other` leave the current value untouched. The
        password hash is always taken from `other`, so a merge rotates (or
        confirms) the credential.

        Returns:
            True if any field changed value.
        """
        before = (self.name, self.role, self.password_hash, self.lms_id)

        if other.name:
            self.name = other.name
        if other.role != Role.UNKNOWN:
            self.role = other.role
        if other.lms_id:
            self.lms_id = other.lms_id
        self.password_hash = other.password_hash

        return before != (self.name, self.role, self.password_hash, self.lms_id)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the roster file (includes the password hash)."""
        data = self.to_public_dict()
        data["pass"] = self.password_hash
        return data

    def to_public_dict(self) -> dict[str, Any]:
        """Serialize for API responses (never includes the password hash)."""
        return {
            "email": self.email,
            "name": self.name,
            "role": self.role.label(),
            "lms-id": self.lms_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], email: Optional[str] = None) -> "User":
        """Build a user from its JSON form.

        Args:
            data: Dict with email, name, role, pass, lms-id keys
            email: Fallback email when the dict is keyed by email externally

        Raises:
            ValueError: If no email is available
        """
        if not isinstance(data, dict):
            raise ValueError("User entry must be an object")

        user_email = str(data.get("email") or email or "").strip()
        if not user_email:
            raise ValueError("User entry is missing an email")

        return cls(
            email=user_email,
            name=str(data.get("name") or ""),
            role=Role.parse(data.get("role", "")),
            password_hash=str(data.get("pass") or ""),
            lms_id=str(data.get("lms-id") or ""),
        )
