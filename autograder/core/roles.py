"""Ordered user roles for permission checks."""
from __future__ import annotations
from enum import IntEnum


class Role(IntEnum):
    """Course role. Ordinal order is privilege order."""

    UNKNOWN = 0
    OTHER = 1
    STUDENT = 2
    GRADER = 3
    ADMIN = 4
    OWNER = 5

    @classmethod
    def parse(cls, value) -> "Role":
        """Parse a role name (case-insensitive) or ordinal.

        Unrecognized values map to Role.UNKNOWN.
        """
        if isinstance(value, Role):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                return cls.UNKNOWN
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper(), cls.UNKNOWN)
        return cls.UNKNOWN

    def label(self) -> str:
        """Lowercase name used in JSON files and API payloads."""
        return self.name.lower()

    def satisfies(self, required: "Role") -> bool:
        return self >= required
