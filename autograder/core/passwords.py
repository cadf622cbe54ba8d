"""Password hashing, verification, and generation.

Stored credentials are werkzeug salted hashes ("method$salt$hash").
Verification goes through check_password_hash, which compares digests
with hmac.compare_digest.
"""
from __future__ import annotations
import os
import secrets
import string

from werkzeug.security import check_password_hash, generate_password_hash

DEFAULT_HASH_METHOD = "scrypt"
DEFAULT_PASSWORD_LENGTH = 16

# Ambiguous characters (0/O, 1/l/I) removed so emailed passwords can be retyped.
PASSWORD_ALPHABET = "".join(
    char for char in string.ascii_letters + string.digits if char not in "0O1lI"
)


def _hash_method() -> str:
    return os.environ.get("PASSWORD_HASH_METHOD", DEFAULT_HASH_METHOD)


def hash_password(plaintext: str) -> str:
    """Hash a plaintext password for storage.

    Raises:
        ValueError: If the password is empty
    """
    if not plaintext:
        raise ValueError("Cannot hash an empty password")
    return generate_password_hash(plaintext, method=_hash_method())


def verify_password(stored_hash: str, credential: str) -> bool:
    """Check a supplied credential against a stored hash.

    Empty or malformed hashes never verify.
    """
    if not stored_hash or not credential:
        return False
    try:
        return check_password_hash(stored_hash, credential)
    except ValueError:
        # Unknown hash method in a hand-edited roster file.
        return False


def generate_password(length: int = DEFAULT_PASSWORD_LENGTH) -> str:
    """Generate a random password from the OS entropy source.

    Raises:
        ValueError: If length is too short to be useful
        OSError/NotImplementedError: If no entropy source is available
    """
    if length < 8:
        raise ValueError("Generated passwords must be at least 8 characters")
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))
