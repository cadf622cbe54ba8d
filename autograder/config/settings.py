"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import os
import secrets
from dataclasses import dataclass
from pathlib import Path


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                print(f"[settings] ✓ Loaded {secret_name} from /run/secrets")
                return secret_value
        except OSError as e:
            print(f"[settings] ✗ Failed to read /run/secrets/{secret_name}: {e}")

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            return secret_value

    return None


def _env_bool(name: str, default: bool = False) -> bool:
    return os.environ.get(name, str(default)).strip().lower() == "true"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer, got '{raw}'.")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be a number, got '{raw}'.")


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Flask
    secret_key: str

    # Courses
    courses_dir: Path = Path(".runtime/courses")

    # Passwords
    password_hash_method: str = "scrypt"
    generated_password_length: int = 16

    # Email
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    email_sleep_seconds: float = 1.5

    # Audit
    audit_log_signing_key: str = ""

    @property
    def smtp_enabled(self) -> bool:
        return bool(self.smtp_host and self.smtp_user)


def load_settings(require_secret_key: bool = True) -> AppConfig:
    """Load application settings from environment and /run/secrets.

    Args:
        require_secret_key: False for command-line tools, which need the
            SMTP, password and audit settings but never sign sessions
    """
    demo_mode = _env_bool("DEMO_MODE")

    # Flask secret key
    secret_key = _load_secret_from_file("flask_secret_key", "FLASK_SECRET_KEY")
    if not secret_key and require_secret_key:
        if demo_mode:
            secret_key = secrets.token_urlsafe(48)
            os.environ["FLASK_SECRET_KEY"] = secret_key
            print("[demo-mode] Generated temporary FLASK_SECRET_KEY")
        else:
            raise RuntimeError("FLASK_SECRET_KEY not found in /run/secrets or environment")
    secret_key = secret_key or ""

    courses_dir = Path(os.environ.get("COURSES_DIR", ".runtime/courses"))

    # Password hashing is read by autograder.core.passwords at call time.
    password_hash_method = os.environ.get("PASSWORD_HASH_METHOD", "scrypt").strip() or "scrypt"
    os.environ["PASSWORD_HASH_METHOD"] = password_hash_method
    generated_password_length = _env_int("GENERATED_PASSWORD_LENGTH", 16)
    if generated_password_length < 8:
        raise RuntimeError("GENERATED_PASSWORD_LENGTH must be at least 8.")

    # SMTP
    smtp_host = os.environ.get("SMTP_HOST", "").strip()
    smtp_port = _env_int("SMTP_PORT", 587)
    smtp_user = os.environ.get("SMTP_USER", "").strip()
    smtp_password = _load_secret_from_file("smtp_password", "SMTP_PASSWORD") or ""
    smtp_from = os.environ.get("SMTP_FROM", smtp_user).strip()
    email_sleep_seconds = _env_float("EMAIL_SLEEP_SECONDS", 1.5)

    # Audit log signing key
    audit_log_signing_key = _load_secret_from_file("audit_log_signing_key", "AUDIT_LOG_SIGNING_KEY") or ""
    if audit_log_signing_key:
        os.environ["AUDIT_LOG_SIGNING_KEY"] = audit_log_signing_key
    elif demo_mode:
        from scripts.audit import DEMO_SIGNING_KEY
        audit_log_signing_key = DEMO_SIGNING_KEY
        print("[demo-mode] Using demo AUDIT_LOG_SIGNING_KEY")

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    print(f"[settings] Mode={mode_label}; courses_dir={courses_dir}; smtp={'on' if smtp_host and smtp_user else 'off'}")
    print(f"[settings] SMTP_PASSWORD={'***' if smtp_password else 'EMPTY'}")

    if demo_mode:
        print("[settings] WARNING: Demo mode active. Generated passwords are returned in API responses.")

    return AppConfig(
        demo_mode=demo_mode,
        secret_key=secret_key,
        courses_dir=courses_dir,
        password_hash_method=password_hash_method,
        generated_password_length=generated_password_length,
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_password=smtp_password,
        smtp_from=smtp_from,
        email_sleep_seconds=email_sleep_seconds,
        audit_log_signing_key=audit_log_signing_key,
    )
