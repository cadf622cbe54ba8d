"""Account notifications (new account / password reset emails).

The sync engine only decides whom to notify and with which password; the
notifier owns delivery and honors the `sleep` spacing hint between sends.
"""
from __future__ import annotations
import logging
import smtplib
import time
from email.message import EmailMessage
from typing import Callable, Optional

from autograder.core.errors import NotificationError
from autograder.core.users import User

logger = logging.getLogger(__name__)

ACCOUNT_CREATED_SUBJECT = "Autograder: Account Created"
PASSWORD_RESET_SUBJECT = "Autograder: Password Reset"


class Notifier:
    """Interface for account notifications."""

    def notify_account_created(
        self, user: User, password: Optional[str], dry_run: bool = False, sleep: bool = False
    ) -> None:
        raise NotImplementedError

    def notify_password_reset(
        self, user: User, password: Optional[str], dry_run: bool = False, sleep: bool = False
    ) -> None:
        raise NotImplementedError


def compose_message(user: User, password: Optional[str], new_account: bool) -> tuple[str, str]:
    """Build (subject, body) for an account email."""
    greeting = f"Hello {user.name}," if user.name else "Hello,"

    if new_account:
        subject = ACCOUNT_CREATED_SUBJECT
        lines = [greeting, "", "An autograder account has been created for you."]
    else:
        subject = PASSWORD_RESET_SUBJECT
        lines = [greeting, "", "Your autograder password has been reset."]

    lines.append(f"Username: {user.email}")
    if password:
        lines.append(f"Password: {password}")
        lines.append("")
        lines.append("Please change this password after you log in.")

    return subject, "\n".join(lines) + "\n"


class LogNotifier(Notifier):
    """Logs notifications instead of sending them (SMTP not configured)."""

    def notify_account_created(self, user, password, dry_run=False, sleep=False):
        logger.info(
            "Account created notification for %s (password=%s, dry_run=%s)",
            user.email, "***" if password else "none", dry_run,
        )

    def notify_password_reset(self, user, password, dry_run=False, sleep=False):
        logger.info(
            "Password reset notification for %s (password=%s, dry_run=%s)",
            user.email, "***" if password else "none", dry_run,
        )


class SmtpNotifier(Notifier):
    """Sends account emails over SMTP with STARTTLS."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        sender: str = "",
        *,
        sleep_seconds: float = 1.5,
        timeout: float = 10.0,
        smtp_factory: Optional[Callable[..., smtplib.SMTP]] = None,
        sleeper: Callable[[float], None] = time.sleep,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.sleep_seconds = sleep_seconds
        self.timeout = timeout
        self._smtp_factory = smtp_factory
        self._sleeper = sleeper

    def notify_account_created(self, user, password, dry_run=False, sleep=False):
        subject, body = compose_message(user, password, new_account=True)
        self._send(user.email, subject, body, dry_run, sleep)

    def notify_password_reset(self, user, password, dry_run=False, sleep=False):
        subject, body = compose_message(user, password, new_account=False)
        self._send(user.email, subject, body, dry_run, sleep)

    def _send(self, recipient: str, subject: str, body: str, dry_run: bool, sleep: bool) -> None:
        if dry_run:
            logger.info("Dry run: would send '%s' to %s", subject, recipient)
            return

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body)

        try:
            factory = self._smtp_factory or smtplib.SMTP
            server = factory(self.host, self.port, timeout=self.timeout)
            try:
                server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(message)
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"Failed to send '{subject}' to {recipient}: {exc}") from exc

        logger.info("Sent '%s' to %s", subject, recipient)

        if sleep and self.sleep_seconds > 0:
            self._sleeper(self.sleep_seconds)


def build_notifier(cfg) -> Notifier:
    """SmtpNotifier when the config enables SMTP, LogNotifier otherwise."""
    if cfg.smtp_enabled:
        return SmtpNotifier(
            cfg.smtp_host,
            cfg.smtp_port,
            cfg.smtp_user,
            cfg.smtp_password,
            cfg.smtp_from,
            sleep_seconds=cfg.email_sleep_seconds,
        )
    logger.warning("SMTP not configured; account emails will only be logged")
    return LogNotifier()
