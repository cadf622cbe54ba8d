"""Gunicorn configuration.

Run with:
    gunicorn -c gunicorn.conf.py "autograder.flask_app:create_app()"

A single worker process is used: FileRosterStore serializes roster writes
with in-process locks, which only hold within one process. Concurrency
comes from threads instead.
"""
import os

bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:5000")
workers = 1
threads = int(os.environ.get("GUNICORN_THREADS", "4"))
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info")


def post_fork(server, worker):
    """Report which secrets are mounted (names only, never values)."""
    from pathlib import Path

    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"
    if demo_mode:
        worker.log.warning("DEMO_MODE=true: generated passwords are returned in API responses")

    secrets_dir = Path("/run/secrets")
    if secrets_dir.exists() and secrets_dir.is_dir():
        names = sorted(path.name for path in secrets_dir.glob("*") if path.is_file())
        if names:
            worker.log.info(f"Found {len(names)} secrets in /run/secrets: {', '.join(names)}")
            return

    worker.log.info("No /run/secrets mount; secrets come from environment variables")
