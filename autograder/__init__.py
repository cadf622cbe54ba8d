"""Autograder course backend.

To use the Flask app:
    from autograder.flask_app import create_app

To resolve requests or sync rosters without Flask:
    from autograder.core.context import ContextResolver
    from autograder.core.sync import UserSyncEngine, SyncOptions
"""
# flask_app is not imported here so the core and CLI scripts stay usable
# without building an application.
