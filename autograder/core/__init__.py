"""Core Business Logic Module

Request authorization and roster management, independent of Flask.

Module Structure:
    - roles.py      : Ordered Role enumeration
    - users.py      : User record and field-level merge
    - passwords.py  : Hashing, constant-time verification, generation
    - courses.py    : Course/Assignment model and CourseRegistry
    - roster.py     : RosterStore interface (file and in-memory)
    - errors.py     : APIError taxonomy and roster errors
    - context.py    : Request types, registry, ContextResolver
    - sync.py       : UserSyncEngine (skip / add / merge)
    - notify.py     : Account notification dispatchers

Public APIs:
    Resolution (autograder.core.context):
        - request_type() / RequestRegistry
        - ContextResolver.resolve()

    Roster sync (autograder.core.sync):
        - UserSyncEngine.sync() / add_user()
        - SyncOptions, UserSyncResult
"""
