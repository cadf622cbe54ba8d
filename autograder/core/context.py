"""Request context resolution and authorization.

A request type is a dataclass registered with `@request_type`, which
declares statically which context layer it needs and the minimum role
allowed to call it:

    @request_type(min_role=Role.ADMIN, layer=Layer.COURSE_USER)
    @dataclass
    class CourseReloadRequest(CourseUserFields):
        pass

ContextResolver.resolve() turns a request value into a context, building
the layers outside-in and stopping at the first failure:

    BaseContext -> CourseUserContext -> AssignmentContext

Each layer holds the one it extends, so a layer can only exist once every
enclosing layer has resolved. Failures are raised as APIError subclasses;
a context is returned only on success.
"""
from __future__ import annotations
import datetime
import logging
import uuid
from dataclasses import dataclass, fields
from enum import IntEnum
from typing import Any, Callable, Optional, Union

from autograder.core.courses import Assignment, Course, CourseRegistry
from autograder.core.errors import (
    APIError,
    BadRequestError,
    InternalError,
    PermissionDeniedError,
    RosterStoreError,
    UnauthenticatedError,
)
from autograder.core.passwords import verify_password
from autograder.core.roles import Role
from autograder.core.roster import RosterStore
from autograder.core.users import User

logger = logging.getLogger(__name__)

AUTH_FAILURE_MESSAGE = "Authentication failed. Check your email and password."


# ─────────────────────────────────────────────────────────────────────────────
# Request types
# ─────────────────────────────────────────────────────────────────────────────

class Layer(IntEnum):
    """Context layers, outermost first."""

    BASE = 0
    COURSE_USER = 1
    ASSIGNMENT = 2


@dataclass
class CourseUserFields:
    """Caller-supplied fields for the course/user layer."""

    course_id: str = ""
    user_email: str = ""
    user_pass: str = ""


@dataclass
class AssignmentFields(CourseUserFields):
    """Caller-supplied fields for the assignment layer."""

    assignment_id: str = ""


@dataclass(frozen=True)
class RequestSpec:
    layer: Layer
    min_role: Optional[Role]


class RequestRegistry:
    """Maps request types to their declared layer and minimum role."""

    def __init__(self):
        self._specs: dict[type, RequestSpec] = {}

    def register(self, cls: type, *, layer: Layer, min_role: Optional[Role]) -> None:
        """Declare a request type.

        Raises:
            TypeError: If the class does not carry the fields its layer needs
        """
        if layer >= Layer.ASSIGNMENT and not issubclass(cls, AssignmentFields):
            raise TypeError(f"{cls.__name__} needs AssignmentFields for layer {layer.name}")
        if layer >= Layer.COURSE_USER and not issubclass(cls, CourseUserFields):
            raise TypeError(f"{cls.__name__} needs CourseUserFields for layer {layer.name}")
        self._specs[cls] = RequestSpec(layer=layer, min_role=min_role)

    def lookup(self, cls: type) -> Optional[RequestSpec]:
        return self._specs.get(cls)

    def __contains__(self, cls: type) -> bool:
        return cls in self._specs


REGISTRY = RequestRegistry()


def request_type(
    *,
    layer: Layer = Layer.COURSE_USER,
    min_role: Optional[Role] = None,
    registry: Optional[RequestRegistry] = None,
) -> Callable[[type], type]:
    """Class decorator registering a request type."""
    target = registry if registry is not None else REGISTRY

    def decorator(cls: type) -> type:
        target.register(cls, layer=layer, min_role=min_role)
        return cls

    return decorator


_STRING_FIELDS = {"course_id", "user_email", "user_pass", "assignment_id"}


def request_from_payload(cls: type, payload: dict[str, Any]):
    """Build a request value from a decoded JSON payload.

    JSON keys use dashes (course-id); unknown keys are ignored.

    Raises:
        BadRequestError: If the payload is not an object or a field has the wrong type
    """
    if not isinstance(payload, dict):
        raise BadRequestError("Request content must be a JSON object.")

    kwargs: dict[str, Any] = {}
    for dc_field in fields(cls):
        key = dc_field.name.replace("_", "-")
        if key not in payload:
            continue
        value = payload[key]
        if dc_field.name in _STRING_FIELDS and value is not None and not isinstance(value, str):
            raise BadRequestError(f"Field '{key}' must be a string.")
        kwargs[dc_field.name] = value if value is not None else ""

    try:
        return cls(**kwargs)
    except TypeError as exc:
        raise BadRequestError("Request content does not match the endpoint.").add("error", str(exc))


# ─────────────────────────────────────────────────────────────────────────────
# Context layers
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BaseContext:
    request_id: str
    endpoint: str
    timestamp: str

    @property
    def base(self) -> "BaseContext":
        return self


@dataclass(frozen=True)
class CourseUserContext:
    base: BaseContext
    course: Course
    user: User

    @property
    def request_id(self) -> str:
        return self.base.request_id

    @property
    def endpoint(self) -> str:
        return self.base.endpoint

    @property
    def course_id(self) -> str:
        return self.course.id

    @property
    def user_email(self) -> str:
        return self.user.email


@dataclass(frozen=True)
class AssignmentContext:
    course_user: CourseUserContext
    assignment: Assignment

    @property
    def base(self) -> BaseContext:
        return self.course_user.base

    @property
    def request_id(self) -> str:
        return self.course_user.request_id

    @property
    def endpoint(self) -> str:
        return self.course_user.endpoint

    @property
    def course(self) -> Course:
        return self.course_user.course

    @property
    def user(self) -> User:
        return self.course_user.user

    @property
    def assignment_id(self) -> str:
        return self.assignment.id


Context = Union[BaseContext, CourseUserContext, AssignmentContext]


# ─────────────────────────────────────────────────────────────────────────────
# Resolver
# ─────────────────────────────────────────────────────────────────────────────

def _new_request_id() -> str:
    return str(uuid.uuid4())


def _now_timestamp() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class ContextResolver:
    """Validates, authenticates, and authorizes API requests.

    Resolution only reads from the course registry and roster store, so
    concurrent resolves are independent.
    """

    def __init__(
        self,
        courses: CourseRegistry,
        roster_store: RosterStore,
        *,
        registry: Optional[RequestRegistry] = None,
        verify: Callable[[str, str], bool] = verify_password,
        id_factory: Callable[[], str] = _new_request_id,
        clock: Callable[[], str] = _now_timestamp,
    ):
        self.courses = courses
        self.roster_store = roster_store
        self.registry = registry if registry is not None else REGISTRY
        self.verify = verify
        self.id_factory = id_factory
        self.clock = clock

    def resolve(self, request, endpoint: str) -> Context:
        """Resolve a request into its fully populated context.

        Args:
            request: Instance of a registered request type
            endpoint: Endpoint name, for diagnostics

        Returns:
            BaseContext, CourseUserContext, or AssignmentContext, matching
            the request type's declared layer

        Raises:
            BadRequestError: Missing fields, unknown course or assignment
            UnauthenticatedError: Unknown user or wrong password
            PermissionDeniedError: Role below the declared minimum
            InternalError: Unregistered request type or no declared role
        """
        spec = self.registry.lookup(type(request))
        base = BaseContext(request_id=self.id_factory(), endpoint=endpoint, timestamp=self.clock())

        try:
            if spec is None:
                raise InternalError("Request is not any kind of known API request.").add(
                    "request-type", type(request).__name__
                )

            if spec.layer == Layer.BASE:
                return base

            course_user = self._resolve_course_user(base, request, spec)
            if spec.layer == Layer.COURSE_USER:
                return course_user

            return self._resolve_assignment(course_user, request)
        except APIError as exc:
            exc.request_id = exc.request_id or base.request_id
            exc.endpoint = exc.endpoint or base.endpoint
            self._log_failure(exc)
            raise

    def _resolve_course_user(
        self, base: BaseContext, request: CourseUserFields, spec: RequestSpec
    ) -> CourseUserContext:
        if not request.course_id:
            raise BadRequestError("No course ID specified.")
        if not request.user_email:
            raise BadRequestError("No user email specified.")
        if not request.user_pass:
            raise BadRequestError("No user password specified.")

        course = self.courses.get_course(request.course_id)
        if course is None:
            raise BadRequestError("Could not find course.").add("course-id", request.course_id)

        user = self._authenticate(course, request.user_email, request.user_pass)

        if spec.min_role is None:
            raise InternalError("No role declared for request.").add(
                "request-type", type(request).__name__
            )

        if not user.role.satisfies(spec.min_role):
            raise PermissionDeniedError(
                "You do not have permission to perform this action.",
                required_role=spec.min_role,
            ).add("user-email", user.email).add("user-role", user.role.label())

        return CourseUserContext(base=base, course=course, user=user)

    def _authenticate(self, course: Course, email: str, credential: str) -> User:
        try:
            user = self.roster_store.get_user(course.id, email)
        except RosterStoreError as exc:
            raise InternalError("Failed to load course users.").add("course-id", course.id).add(
                "error", str(exc)
            ) from exc

        if user is None:
            raise UnauthenticatedError(AUTH_FAILURE_MESSAGE).add("course-id", course.id).add(
                "user-email", email
            ).add("reason", "unknown user")

        if not self.verify(user.password_hash, credential):
            raise UnauthenticatedError(AUTH_FAILURE_MESSAGE).add("course-id", course.id).add(
                "user-email", email
            ).add("reason", "bad password")

        return user

    def _resolve_assignment(
        self, course_user: CourseUserContext, request: AssignmentFields
    ) -> AssignmentContext:
        if not request.assignment_id:
            raise BadRequestError("No assignment ID specified.")

        assignment = course_user.course.get_assignment(request.assignment_id)
        if assignment is None:
            raise BadRequestError("Could not find assignment.").add(
                "course-id", course_user.course_id
            ).add("assignment-id", request.assignment_id)

        return AssignmentContext(course_user=course_user, assignment=assignment)

    @staticmethod
    def _log_failure(exc: APIError) -> None:
        if isinstance(exc, InternalError):
            logger.error("Request resolution failed: %s", exc.log_line())
        else:
            logger.info("Request rejected: %s", exc.log_line())
