"""Errors raised by the request lifecycle engine.

Admission errors (builder time) and check-gate errors (approve/reject time)
never change stored state. ``RequestProcessingFailed`` is raised only after
the request has been durably marked failed.
"""

from typing import Optional


class MakerCheckerError(Exception):
    """Base class for all maker-checker errors."""


# ---------------------------------------------------------------------------
# Admission
# ---------------------------------------------------------------------------


class RequestTypeAlreadySet(MakerCheckerError):
    """Raised when a builder is asked to propose a second mutation."""

    def __init__(self, current_type: str):
        super().__init__(
            f"Cannot modify request type, a request type ({current_type}) has already been provided."
        )
        self.current_type = current_type


class ActorNotPermitted(MakerCheckerError):
    """Raised when the maker's type is not on the maker allow-list."""

    def __init__(self, actor_type: str):
        super().__init__(f"Cannot initiate request: {actor_type} is not allowed to make requests.")
        self.actor_type = actor_type


class DuplicateRequest(MakerCheckerError):
    """Raised when an equivalent request is already pending."""

    def __init__(self, request_type: str):
        super().__init__(f"A pending request already exists to {request_type} the provided resource.")
        self.request_type = request_type


class RequestNotInitiated(MakerCheckerError):
    """Raised when a request cannot be built or persisted."""


class InvalidHook(MakerCheckerError):
    """Raised when a hook kind is not one of the recognized lifecycle hooks."""

    def __init__(self, hook_name: str):
        super().__init__(f"Invalid hook passed: {hook_name}")
        self.hook_name = hook_name


# ---------------------------------------------------------------------------
# Check gate
# ---------------------------------------------------------------------------


class CheckerNotPermitted(MakerCheckerError):
    """Raised when the checker's type is not on the checker allow-list."""

    def __init__(self, actor_type: str):
        super().__init__(
            f"Cannot approve/reject request: {actor_type} is not allowed to check requests."
        )
        self.actor_type = actor_type


class RequestNotCheckable(MakerCheckerError):
    """Raised when a request cannot be approved or rejected."""

    NOT_PENDING = "not_pending"
    EXPIRED = "expired"
    SELF_CHECK = "self_check"
    ALREADY_CLAIMED = "already_claimed"

    _MESSAGES = {
        NOT_PENDING: "the request is not pending",
        EXPIRED: "the request has expired",
        SELF_CHECK: "a request cannot be checked by its maker",
        ALREADY_CLAIMED: "the request was checked by someone else in the meantime",
    }

    def __init__(self, reason: str, request_code: Optional[str] = None):
        super().__init__(f"Request can not be checked: {self._MESSAGES.get(reason, reason)}")
        self.reason = reason
        self.request_code = request_code


class InvalidTransition(MakerCheckerError):
    """Raised when a status write does not follow the state machine."""

    def __init__(self, message: str, from_state: str, transition: str):
        super().__init__(message)
        self.from_state = from_state
        self.transition = transition


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------


class SubjectNotFound(MakerCheckerError):
    """Raised when the entity an update/delete request targets no longer exists."""

    def __init__(self, subject_type: str, subject_id: str):
        super().__init__(f"{subject_type} with id {subject_id} does not exist")
        self.subject_type = subject_type
        self.subject_id = subject_id


class RequestProcessingFailed(MakerCheckerError):
    """Raised after a request has been marked failed.

    ``request`` is the failed request (status ``failed``, ``failure_detail``
    populated); the original error is chained as ``__cause__``.
    """

    def __init__(self, request, cause: BaseException):
        super().__init__(f"Failed to process request {request.code}: {cause}")
        self.request = request
        self.cause = cause


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class InvalidRequestModel(MakerCheckerError):
    """Raised when a class that is not a mapped model is registered as a subject."""


class UnresolvableAction(MakerCheckerError):
    """Raised when a model name, executable or hook identifier cannot be resolved."""
