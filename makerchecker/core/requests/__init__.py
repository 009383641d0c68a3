"""Request lifecycle engine: builder, uniqueness, actions, hooks and manager."""

# Leaf modules first; the request model imports them.
from .states import (
    RequestStatus,
    RequestTransition,
    RequestType,
    TERMINAL_STATES,
    can_transition,
    get_target_state,
)
from .variants import ActorRef, Create, Delete, Execute, Update, as_actor_ref
from .exceptions import (
    ActorNotPermitted,
    CheckerNotPermitted,
    DuplicateRequest,
    InvalidHook,
    InvalidRequestModel,
    InvalidTransition,
    MakerCheckerError,
    RequestNotCheckable,
    RequestNotInitiated,
    RequestProcessingFailed,
    RequestTypeAlreadySet,
    SubjectNotFound,
    UnresolvableAction,
)
from .store import RequestStore
from .actions import (
    ActionRegistry,
    ExecutableRequest,
    get_registry,
    register_executable,
    register_model,
)
from .hooks import HookKind, HookStore, get_hook_store
from .events import EventBus, EventKind, RequestEvent
from .uniqueness import UniquenessChecker
from .builder import RequestBuilder
from .manager import RequestManager, SweepResult
from .facade import MakerChecker
from .actors import ChecksRequests, MakesRequests

__all__ = [
    # States
    "RequestStatus",
    "RequestTransition",
    "RequestType",
    "TERMINAL_STATES",
    "can_transition",
    "get_target_state",
    # Variants
    "ActorRef",
    "Create",
    "Delete",
    "Execute",
    "Update",
    "as_actor_ref",
    # Errors
    "ActorNotPermitted",
    "CheckerNotPermitted",
    "DuplicateRequest",
    "InvalidHook",
    "InvalidRequestModel",
    "InvalidTransition",
    "MakerCheckerError",
    "RequestNotCheckable",
    "RequestNotInitiated",
    "RequestProcessingFailed",
    "RequestTypeAlreadySet",
    "SubjectNotFound",
    "UnresolvableAction",
    # Components
    "ActionRegistry",
    "ChecksRequests",
    "EventBus",
    "EventKind",
    "ExecutableRequest",
    "HookKind",
    "HookStore",
    "MakesRequests",
    "MakerChecker",
    "RequestBuilder",
    "RequestEvent",
    "RequestManager",
    "RequestStore",
    "SweepResult",
    "UniquenessChecker",
    "get_hook_store",
    "get_registry",
    "register_executable",
    "register_model",
]
