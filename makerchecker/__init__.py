"""Dual-control (maker-checker) authorization for SQLAlchemy applications."""

from .core.requests import (
    ActionRegistry,
    ActorRef,
    ChecksRequests,
    EventBus,
    EventKind,
    ExecutableRequest,
    HookKind,
    HookStore,
    MakerChecker,
    MakesRequests,
    RequestBuilder,
    RequestManager,
    RequestStatus,
    RequestType,
)
from .db.models import MakerCheckerRequest

__version__ = "1.0.0"

__all__ = [
    "ActionRegistry",
    "ActorRef",
    "ChecksRequests",
    "EventBus",
    "EventKind",
    "ExecutableRequest",
    "HookKind",
    "HookStore",
    "MakerChecker",
    "MakerCheckerRequest",
    "MakesRequests",
    "RequestBuilder",
    "RequestManager",
    "RequestStatus",
    "RequestType",
]
