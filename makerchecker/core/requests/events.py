"""Global lifecycle events.

Listeners registered here hear about every request, independently of the
hooks stored on individual requests. A misbehaving listener is logged and
skipped; it cannot undo or block a lifecycle transition.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from makerchecker.common.logger import get_logger
from makerchecker.db.models.request import utcnow

logger = get_logger("event_bus")


class EventKind(str, Enum):
    INITIATED = "initiated"
    APPROVED = "approved"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class RequestEvent:
    """A lifecycle event delivered to listeners."""

    kind: EventKind
    request: object
    error: Optional[BaseException] = None
    occurred_at: datetime = field(default_factory=utcnow)


Listener = Callable[[RequestEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._listeners: Dict[EventKind, List[Listener]] = {}

    def listen(self, kind: EventKind, callback: Listener) -> None:
        """Register a listener for one event kind."""
        self._listeners.setdefault(EventKind(kind), []).append(callback)

    def forget(self, kind: Optional[EventKind] = None) -> None:
        """Drop listeners for ``kind``, or all listeners."""
        if kind is None:
            self._listeners.clear()
        else:
            self._listeners.pop(EventKind(kind), None)

    def emit(
        self,
        kind: EventKind,
        request,
        error: Optional[BaseException] = None,
    ) -> RequestEvent:
        """Deliver an event to every listener registered for its kind."""
        event = RequestEvent(EventKind(kind), request, error)
        for callback in list(self._listeners.get(event.kind, [])):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    f"Listener {getattr(callback, '__qualname__', callback)!s} failed "
                    f"for {event.kind.value} event on request {getattr(request, 'code', '?')}"
                )
        return event
