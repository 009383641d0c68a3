"""Actor references and the tagged request variants.

A request proposes exactly one of ``Create``, ``Update``, ``Delete`` or
``Execute``. Each variant carries only the fields that make sense for it, so
there is no way to build an update without a subject or an execute request
with a subject.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, NamedTuple, Optional, Union

from sqlalchemy import inspect
from sqlalchemy.exc import NoInspectionAvailable

from .states import RequestType


class ActorRef(NamedTuple):
    """Reference to the actor that made or checked a request."""
    type: str
    id: str

    def __str__(self) -> str:
        return f"{self.type}:{self.id}"


def as_actor_ref(actor: Any) -> ActorRef:
    """Normalize an actor into an ``ActorRef``.

    Accepts an ``ActorRef``, a ``(type, id)`` pair, or any SQLAlchemy-mapped
    instance with a primary key (the type is the class name).

    Raises:
        TypeError: If the actor cannot be referenced
    """
    if isinstance(actor, ActorRef):
        return actor
    if isinstance(actor, tuple) and len(actor) == 2:
        return ActorRef(str(actor[0]), str(actor[1]))

    try:
        state = inspect(actor)
    except NoInspectionAvailable:
        raise TypeError(f"Cannot reference {actor!r} as an actor") from None

    identity = state.identity
    if not identity:
        raise TypeError(f"Actor {actor!r} has no primary key; flush it first")
    key = identity[0] if len(identity) == 1 else ":".join(str(part) for part in identity)
    return ActorRef(type(actor).__name__, str(key))


@dataclass(frozen=True)
class Create:
    subject_type: str
    payload: Dict[str, Any] = field(default_factory=dict)

    request_type = RequestType.CREATE
    subject_id = None
    executable = None


@dataclass(frozen=True)
class Update:
    subject_type: str
    subject_id: str
    payload: Dict[str, Any] = field(default_factory=dict)

    request_type = RequestType.UPDATE
    executable = None


@dataclass(frozen=True)
class Delete:
    subject_type: str
    subject_id: str

    request_type = RequestType.DELETE
    executable = None

    @property
    def payload(self) -> Dict[str, Any]:
        return {}


@dataclass(frozen=True)
class Execute:
    executable: str
    payload: Dict[str, Any] = field(default_factory=dict)

    request_type = RequestType.EXECUTE
    subject_type = None
    subject_id = None


RequestVariant = Union[Create, Update, Delete, Execute]


def describe(variant: RequestVariant) -> str:
    """Default description for a request, e.g. ``New update request for Article#3``."""
    target: Optional[str]
    if isinstance(variant, Execute):
        target = variant.executable
    elif variant.subject_id is not None:
        target = f"{variant.subject_type}#{variant.subject_id}"
    else:
        target = variant.subject_type
    return f"New {variant.request_type.value} request for {target}"
