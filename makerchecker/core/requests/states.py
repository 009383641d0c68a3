"""Request lifecycle states and transitions.

State Machine Diagram:

    ┌──────────┐   expiry sweep   ┌──────────┐
    │ PENDING  │─────────────────►│ EXPIRED  │
    └────┬─────┘                  └──────────┘
         │ claim (compare-and-swap on PENDING)
    ┌────▼───────┐
    │ PROCESSING │──────────────────────┐
    └────┬───────┘                      │
         │                              │
         ├──────────────┐               │
         │              │               │
    ┌────▼─────┐  ┌─────▼────┐     ┌────▼─────┐
    │ APPROVED │  │ REJECTED │     │  FAILED  │
    └────┬─────┘  └──────────┘     └────▲─────┘
         │                              │
         └──────────────────────────────┘
           mutation failed after the optimistic approval write
"""

from enum import Enum
from typing import Dict, NamedTuple, Optional, Set


class RequestStatus(str, Enum):
    """States of a maker-checker request."""

    PENDING = "pending"          # Awaiting a checker
    PROCESSING = "processing"    # Claimed by a checker, decision in flight

    # Terminal states
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    FAILED = "failed"


class RequestType(str, Enum):
    """Kinds of mutation a request can propose."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    EXECUTE = "execute"


class RequestTransition(str, Enum):
    """Actions that move a request between states."""

    CLAIM = "claim"          # PENDING → PROCESSING
    APPROVE = "approve"      # PROCESSING → APPROVED
    REJECT = "reject"        # PROCESSING → REJECTED
    FAIL = "fail"            # PROCESSING/APPROVED → FAILED
    EXPIRE = "expire"        # PENDING → EXPIRED


class TransitionRule(NamedTuple):
    """Defines a valid state transition."""
    from_state: RequestStatus
    to_state: RequestStatus
    transition: RequestTransition


TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(RequestStatus.PENDING, RequestStatus.PROCESSING, RequestTransition.CLAIM),
    TransitionRule(RequestStatus.PROCESSING, RequestStatus.APPROVED, RequestTransition.APPROVE),
    TransitionRule(RequestStatus.PROCESSING, RequestStatus.REJECTED, RequestTransition.REJECT),
    TransitionRule(RequestStatus.PROCESSING, RequestStatus.FAILED, RequestTransition.FAIL),
    # Approval is written before the mutation runs; a failed mutation downgrades it
    TransitionRule(RequestStatus.APPROVED, RequestStatus.FAILED, RequestTransition.FAIL),
    TransitionRule(RequestStatus.PENDING, RequestStatus.EXPIRED, RequestTransition.EXPIRE),
]

VALID_TRANSITIONS: Dict[RequestStatus, Set[RequestTransition]] = {}
TRANSITION_TARGETS: Dict[tuple[RequestStatus, RequestTransition], TransitionRule] = {}

for rule in TRANSITION_RULES:
    VALID_TRANSITIONS.setdefault(rule.from_state, set()).add(rule.transition)
    TRANSITION_TARGETS[(rule.from_state, rule.transition)] = rule


TERMINAL_STATES: Set[RequestStatus] = {
    RequestStatus.APPROVED,
    RequestStatus.REJECTED,
    RequestStatus.EXPIRED,
    RequestStatus.FAILED,
}

# Only these states may be approved or rejected
CHECKABLE_STATES: Set[RequestStatus] = {
    RequestStatus.PENDING,
}


def can_transition(from_state: RequestStatus, transition: RequestTransition) -> bool:
    """Check if a transition is valid from the given state."""
    return transition in VALID_TRANSITIONS.get(RequestStatus(from_state), set())


def get_transition_rule(
    from_state: RequestStatus, transition: RequestTransition
) -> Optional[TransitionRule]:
    """Get the transition rule for a state/action combination."""
    return TRANSITION_TARGETS.get((RequestStatus(from_state), transition))


def get_target_state(
    from_state: RequestStatus, transition: RequestTransition
) -> Optional[RequestStatus]:
    """Get the target state for a transition."""
    rule = get_transition_rule(from_state, transition)
    return rule.to_state if rule else None
