"""Lifecycle manager for maker-checker requests.

Approving or rejecting a request goes through one gate (``assert_checkable``)
and then claims the request with a compare-and-swap from ``pending`` to
``processing``. Only the caller whose claim succeeds goes on to run hooks
and, for approvals, the mutation itself.
"""

import traceback
from dataclasses import dataclass
from typing import Any, Optional

from makerchecker.common.config import MakerCheckerConfig
from makerchecker.common.logger import get_logger
from makerchecker.db.models.request import MakerCheckerRequest, utcnow

from .actions import ActionRegistry
from .events import EventBus, EventKind
from .exceptions import (
    CheckerNotPermitted,
    RequestNotCheckable,
    RequestProcessingFailed,
)
from .hooks import HookKind, HookStore
from .states import CHECKABLE_STATES, RequestTransition
from .store import RequestStore
from .variants import ActorRef, as_actor_ref

logger = get_logger("request_manager")


@dataclass
class SweepResult:
    """Outcome of an expiry sweep."""

    expired: int = 0
    misconfigured: bool = False


def format_failure(error: BaseException) -> str:
    """Render an error and its traceback for ``failure_detail``."""
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


class RequestManager:
    """
    Approves, rejects and expires requests.

    Handles:
    - The precondition gate shared by approve and reject
    - Claiming a request atomically before acting on it
    - Running the approved mutation and the request's hooks
    - Recording failures durably before re-raising them
    - Bulk expiry of overdue requests
    """

    def __init__(
        self,
        store: RequestStore,
        config: MakerCheckerConfig,
        registry: ActionRegistry,
        hook_store: HookStore,
        events: EventBus,
    ):
        self.store = store
        self.config = config
        self.registry = registry
        self.hook_store = hook_store
        self.events = events

    def assert_checkable(self, request: MakerCheckerRequest, checker: Any) -> ActorRef:
        """
        Verify ``checker`` may approve or reject ``request`` right now.

        Nothing is written, even when the request is found to be expired.

        Args:
            request: Request about to be checked
            checker: Actor (mapped instance, ActorRef or ``(type, id)`` pair)

        Returns:
            The checker's ActorRef

        Raises:
            CheckerNotPermitted: If a checker allow-list excludes the actor's type
            RequestNotCheckable: If the request is not pending, has expired,
                or was made by the checker
        """
        ref = as_actor_ref(checker)

        if not self.config.can_check(ref.type):
            logger.warning(f"{ref.type} is not allowed to check request {request.code}")
            raise CheckerNotPermitted(ref.type)

        if request.request_status not in CHECKABLE_STATES:
            logger.warning(f"Request {request.code} is {request.status}, not pending")
            raise RequestNotCheckable(RequestNotCheckable.NOT_PENDING, request.code)

        window = self.config.expiration_window
        if window is not None and utcnow() - request.made_at > window:
            logger.warning(f"Request {request.code} expired before it was checked")
            raise RequestNotCheckable(RequestNotCheckable.EXPIRED, request.code)

        if request.maker == ref:
            logger.warning(f"{ref} attempted to check their own request {request.code}")
            raise RequestNotCheckable(RequestNotCheckable.SELF_CHECK, request.code)

        return ref

    def _claim(
        self, request: MakerCheckerRequest, checker: ActorRef, remarks: Optional[str]
    ) -> None:
        claimed = self.store.transition(
            request,
            RequestTransition.CLAIM,
            checker_type=checker.type,
            checker_id=checker.id,
            checked_at=utcnow(),
            remarks=remarks,
        )
        if not claimed:
            self.store.rollback()
            raise RequestNotCheckable(RequestNotCheckable.ALREADY_CLAIMED, request.code)
        self.store.commit()

    def approve(
        self, request: MakerCheckerRequest, checker: Any, remarks: Optional[str] = None
    ) -> MakerCheckerRequest:
        """
        Approve ``request`` and apply the change it proposes.

        The status is written as ``approved`` before the mutation runs. If the
        ``before_approval`` hook or the mutation fails, the mutation is rolled
        back and the request is marked ``failed`` instead.

        Args:
            request: Pending request
            checker: Approving actor
            remarks: Optional checker remarks

        Returns:
            The approved request, as loaded in this manager's session

        Raises:
            CheckerNotPermitted: If the checker's type may not check requests
            RequestNotCheckable: If the gate refuses the request or another
                checker claimed it first
            RequestProcessingFailed: If the request was marked failed
        """
        request = self.store.attach(request)
        ref = self.assert_checkable(request, checker)
        self._claim(request, ref, remarks)

        if not self.store.transition(request, RequestTransition.APPROVE):
            raise RequestNotCheckable(RequestNotCheckable.ALREADY_CLAIMED, request.code)
        self.store.commit()

        try:
            self.hook_store.run(request, HookKind.BEFORE_APPROVAL, registry=self.registry)
            action = self.registry.resolve(request, self.store.db)
            action.execute(request)
            self.store.commit()
        except Exception as e:
            raise self._fail(request, e) from e

        self.hook_store.run(request, HookKind.AFTER_APPROVAL, registry=self.registry)

        logger.info(f"Request {request.code} approved by {ref}")
        self.events.emit(EventKind.APPROVED, request)
        return request

    def reject(
        self, request: MakerCheckerRequest, checker: Any, remarks: Optional[str] = None
    ) -> MakerCheckerRequest:
        """
        Reject ``request``. The proposed change is never applied.

        Raises:
            CheckerNotPermitted: If the checker's type may not check requests
            RequestNotCheckable: If the gate refuses the request or another
                checker claimed it first
            RequestProcessingFailed: If the ``before_rejection`` hook failed
        """
        request = self.store.attach(request)
        ref = self.assert_checkable(request, checker)
        self._claim(request, ref, remarks)

        try:
            self.hook_store.run(request, HookKind.BEFORE_REJECTION, registry=self.registry)
        except Exception as e:
            raise self._fail(request, e) from e

        if not self.store.transition(request, RequestTransition.REJECT):
            raise RequestNotCheckable(RequestNotCheckable.ALREADY_CLAIMED, request.code)
        self.store.commit()

        self.hook_store.run(request, HookKind.AFTER_REJECTION, registry=self.registry)

        logger.info(f"Request {request.code} rejected by {ref}")
        self.events.emit(EventKind.REJECTED, request)
        return request

    def _fail(self, request: MakerCheckerRequest, error: Exception) -> RequestProcessingFailed:
        """Record ``error`` on the request and build the exception to raise."""
        logger.exception(f"Processing request {request.code} failed")
        self.store.rollback()

        # The rollback expired the request; its status reloads from the row
        if not self.store.transition(
            request, RequestTransition.FAIL, failure_detail=format_failure(error)
        ):
            logger.error(f"Request {request.code} changed state while failing")
        self.store.commit()

        try:
            self.hook_store.run(request, HookKind.ON_FAILURE, error, registry=self.registry)
        except Exception:
            logger.exception(f"on_failure hook raised for request {request.code}")

        self.events.emit(EventKind.FAILED, request, error)
        return RequestProcessingFailed(request, error)

    def expire_overdue_requests(self) -> SweepResult:
        """
        Expire every pending request older than the expiration window.

        No hooks run and no events are emitted.

        Returns:
            SweepResult; ``misconfigured`` is set when no window is configured
        """
        window = self.config.expiration_window
        if window is None:
            logger.warning("No request expiration window configured; nothing to expire")
            return SweepResult(misconfigured=True)

        count = self.store.expire_overdue(utcnow() - window)
        logger.info(f"Expired {count} overdue requests")
        return SweepResult(expired=count)
