"""Mixins giving application actor models the maker and checker verbs.

Usage::

    class User(Base, MakesRequests, ChecksRequests):
        ...

    request = alice.request_to_update(maker_checker, article, {"title": "B"}).save()
    bob.approve(maker_checker, request, remarks="ok")

The actor is always ``self``; everything else goes through the given
``MakerChecker``, so the mixins hold no state of their own.
"""

from typing import Any, Dict, List, Optional, Union

from makerchecker.db.models.request import MakerCheckerRequest

from .builder import RequestBuilder
from .facade import MakerChecker
from .states import RequestStatus


class MakesRequests:
    """Lets an actor model propose requests."""

    def request_to_create(
        self, maker_checker: MakerChecker, target_type: Union[str, type], payload: Optional[Dict[str, Any]] = None
    ) -> RequestBuilder:
        return maker_checker.request().made_by(self).to_create(target_type, payload)

    def request_to_update(
        self, maker_checker: MakerChecker, target: Any, changes: Dict[str, Any]
    ) -> RequestBuilder:
        return maker_checker.request().made_by(self).to_update(target, changes)

    def request_to_delete(self, maker_checker: MakerChecker, target: Any) -> RequestBuilder:
        return maker_checker.request().made_by(self).to_delete(target)

    def request_to_execute(
        self, maker_checker: MakerChecker, action_ref: str, payload: Optional[Dict[str, Any]] = None
    ) -> RequestBuilder:
        return maker_checker.request().made_by(self).to_execute(action_ref, payload)

    def requests_made(
        self, maker_checker: MakerChecker, status: Optional[Union[str, RequestStatus]] = None
    ) -> List[MakerCheckerRequest]:
        """Requests this actor proposed, newest first."""
        return maker_checker.requests(status, made_by=self)


class ChecksRequests:
    """Lets an actor model approve and reject requests."""

    def approve(
        self, maker_checker: MakerChecker, request: MakerCheckerRequest, remarks: Optional[str] = None
    ) -> MakerCheckerRequest:
        return maker_checker.approve(request, self, remarks)

    def reject(
        self, maker_checker: MakerChecker, request: MakerCheckerRequest, remarks: Optional[str] = None
    ) -> MakerCheckerRequest:
        return maker_checker.reject(request, self, remarks)

    def requests_checked(
        self, maker_checker: MakerChecker, status: Optional[Union[str, RequestStatus]] = None
    ) -> List[MakerCheckerRequest]:
        """Requests this actor approved or rejected, newest first."""
        return maker_checker.requests(status, checked_by=self)
