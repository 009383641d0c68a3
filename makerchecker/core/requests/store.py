"""Persistence for maker-checker requests.

All status writes go through ``transition`` (a single conditional UPDATE on
the expected current status) or ``expire_overdue`` (a bulk conditional
UPDATE). Two checkers racing for the same request therefore cannot both move
it out of ``pending``: the loser's UPDATE matches no row.
"""

from datetime import datetime
from typing import Any, Optional, Union

from sqlalchemy import and_
from sqlalchemy.orm import Query, Session

from makerchecker.common.logger import get_logger
from makerchecker.db.models.request import MakerCheckerRequest, utcnow

from .exceptions import InvalidTransition
from .states import RequestStatus, RequestTransition, get_transition_rule
from .variants import ActorRef, RequestVariant

logger = get_logger("request_store")


class RequestStore:
    """Thin repository over a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def add(self, request: MakerCheckerRequest) -> MakerCheckerRequest:
        """Insert a new request and commit it."""
        self.db.add(request)
        self.db.commit()
        return request

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def get(self, request_id: int) -> Optional[MakerCheckerRequest]:
        """Get a request by its internal id."""
        return self.db.get(MakerCheckerRequest, request_id)

    def get_by_code(self, code: str) -> Optional[MakerCheckerRequest]:
        """Get a request by its shareable code."""
        return self.db.query(MakerCheckerRequest).filter(
            MakerCheckerRequest.code == code
        ).first()

    def find(
        self,
        status: Optional[Union[str, RequestStatus]] = None,
        maker: Optional[ActorRef] = None,
        checker: Optional[ActorRef] = None,
    ) -> Query:
        """
        Query requests, newest first.

        Args:
            status: Only requests in this status
            maker: Only requests made by this actor
            checker: Only requests checked by this actor

        Raises:
            ValueError: If ``status`` is not a known status
        """
        query = self.db.query(MakerCheckerRequest)
        if status is not None:
            query = query.filter(MakerCheckerRequest.status == RequestStatus(status).value)
        if maker is not None:
            query = query.filter(and_(
                MakerCheckerRequest.maker_type == maker.type,
                MakerCheckerRequest.maker_id == maker.id,
            ))
        if checker is not None:
            query = query.filter(and_(
                MakerCheckerRequest.checker_type == checker.type,
                MakerCheckerRequest.checker_id == checker.id,
            ))
        return query.order_by(MakerCheckerRequest.made_at.desc(), MakerCheckerRequest.id.desc())

    def attach(self, request: MakerCheckerRequest) -> MakerCheckerRequest:
        """
        Get this session's copy of ``request``.

        Requests loaded through another session are looked up again by id,
        so status writes and refreshes happen on an instance this session
        owns.

        Raises:
            LookupError: If the request was never stored or has been deleted
        """
        if request in self.db:
            return request
        if request.id is None:
            raise LookupError(f"Request {request.code} has not been stored")
        local = self.db.get(MakerCheckerRequest, request.id)
        if local is None:
            raise LookupError(f"Request {request.code} does not exist")
        return local

    def transition(
        self,
        request: MakerCheckerRequest,
        transition: RequestTransition,
        **values: Any,
    ) -> bool:
        """
        Move ``request`` along ``transition`` if it is still in its current state.

        The current state is the one held by ``request``; the UPDATE only
        matches while the stored row agrees with it. Nothing is committed.

        Args:
            request: The request to update
            transition: Transition to perform
            **values: Extra columns to write together with the status

        Returns:
            True if the row was updated, False if another writer got there first

        Raises:
            InvalidTransition: If the transition is not allowed from the current state
        """
        from_state = RequestStatus(request.status)
        rule = get_transition_rule(from_state, transition)
        if rule is None:
            raise InvalidTransition(
                f"Cannot perform {transition.value} from state {from_state.value}",
                from_state.value,
                transition.value,
            )

        values["status"] = rule.to_state.value
        values["updated_at"] = utcnow()
        if from_state is RequestStatus.PENDING:
            # Leaving pending frees the fingerprint for new proposals
            values["fingerprint"] = None

        updated = self.db.query(MakerCheckerRequest).filter(
            and_(
                MakerCheckerRequest.id == request.id,
                MakerCheckerRequest.status == from_state.value,
            )
        ).update(values, synchronize_session=False)

        if not updated:
            logger.warning(
                f"Request {request.code} is no longer {from_state.value}; "
                f"{transition.value} not applied"
            )
            self.db.expire(request)
            return False

        try:
            self.db.refresh(request)
        except Exception:
            # Never leave a half-applied status write in the open transaction
            self.db.rollback()
            raise
        logger.debug(f"Request {request.code}: {from_state.value} -> {rule.to_state.value}")
        return True

    def pending_candidates(self, variant: RequestVariant) -> Query:
        """Pending requests proposing the same kind of change to the same target."""
        return self.db.query(MakerCheckerRequest).filter(
            and_(
                MakerCheckerRequest.status == RequestStatus.PENDING.value,
                MakerCheckerRequest.type == variant.request_type.value,
                MakerCheckerRequest.subject_type == variant.subject_type,
                MakerCheckerRequest.subject_id == variant.subject_id,
                MakerCheckerRequest.executable == variant.executable,
            )
        )

    def expire_overdue(self, cutoff: datetime) -> int:
        """
        Expire every pending request made before ``cutoff``.

        Returns:
            Number of requests expired
        """
        count = self.db.query(MakerCheckerRequest).filter(
            and_(
                MakerCheckerRequest.status == RequestStatus.PENDING.value,
                MakerCheckerRequest.made_at < cutoff,
            )
        ).update(
            {
                MakerCheckerRequest.status: RequestStatus.EXPIRED.value,
                MakerCheckerRequest.fingerprint: None,
                MakerCheckerRequest.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
        self.db.commit()
        return count
