"""Maker-checker request model.

Stores proposed mutations together with their lifecycle state.
"""

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, JSON, String, Text

from makerchecker.db.base import Base
from makerchecker.core.requests.states import RequestStatus, RequestType
from makerchecker.core.requests.variants import ActorRef, Create, Delete, Execute, Update


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MakerCheckerRequest(Base):
    """
    A proposed mutation awaiting (or having received) a second actor's decision.

    ``status`` is written only through ``RequestStore.transition`` and
    ``RequestStore.expire_overdue``; everything else reads it.
    """
    __tablename__ = "maker_checker_requests"
    __table_args__ = (
        CheckConstraint(
            "subject_id IS NULL OR subject_type IS NOT NULL",
            name="ck_maker_checker_requests_subject",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(36), nullable=False, unique=True)

    type = Column(String(20), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=RequestStatus.PENDING.value, index=True)

    # Target entity (create/update/delete) or named executable (execute)
    subject_type = Column(String(255), nullable=True, index=True)
    subject_id = Column(String(255), nullable=True)
    executable = Column(String(255), nullable=True)

    payload = Column(JSON, nullable=False, default=dict)

    maker_type = Column(String(255), nullable=False)
    maker_id = Column(String(255), nullable=False)
    checker_type = Column(String(255), nullable=True)
    checker_id = Column(String(255), nullable=True)

    made_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    checked_at = Column(DateTime, nullable=True)

    description = Column(Text, nullable=True)
    remarks = Column(Text, nullable=True)
    failure_detail = Column(Text, nullable=True)

    # Hook identifiers live under extra_data["hooks"]
    extra_data = Column("metadata", JSON, nullable=False, default=dict)

    # Set only while pending and only when uniqueness is enforced
    fingerprint = Column(String(64), nullable=True, unique=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def request_type(self) -> RequestType:
        return RequestType(self.type)

    @property
    def request_status(self) -> RequestStatus:
        return RequestStatus(self.status)

    @property
    def maker(self) -> ActorRef:
        return ActorRef(self.maker_type, self.maker_id)

    @property
    def checker(self):
        if self.checker_type is None:
            return None
        return ActorRef(self.checker_type, self.checker_id)

    @property
    def hooks(self) -> dict:
        return dict((self.extra_data or {}).get("hooks", {}))

    @property
    def variant(self):
        """Rebuild the tagged request variant from the stored columns."""
        request_type = self.request_type
        payload = dict(self.payload or {})
        if request_type is RequestType.CREATE:
            return Create(self.subject_type, payload)
        if request_type is RequestType.UPDATE:
            return Update(self.subject_type, self.subject_id, payload)
        if request_type is RequestType.DELETE:
            return Delete(self.subject_type, self.subject_id)
        return Execute(self.executable, payload)

    def is_of_status(self, status) -> bool:
        return self.status == RequestStatus(status).value

    def is_of_type(self, request_type) -> bool:
        return self.type == RequestType(request_type).value

    def is_pending(self) -> bool:
        return self.is_of_status(RequestStatus.PENDING)

    def is_processing(self) -> bool:
        return self.is_of_status(RequestStatus.PROCESSING)

    def is_approved(self) -> bool:
        return self.is_of_status(RequestStatus.APPROVED)

    def is_rejected(self) -> bool:
        return self.is_of_status(RequestStatus.REJECTED)

    def is_expired(self) -> bool:
        return self.is_of_status(RequestStatus.EXPIRED)

    def is_failed(self) -> bool:
        return self.is_of_status(RequestStatus.FAILED)

    def __repr__(self) -> str:
        return f"<MakerCheckerRequest {self.code} {self.type} [{self.status}]>"
