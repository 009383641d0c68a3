"""Fluent construction of new maker-checker requests.

Usage::

    request = (
        maker_checker.request()
        .made_by(user)
        .to_create(Article, {"title": "A", "description": "B"})
        .unique_by("title")
        .after_approval("notify-author")
        .save()
    )

A builder proposes exactly one request at a time; ``save`` resets it so the
same instance can be reused.
"""

import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from makerchecker.common.config import MakerCheckerConfig
from makerchecker.common.logger import get_logger
from makerchecker.db.models.request import MakerCheckerRequest, utcnow

from .actions import ActionRegistry
from .events import EventBus, EventKind
from .exceptions import (
    ActorNotPermitted,
    DuplicateRequest,
    RequestNotInitiated,
    RequestTypeAlreadySet,
)
from .hooks import HookCallback, HookKind, HookStore
from .states import RequestStatus
from .store import RequestStore
from .uniqueness import UniquenessChecker, comparison_fields, fingerprint
from .variants import (
    ActorRef,
    Create,
    Delete,
    Execute,
    RequestVariant,
    Update,
    as_actor_ref,
    describe,
)

logger = get_logger("request_builder")


class RequestBuilder:
    """Builds, validates and persists one pending request at a time."""

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
        self.uniqueness = UniquenessChecker(store)
        self._reset()

    def _reset(self) -> None:
        self._maker: Optional[ActorRef] = None
        self._variant: Optional[RequestVariant] = None
        self._description: Optional[str] = None
        self._unique_by: List[str] = []
        self._hooks: Dict[str, str] = {}
        self._on_initiated: List[Callable[[MakerCheckerRequest], None]] = []

    # ------------------------------------------------------------------
    # Actor
    # ------------------------------------------------------------------

    def made_by(self, maker: Any) -> "RequestBuilder":
        """Record the actor proposing the request.

        Raises:
            ActorNotPermitted: If a maker allow-list excludes the actor's type
        """
        ref = as_actor_ref(maker)
        if not self.config.can_make(ref.type):
            raise ActorNotPermitted(ref.type)
        self._maker = ref
        return self

    actor = made_by

    # ------------------------------------------------------------------
    # Request type
    # ------------------------------------------------------------------

    def _set_variant(self, variant: RequestVariant) -> None:
        self._variant = variant

    def _assert_request_type_is_not_set(self) -> None:
        if self._variant is not None:
            raise RequestTypeAlreadySet(self._variant.request_type.value)

    def _subject_ref(self, target: Any) -> Tuple[str, str]:
        if isinstance(target, tuple) and len(target) == 2:
            name, subject_id = str(target[0]), str(target[1])
            self.registry.get_model(name)
            return name, subject_id
        name = self.registry.model_name(type(target))
        return name, as_actor_ref(target).id

    def to_create(self, target_type: Union[str, type], payload: Optional[Dict[str, Any]] = None) -> "RequestBuilder":
        """Propose creating a new ``target_type`` entity from ``payload``."""
        self._assert_request_type_is_not_set()
        if isinstance(target_type, str):
            self.registry.get_model(target_type)
            name = target_type
        else:
            name = self.registry.model_name(target_type)
        self._set_variant(Create(name, dict(payload or {})))
        return self

    def to_update(self, target: Any, changes: Dict[str, Any]) -> "RequestBuilder":
        """Propose applying ``changes`` to an existing entity."""
        self._assert_request_type_is_not_set()
        name, subject_id = self._subject_ref(target)
        self._set_variant(Update(name, subject_id, dict(changes)))
        return self

    def to_delete(self, target: Any) -> "RequestBuilder":
        """Propose deleting an existing entity."""
        self._assert_request_type_is_not_set()
        name, subject_id = self._subject_ref(target)
        self._set_variant(Delete(name, subject_id))
        return self

    def to_execute(self, action_ref: str, payload: Optional[Dict[str, Any]] = None) -> "RequestBuilder":
        """Propose running a registered executable with ``payload``.

        The executable's ``unique_by`` fields apply unless ``unique_by`` was
        called on the builder, and its hook methods become the request's
        hooks unless explicit hooks are registered for the same kinds.
        """
        self._assert_request_type_is_not_set()
        executable = self.registry.get_executable(action_ref)
        self._set_variant(Execute(action_ref, dict(payload or {})))

        self._unique_by = self._unique_by or list(executable.unique_by())
        bound = self.hook_store.for_executable(action_ref)
        for kind in HookKind:
            self._hooks.setdefault(kind.value, bound)
        return self

    # ------------------------------------------------------------------
    # Details
    # ------------------------------------------------------------------

    def unique_by(self, *fields: str) -> "RequestBuilder":
        """Compare only these payload fields when looking for duplicates."""
        self._unique_by = list(fields)
        return self

    def description(self, text: str) -> "RequestBuilder":
        self._description = text
        return self

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def hook(self, kind: Union[str, HookKind], callback: Union[str, HookCallback]) -> "RequestBuilder":
        """Attach a hook of ``kind``.

        Raises:
            InvalidHook: If ``kind`` is not a recognized hook kind
        """
        kind = HookKind.parse(kind)
        self._hooks[kind.value] = self.hook_store.serialize(callback)
        return self

    def before_approval(self, callback: Union[str, HookCallback]) -> "RequestBuilder":
        return self.hook(HookKind.BEFORE_APPROVAL, callback)

    def after_approval(self, callback: Union[str, HookCallback]) -> "RequestBuilder":
        return self.hook(HookKind.AFTER_APPROVAL, callback)

    def before_rejection(self, callback: Union[str, HookCallback]) -> "RequestBuilder":
        return self.hook(HookKind.BEFORE_REJECTION, callback)

    def after_rejection(self, callback: Union[str, HookCallback]) -> "RequestBuilder":
        return self.hook(HookKind.AFTER_REJECTION, callback)

    def on_failure(self, callback: Union[str, HookCallback]) -> "RequestBuilder":
        return self.hook(HookKind.ON_FAILURE, callback)

    def on_initiated(self, callback: Callable[[MakerCheckerRequest], None]) -> "RequestBuilder":
        """Run ``callback`` once this request has been saved."""
        self._on_initiated.append(callback)
        return self

    # ------------------------------------------------------------------
    # Persist
    # ------------------------------------------------------------------

    def _build(self) -> MakerCheckerRequest:
        if self._variant is None:
            raise RequestNotInitiated(
                "No request type provided; call to_create, to_update, to_delete or to_execute first."
            )
        if self._maker is None:
            raise RequestNotInitiated("No maker provided; call made_by first.")

        variant = self._variant
        return MakerCheckerRequest(
            code=str(uuid.uuid4()),
            type=variant.request_type.value,
            status=RequestStatus.PENDING.value,
            subject_type=variant.subject_type,
            subject_id=variant.subject_id,
            executable=variant.executable,
            payload=dict(variant.payload),
            maker_type=self._maker.type,
            maker_id=self._maker.id,
            description=self._description or describe(variant),
            extra_data={"hooks": dict(self._hooks)},
            made_at=utcnow(),
        )

    def save(self) -> MakerCheckerRequest:
        """Validate and persist the request, then announce it.

        Returns:
            The persisted pending request

        Raises:
            RequestNotInitiated: If the request is incomplete or cannot be stored
            DuplicateRequest: If uniqueness is enforced and an equivalent request is pending
        """
        variant = self._variant
        on_initiated = list(self._on_initiated)

        try:
            request = self._build()

            if self.config.ensure_requests_are_unique:
                fields = comparison_fields(variant.payload, self._unique_by)
                try:
                    duplicate = self.uniqueness.exists(variant, fields)
                except SQLAlchemyError as e:
                    self.store.rollback()
                    raise RequestNotInitiated(f"Error initiating request: {e}") from e
                if duplicate:
                    raise DuplicateRequest(variant.request_type.value)
                request.fingerprint = fingerprint(variant, fields)

            try:
                self.store.add(request)
            except IntegrityError as e:
                self.store.rollback()
                if request.fingerprint is not None:
                    # Lost a race against an identical proposal
                    raise DuplicateRequest(variant.request_type.value) from e
                raise RequestNotInitiated(f"Error initiating request: {e}") from e
            except SQLAlchemyError as e:
                self.store.rollback()
                raise RequestNotInitiated(f"Error initiating request: {e}") from e
        finally:
            self._reset()

        logger.info(
            f"Request {request.code} initiated by {request.maker}: {request.description}"
        )
        self.events.emit(EventKind.INITIATED, request)

        for callback in on_initiated:
            try:
                callback(request)
            except Exception:
                logger.exception(f"on_initiated callback failed for request {request.code}")

        return request

    finalize = save
