"""Entry point tying the request lifecycle components together."""

from typing import Any, Callable, List, Optional, Union

from sqlalchemy.orm import Session

from makerchecker.common.config import MakerCheckerConfig
from makerchecker.db.models.request import MakerCheckerRequest

from .actions import ActionRegistry, get_registry
from .builder import RequestBuilder
from .events import EventBus, EventKind, RequestEvent
from .hooks import HookStore, get_hook_store
from .manager import RequestManager, SweepResult
from .states import RequestStatus
from .store import RequestStore
from .variants import as_actor_ref


class MakerChecker:
    """
    Per-session facade over the builder, manager and event bus.

    Example::

        maker_checker = MakerChecker(session, config)
        maker_checker.registry.register_model(Article)

        request = maker_checker.request().made_by(user).to_create(
            Article, {"title": "A"}
        ).save()
        maker_checker.approve(request, admin, remarks="ok")
    """

    def __init__(
        self,
        session: Session,
        config: Optional[MakerCheckerConfig] = None,
        registry: Optional[ActionRegistry] = None,
        hook_store: Optional[HookStore] = None,
        events: Optional[EventBus] = None,
    ):
        """
        Args:
            session: Session all reads and writes go through
            config: Engine configuration (defaults: no allow-lists, no expiry,
                no uniqueness enforcement)
            registry: Action registry (defaults to the global registry)
            hook_store: Hook callback store (defaults to the global store, so
                hooks registered through one facade resolve in another)
            events: Event bus (a new one by default)
        """
        self.session = session
        self.config = config or MakerCheckerConfig()
        self.registry = registry if registry is not None else get_registry()
        self.hook_store = hook_store if hook_store is not None else get_hook_store()
        self.events = events if events is not None else EventBus()
        self.store = RequestStore(session)
        self.manager = RequestManager(
            self.store, self.config, self.registry, self.hook_store, self.events
        )

    def request(self) -> RequestBuilder:
        """Start building a new request."""
        return RequestBuilder(
            self.store, self.config, self.registry, self.hook_store, self.events
        )

    def approve(
        self, request: MakerCheckerRequest, checker: Any, remarks: Optional[str] = None
    ) -> MakerCheckerRequest:
        return self.manager.approve(request, checker, remarks)

    def reject(
        self, request: MakerCheckerRequest, checker: Any, remarks: Optional[str] = None
    ) -> MakerCheckerRequest:
        return self.manager.reject(request, checker, remarks)

    def get_request(self, request_id: int) -> Optional[MakerCheckerRequest]:
        return self.store.get(request_id)

    def get_request_by_code(self, code: str) -> Optional[MakerCheckerRequest]:
        return self.store.get_by_code(code)

    def requests(
        self,
        status: Optional[Union[str, RequestStatus]] = None,
        made_by: Any = None,
        checked_by: Any = None,
    ) -> List[MakerCheckerRequest]:
        """List requests, newest first, optionally narrowed by status and actor."""
        return self.store.find(
            status,
            maker=as_actor_ref(made_by) if made_by is not None else None,
            checker=as_actor_ref(checked_by) if checked_by is not None else None,
        ).all()

    def expire_overdue_requests(self) -> SweepResult:
        return self.manager.expire_overdue_requests()

    # Global listeners

    def after_initiating(self, callback: Callable[[RequestEvent], None]) -> None:
        self.events.listen(EventKind.INITIATED, callback)

    def after_approving(self, callback: Callable[[RequestEvent], None]) -> None:
        self.events.listen(EventKind.APPROVED, callback)

    def after_rejecting(self, callback: Callable[[RequestEvent], None]) -> None:
        self.events.listen(EventKind.REJECTED, callback)

    def after_failing(self, callback: Callable[[RequestEvent], None]) -> None:
        self.events.listen(EventKind.FAILED, callback)
