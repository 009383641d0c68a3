"""Per-request lifecycle hooks.

Requests may sit pending for days, across process restarts, so hooks are
persisted as identifiers rather than as code:

* ``callback:<name>`` names a function registered with a ``HookStore``
* ``executable:<name>`` names an executable in the ``ActionRegistry``; the
  hook resolves to the executable's method for that hook kind

Both are resolved again when the hook fires.
"""

from enum import Enum
from typing import Callable, Dict, Optional, Union

from makerchecker.common.logger import get_logger

from .actions import ActionRegistry, get_registry
from .exceptions import InvalidHook, UnresolvableAction

logger = get_logger("hook_store")

CALLBACK_PREFIX = "callback:"
EXECUTABLE_PREFIX = "executable:"


class HookKind(str, Enum):
    """Lifecycle points a request can carry a hook for."""

    BEFORE_APPROVAL = "before_approval"
    AFTER_APPROVAL = "after_approval"
    BEFORE_REJECTION = "before_rejection"
    AFTER_REJECTION = "after_rejection"
    ON_FAILURE = "on_failure"

    @classmethod
    def parse(cls, value: Union[str, "HookKind"]) -> "HookKind":
        """Parse a hook kind, raising ``InvalidHook`` for unknown names."""
        try:
            return cls(value)
        except ValueError:
            raise InvalidHook(str(value)) from None


HookCallback = Callable[..., None]


def _callback_name(callback: HookCallback) -> str:
    module = getattr(callback, "__module__", None) or "__main__"
    qualname = getattr(callback, "__qualname__", None) or repr(callback)
    return f"{module}.{qualname}"


class HookStore:
    """Named callback registry plus (de)serialization of request hooks."""

    def __init__(self, registry: Optional[ActionRegistry] = None):
        self.registry = registry
        self._callbacks: Dict[str, HookCallback] = {}

    def register(self, name: str, callback: Optional[HookCallback] = None):
        """Register ``callback`` under ``name``.

        Can be used as a decorator::

            @hook_store.register("notify-ops")
            def notify_ops(request): ...
        """
        def decorator(fn: HookCallback) -> HookCallback:
            if name in self._callbacks and self._callbacks[name] is not fn:
                logger.warning(f"Overwriting existing hook callback: {name}")
            self._callbacks[name] = fn
            logger.debug(f"Registered hook callback: {name}")
            return fn

        if callback is not None:
            return decorator(callback)
        return decorator

    def unregister(self, name: str) -> None:
        self._callbacks.pop(name, None)

    def get(self, name: str) -> Optional[HookCallback]:
        return self._callbacks.get(name)

    def serialize(self, callback: Union[str, HookCallback]) -> str:
        """Turn a callback into a storable identifier.

        Strings are taken as names of already registered callbacks (or as
        complete identifiers). Callables are registered under their
        qualified name if they are not registered yet.
        """
        if isinstance(callback, str):
            if callback.startswith((CALLBACK_PREFIX, EXECUTABLE_PREFIX)):
                return callback
            if callback not in self._callbacks:
                raise UnresolvableAction(f"No hook callback registered under: {callback}")
            return f"{CALLBACK_PREFIX}{callback}"

        if not callable(callback):
            raise TypeError(f"Hook callback must be callable, got {type(callback).__name__}")

        for name, registered in self._callbacks.items():
            if registered is callback:
                return f"{CALLBACK_PREFIX}{name}"

        # Closures and lambdas can share a qualified name
        name = base = _callback_name(callback)
        suffix = 1
        while name in self._callbacks:
            suffix += 1
            name = f"{base}#{suffix}"
        self.register(name, callback)
        return f"{CALLBACK_PREFIX}{name}"

    @staticmethod
    def for_executable(executable_name: str) -> str:
        return f"{EXECUTABLE_PREFIX}{executable_name}"

    def resolve(
        self,
        request,
        kind: Union[str, HookKind],
        registry: Optional[ActionRegistry] = None,
    ) -> Optional[HookCallback]:
        """Find the callable stored on ``request`` for ``kind``.

        Args:
            request: Request carrying the hook identifiers
            kind: Hook kind to look up
            registry: Registry for executable hooks (defaults to the store's
                own registry, then the global one)

        Returns:
            The callable, or None if the request carries no such hook

        Raises:
            InvalidHook: If ``kind`` is not a hook kind
            UnresolvableAction: If the stored identifier no longer resolves
        """
        kind = HookKind.parse(kind)
        identifier = request.hooks.get(kind.value)
        if not identifier:
            return None

        if identifier.startswith(EXECUTABLE_PREFIX):
            registry = registry or self.registry or get_registry()
            executable = registry.get_executable(identifier[len(EXECUTABLE_PREFIX):])
            return getattr(executable, kind.value)

        if identifier.startswith(CALLBACK_PREFIX):
            callback = self._callbacks.get(identifier[len(CALLBACK_PREFIX):])
            if callback is None:
                raise UnresolvableAction(f"Hook callback not registered: {identifier}")
            return callback

        raise UnresolvableAction(f"Unrecognized hook identifier: {identifier}")

    def run(
        self,
        request,
        kind: Union[str, HookKind],
        *args,
        registry: Optional[ActionRegistry] = None,
    ) -> bool:
        """Invoke the request's hook for ``kind`` if it has one.

        Returns:
            True if a hook ran
        """
        callback = self.resolve(request, kind, registry)
        if callback is None:
            return False
        logger.debug(f"Running {HookKind.parse(kind).value} hook for request {request.code}")
        callback(request, *args)
        return True

    def clear(self) -> None:
        """Forget all registered callbacks (mainly for testing)."""
        self._callbacks.clear()


# Global hook store instance; a request may be approved by another facade
# (or process) than the one that built it
_hook_store = HookStore()


def get_hook_store() -> HookStore:
    """Get the global hook store."""
    return _hook_store
