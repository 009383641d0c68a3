"""Action registry: what actually happens when a request is approved.

Maps subject type names to SQLAlchemy models (for create/update/delete
requests) and executable names to ``ExecutableRequest`` implementations (for
execute requests). Built-in CRUD actions and user executables share one
interface so the lifecycle manager treats them uniformly.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Type, Union

from sqlalchemy import inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import Session, object_session

from makerchecker.common.logger import get_logger

from .exceptions import InvalidRequestModel, SubjectNotFound, UnresolvableAction
from .states import RequestType

logger = get_logger("action_registry")


class ExecutableRequest(ABC):
    """Base class for anything a request can execute on approval.

    Only ``execute`` is required. The hook methods default to no-ops and are
    called at the matching lifecycle points when the request was built with
    ``to_execute``. Implementations get the active session with
    ``sqlalchemy.orm.object_session(request)``.
    """

    @abstractmethod
    def execute(self, request) -> Any:
        """Apply the approved change."""

    def unique_by(self) -> List[str]:
        """Payload fields that identify duplicate pending requests."""
        return []

    def before_approval(self, request) -> None:
        pass

    def after_approval(self, request) -> None:
        pass

    def before_rejection(self, request) -> None:
        pass

    def after_rejection(self, request) -> None:
        pass

    def on_failure(self, request, error: BaseException) -> None:
        pass


class _ModelAction(ExecutableRequest):
    """Shared plumbing for the built-in create/update/delete actions."""

    def __init__(self, model: type, session: Session):
        self.model = model
        self.session = session

    def _load_subject(self, request):
        subject = load_subject(self.session, self.model, request.subject_id)
        if subject is None:
            raise SubjectNotFound(request.subject_type, request.subject_id)
        return subject


class CreateModel(_ModelAction):
    """Instantiate the subject model with the payload."""

    def execute(self, request):
        # Declarative constructors reject unknown keyword arguments
        instance = self.model(**dict(request.payload or {}))
        self.session.add(instance)
        self.session.flush()
        return instance


class UpdateModel(_ModelAction):
    """Apply the payload fields to the existing subject."""

    def execute(self, request):
        subject = self._load_subject(request)
        columns = inspect(self.model).attrs.keys()
        unknown = sorted(set(request.payload or {}) - set(columns))
        if unknown:
            raise AttributeError(
                f"{self.model.__name__} has no attribute(s): {', '.join(unknown)}"
            )
        for key, value in (request.payload or {}).items():
            setattr(subject, key, value)
        self.session.flush()
        return subject


class DeleteModel(_ModelAction):
    """Remove the existing subject."""

    def execute(self, request):
        subject = self._load_subject(request)
        self.session.delete(subject)
        self.session.flush()
        return None


_MODEL_ACTIONS = {
    RequestType.CREATE: CreateModel,
    RequestType.UPDATE: UpdateModel,
    RequestType.DELETE: DeleteModel,
}


def _primary_key_type(model: type) -> Optional[type]:
    columns = inspect(model).primary_key
    if len(columns) != 1:
        return None
    try:
        return columns[0].type.python_type
    except NotImplementedError:
        return None


def load_subject(session: Session, model: type, subject_id: Optional[str]):
    """Load a subject row from its stored (string) id."""
    if subject_id is None:
        return None
    key: Any = subject_id
    python_type = _primary_key_type(model)
    if python_type is not None and python_type is not str:
        try:
            key = python_type(subject_id)
        except (TypeError, ValueError):
            return None
    return session.get(model, key)


class ActionRegistry:
    """Registry for subject models and named executables."""

    def __init__(self) -> None:
        self._models: Dict[str, type] = {}
        self._executables: Dict[str, ExecutableRequest] = {}

    def register_model(self, model: type, name: Optional[str] = None) -> str:
        """Register a SQLAlchemy model as a request subject.

        Args:
            model: Mapped class
            name: Subject type name (defaults to the class name)

        Returns:
            The name the model was registered under

        Raises:
            InvalidRequestModel: If ``model`` is not a mapped class
        """
        try:
            inspect(model)
        except NoInspectionAvailable:
            raise InvalidRequestModel(
                f"{model!r} is not a SQLAlchemy mapped class and cannot be a request subject"
            ) from None

        name = name or model.__name__
        if name in self._models and self._models[name] is not model:
            logger.warning(f"Overwriting existing model for subject type: {name}")
        self._models[name] = model
        logger.debug(f"Registered subject model: {name}")
        return name

    def register_executable(
        self, name: str, executable: Union[ExecutableRequest, Type[ExecutableRequest]]
    ) -> None:
        """Register an executable under ``name``.

        Classes are instantiated with no arguments.

        Raises:
            InvalidRequestModel: If ``executable`` is not an ExecutableRequest
        """
        if isinstance(executable, type):
            if not issubclass(executable, ExecutableRequest):
                raise InvalidRequestModel(
                    f"{executable.__name__} must subclass ExecutableRequest"
                )
            executable = executable()
        elif not isinstance(executable, ExecutableRequest):
            raise InvalidRequestModel(f"{executable!r} must be an ExecutableRequest")

        if name in self._executables:
            logger.warning(f"Overwriting existing executable: {name}")
        self._executables[name] = executable
        logger.debug(f"Registered executable: {name}")

    def unregister(self, name: str) -> None:
        """Remove a model or executable registration."""
        if self._models.pop(name, None) is not None:
            logger.debug(f"Unregistered subject model: {name}")
        if self._executables.pop(name, None) is not None:
            logger.debug(f"Unregistered executable: {name}")

    def get_model(self, name: str) -> type:
        model = self._models.get(name)
        if model is None:
            raise UnresolvableAction(f"No model registered for subject type: {name}")
        return model

    def get_executable(self, name: str) -> ExecutableRequest:
        executable = self._executables.get(name)
        if executable is None:
            raise UnresolvableAction(f"No executable registered under: {name}")
        return executable

    def model_name(self, model: type) -> str:
        """Name a model instance's class is registered under."""
        for name, registered in self._models.items():
            if registered is model:
                return name
        raise UnresolvableAction(f"Model {model.__name__} is not registered as a request subject")

    def resolve(self, request, session: Optional[Session] = None) -> ExecutableRequest:
        """Resolve the action that fulfils ``request``.

        Args:
            request: MakerCheckerRequest being approved
            session: Session the mutation runs in (defaults to the request's)

        Returns:
            ExecutableRequest to run

        Raises:
            UnresolvableAction: If the model or executable is not registered
        """
        request_type = RequestType(request.type)
        if request_type is RequestType.EXECUTE:
            return self.get_executable(request.executable)

        session = session or object_session(request)
        return _MODEL_ACTIONS[request_type](self.get_model(request.subject_type), session)

    def list_models(self) -> List[str]:
        return list(self._models.keys())

    def list_executables(self) -> List[str]:
        return list(self._executables.keys())

    def clear(self) -> None:
        """Clear all registrations (mainly for testing)."""
        self._models.clear()
        self._executables.clear()


# Global registry instance
_registry = ActionRegistry()


def get_registry() -> ActionRegistry:
    """Get the global action registry."""
    return _registry


def register_model(model: type, name: Optional[str] = None) -> str:
    """Register a subject model with the global registry."""
    return _registry.register_model(model, name)


def register_executable(
    name: str, executable: Union[ExecutableRequest, Type[ExecutableRequest]]
) -> None:
    """Register an executable with the global registry."""
    _registry.register_executable(name, executable)
