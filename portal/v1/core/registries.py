from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from portal.config.logging import get_logger
from portal.v1.infra.jobs.errors import InvalidJobPayloadError, UnknownJobTypeError

logger = get_logger(__name__)

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """
        Register an implementation with a given name.

        Registering a name that is already present keeps the first
        implementation and does nothing.
        """
        if name in self._implementations:
            logger.debug("Registration skipped, already registered", registry=self.name, name=name)
            return
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen in production mode"
            )
        self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def __contains__(self, name: str) -> bool:
        return name in self._implementations

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Job Registry - background processing handlers
class JobHandler(Protocol):
    """Protocol for job handlers that process background tasks."""

    async def handle(
        self,
        session: Any,  # AsyncSession
        job: Any,  # Job row, already claimed
        payload: Any,  # Validated payload model for the job type
    ) -> dict[str, Any] | None:
        """
        Handle a background job.

        Args:
            session: Database session for job processing
            job: The claimed job (id, attempts, max_attempts...)
            payload: Job-specific parameters, validated against the type's model

        Returns:
            Optional result dictionary to store with the completed job

        Raises:
            PermanentJobError: the job cannot succeed and must not be retried
            Exception: any other error is treated as transient
        """
        ...


@dataclass(frozen=True)
class JobDefinition:
    """A job type: the payload shape it accepts and the handler that runs it."""

    handler: JobHandler
    payload_model: type[BaseModel]

    def parse_payload(self, job_type: str, payload: dict[str, Any]) -> BaseModel:
        try:
            return self.payload_model.model_validate(payload)
        except PydanticValidationError as e:
            raise InvalidJobPayloadError(
                job_type, e.errors(include_url=False, include_context=False)
            ) from e


class JobRegistry(Registry[JobDefinition]):
    """Registry for background job handlers, keyed by job type."""

    def __init__(self):
        super().__init__("Job")

    def add(
        self, job_type: str, handler: JobHandler, payload_model: type[BaseModel]
    ) -> None:
        self.register(job_type, JobDefinition(handler=handler, payload_model=payload_model))

    def resolve(self, job_type: str) -> JobDefinition:
        """Like get(), but raises UnknownJobTypeError for unregistered types."""
        try:
            return self.get(job_type)
        except KeyError:
            raise UnknownJobTypeError(job_type) from None

    def validate_payload(self, job_type: str, payload: dict[str, Any]) -> BaseModel:
        return self.resolve(job_type).parse_payload(job_type, payload)
