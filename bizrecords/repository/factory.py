"""Record service factory and repository wiring.

Centralizes creation of concrete ``RecordService`` backends so callers don't
depend on implementation details, and builds the full set of entity
repositories around one injected service. New backends can be added without
changing call sites.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from bizrecords.common.logging import get_logger
from bizrecords.common.metrics import MetricsCollector

from .base import RecordService
from .entities import (
    ClientRepository,
    CustomerRepository,
    HobbyRepository,
    ProjectRepository,
    TaskRepository,
)
from .http_client import HttpRecordService
from .memory import InMemoryRecordService
from .session import ActiveTaskSession

logger = get_logger("repository.factory")


class RecordServiceType(Enum):
    """Supported record service backends."""
    HTTP = "http"
    MEMORY = "memory"


class RecordServiceFactory:
    """Factory for creating record service instances."""

    @staticmethod
    def create(
        service_type: RecordServiceType,
        config: Dict[str, Any],
        **kwargs: Any
    ) -> RecordService:
        """Create a record service instance.

        Parameters
        - service_type: A ``RecordServiceType`` enum value
        - config: Backend-specific parameters (e.g. ``api_url`` for http)
        - kwargs: Additional optional overrides forwarded to implementation
        """

        if service_type == RecordServiceType.HTTP:
            api_url = config.get("api_url")
            if not api_url:
                raise ValueError("HTTP record service requires 'api_url' in config")
            project_id = config.get("project_id")
            if not project_id:
                raise ValueError("HTTP record service requires 'project_id' in config")

            return HttpRecordService(
                api_url=api_url,
                project_id=project_id,
                public_key=config.get("public_key"),
                timeout=float(config.get("timeout", 30.0)),
                **kwargs
            )

        elif service_type == RecordServiceType.MEMORY:
            return InMemoryRecordService(
                required_fields=config.get("required_fields"),
                owner_id=config.get("owner_id"),
                **kwargs
            )

        else:
            raise ValueError(f"Unsupported record service type: {service_type}")

    @staticmethod
    def create_from_config(config: Dict[str, Any]) -> RecordService:
        """Create a record service from a configuration dictionary.

        Expects a ``type`` key and any implementation-specific fields.
        """
        service_type_str = config.get("type", "memory")

        try:
            service_type = RecordServiceType(service_type_str)
        except ValueError:
            raise ValueError(f"Unsupported record service type: {service_type_str}")

        return RecordServiceFactory.create(service_type, config)


def create_record_service_from_env(env_config: Mapping[str, str]) -> RecordService:
    """Create a record service from environment configuration.

    Parameters
    - env_config: A flat mapping of environment variable names to values,
      e.g. ``RecordsConfig().to_env_config()`` or ``os.environ``

    Returns
    - A ``RecordService`` for the backend named by ``RECORDS_BACKEND``
    """
    backend = env_config.get("RECORDS_BACKEND", "memory")

    if backend == "http":
        if not env_config.get("RECORDS_API_URL"):
            raise ValueError("RECORDS_API_URL environment variable is required")
        if not env_config.get("RECORDS_PROJECT_ID"):
            raise ValueError("RECORDS_PROJECT_ID environment variable is required")

        config = {
            "type": "http",
            "api_url": env_config.get("RECORDS_API_URL"),
            "project_id": env_config.get("RECORDS_PROJECT_ID"),
            "public_key": env_config.get("RECORDS_PUBLIC_KEY"),
            "timeout": float(env_config.get("RECORDS_TIMEOUT_SECONDS", "30")),
        }
        logger.info("Using HTTP record service", api_url=config["api_url"])
        return RecordServiceFactory.create_from_config(config)

    elif backend == "memory":
        logger.info("Using in-memory record service")
        return RecordServiceFactory.create_from_config({"type": "memory"})

    else:
        raise ValueError(f"Unsupported record backend: {backend}")


@dataclass
class Repositories:
    """The five entity repositories sharing one service and one session."""
    service: RecordService
    clients: ClientRepository
    customers: CustomerRepository
    hobbies: HobbyRepository
    projects: ProjectRepository
    tasks: TaskRepository
    session: ActiveTaskSession = field(default_factory=ActiveTaskSession)

    def for_entity(self, entity: str):
        """Look up a repository by singular entity name (``customer``)."""
        by_entity = {
            "client": self.clients,
            "customer": self.customers,
            "hobby": self.hobbies,
            "project": self.projects,
            "task": self.tasks,
        }
        try:
            return by_entity[entity]
        except KeyError:
            raise ValueError(f"Unknown entity: {entity}")


def create_repositories(
    service: RecordService,
    session: Optional[ActiveTaskSession] = None,
    metrics: Optional[MetricsCollector] = None,
) -> Repositories:
    """Wire every entity repository around ``service``.

    The caller keeps ownership of ``service`` and closes it when done.
    """
    session = session if session is not None else ActiveTaskSession()
    return Repositories(
        service=service,
        clients=ClientRepository(service, metrics),
        customers=CustomerRepository(service, metrics),
        hobbies=HobbyRepository(service, metrics),
        projects=ProjectRepository(service, metrics),
        tasks=TaskRepository(service, session, metrics),
        session=session,
    )
