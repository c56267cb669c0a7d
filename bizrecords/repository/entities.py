"""Field tables and repositories for the five business entities.

Each ``*_SCHEMA`` below is the single source of truth for its table: remote
column names, defaults, coercions, and the fixed list page size. The
repositories add only what is specific to one entity: cascade deletes for
hobbies and tasks, and the active-task slot.
"""

from typing import Any, Dict, List, Optional

from bizrecords.common.metrics import MetricsCollector

from .adapter import ChildEntityRepository, EntityRepository, Record, require_id
from .base import RecordNotFoundError, RecordService
from .fields import (
    CREATED_BY,
    CREATED_ON,
    MODIFIED_BY,
    MODIFIED_ON,
    EntitySchema,
    FieldKind,
    FieldSpec,
)
from .session import ActiveTaskSession

GENDERS = ("Male", "Female", "Other")
TASK_PRIORITIES = ("low", "medium", "high")
TASK_STATUSES = ("todo", "in-progress", "done")
DEFAULT_PROJECT_COLOR = "#00D9FF"

NAME = FieldSpec("name", "Name")
TAGS = FieldSpec("tags", "Tags", FieldKind.TAGS)
OWNER = FieldSpec("owner", "Owner", FieldKind.REFERENCE, default=None)


CLIENT_SCHEMA = EntitySchema(
    entity="client",
    table="client_c",
    page_size=50,
    fields=(
        FieldSpec("name", "Name", required=True),
        TAGS,
        OWNER,
        FieldSpec("income", "income_c", FieldKind.NUMBER, default=0.0),
        FieldSpec("gender", "gender_c", FieldKind.CHOICE, choices=GENDERS),
        FieldSpec("website", "website_c", FieldKind.URL),
        FieldSpec("rating", "customerrating_c", FieldKind.INTEGER, default=0, aliases=("customer_rating",)),
        CREATED_ON,
        CREATED_BY,
        MODIFIED_ON,
        MODIFIED_BY,
    ),
)

CUSTOMER_SCHEMA = EntitySchema(
    entity="customer",
    table="customer_c",
    page_size=100,
    name_from=("first_name", "last_name"),
    fields=(
        NAME,
        TAGS,
        OWNER,
        FieldSpec("first_name", "firstName_c", required=True),
        FieldSpec("last_name", "lastName_c", required=True),
        FieldSpec("email", "email_c", required=True),
        FieldSpec("phone", "phone_c"),
        FieldSpec("address", "address_c"),
        FieldSpec("income", "income_c", FieldKind.NUMBER, default=None),
        FieldSpec("gender", "gender_c", FieldKind.CHOICE, choices=GENDERS),
        FieldSpec("website", "website_c", FieldKind.URL),
        FieldSpec("rating", "customerRating_c", FieldKind.INTEGER, default=None, aliases=("customer_rating",)),
        CREATED_ON,
        MODIFIED_ON,
    ),
)

HOBBY_SCHEMA = EntitySchema(
    entity="hobby",
    table="hobby_c",
    page_size=100,
    name_from=("hobby_name",),
    parent_field="customer_id",
    fields=(
        NAME,
        TAGS,
        OWNER,
        FieldSpec("customer_id", "customerId_c", FieldKind.REFERENCE, default=None, required=True, references="customer"),
        FieldSpec("hobby_name", "hobbyName_c", FieldKind.TAGS, aliases=("hobbies",)),
        CREATED_ON,
        MODIFIED_ON,
    ),
)

PROJECT_SCHEMA = EntitySchema(
    entity="project",
    table="project_c",
    page_size=100,
    fields=(
        FieldSpec("name", "Name", required=True),
        FieldSpec("description", "description_c"),
        FieldSpec("color", "color_c", default=DEFAULT_PROJECT_COLOR),
        FieldSpec("created_at", "createdAt_c", FieldKind.DATETIME, default=None, auto_now_add=True),
        CREATED_ON,
        MODIFIED_ON,
    ),
)

TASK_SCHEMA = EntitySchema(
    entity="task",
    table="task_c",
    page_size=200,
    name_from=("title",),
    parent_field="project_id",
    fields=(
        NAME,
        FieldSpec("title", "title_c", required=True),
        FieldSpec("description", "description_c"),
        FieldSpec("project_id", "projectId_c", FieldKind.REFERENCE, default=None, references="project"),
        FieldSpec("priority", "priority_c", FieldKind.CHOICE, default="medium", choices=TASK_PRIORITIES),
        FieldSpec("status", "status_c", FieldKind.CHOICE, default="todo", choices=TASK_STATUSES),
        FieldSpec("created_at", "createdAt_c", FieldKind.DATETIME, default=None, auto_now_add=True),
        FieldSpec("updated_at", "updatedAt_c", FieldKind.DATETIME, default=None, auto_now=True),
        CREATED_ON,
        MODIFIED_ON,
    ),
)

SCHEMAS: Dict[str, EntitySchema] = {
    schema.entity: schema
    for schema in (CLIENT_SCHEMA, CUSTOMER_SCHEMA, HOBBY_SCHEMA, PROJECT_SCHEMA, TASK_SCHEMA)
}


class ClientRepository(EntityRepository):
    def __init__(self, service: RecordService, metrics: Optional[MetricsCollector] = None):
        super().__init__(service, CLIENT_SCHEMA, metrics)


class CustomerRepository(EntityRepository):
    def __init__(self, service: RecordService, metrics: Optional[MetricsCollector] = None):
        super().__init__(service, CUSTOMER_SCHEMA, metrics)


class ProjectRepository(EntityRepository):
    def __init__(self, service: RecordService, metrics: Optional[MetricsCollector] = None):
        super().__init__(service, PROJECT_SCHEMA, metrics)


class HobbyRepository(ChildEntityRepository):
    """Hobbies belong to a customer through ``customer_id``."""

    def __init__(self, service: RecordService, metrics: Optional[MetricsCollector] = None):
        super().__init__(service, HOBBY_SCHEMA, metrics)

    async def delete_by_customer_id(self, customer_id: Any) -> List[int]:
        return await self.delete_by_parent(customer_id)


class TaskRepository(ChildEntityRepository):
    """Tasks belong to a project and can be marked as the active task.

    The active task id lives in an ``ActiveTaskSession``; pass the same
    session to every repository that should share it.
    """

    def __init__(
        self,
        service: RecordService,
        session: Optional[ActiveTaskSession] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        super().__init__(service, TASK_SCHEMA, metrics)
        self.session = session if session is not None else ActiveTaskSession()

    async def delete_by_project_id(self, project_id: Any) -> List[int]:
        return await self.delete_by_parent(project_id)

    async def set_active(self, task_id: Any) -> Record:
        """Mark ``task_id`` as the active task and return it with ``is_active`` set.

        Raises ``RecordNotFoundError`` (and leaves the slot empty) when the
        task does not exist.
        """
        task_id = require_id(task_id, self.label)
        self.session.set(task_id)

        task = await self.get_by_id(task_id)
        if task is None:
            self.session.clear()
            raise RecordNotFoundError(f"Task {task_id} does not exist")

        self.log.info("Active task set", record_id=task_id)
        return {**task, "is_active": True}

    async def get_active_task(self) -> Optional[Record]:
        """Re-fetch the active task; clears the slot if the task is gone."""
        task_id = self.session.active_task_id
        if task_id is None:
            return None

        task = await self.get_by_id(task_id)
        if task is None:
            self.log.info("Active task no longer exists, clearing", record_id=task_id)
            # Only clear if nobody pointed the slot elsewhere meanwhile
            if self.session.active_task_id == task_id:
                self.session.clear()
            return None
        return {**task, "is_active": True}

    def clear_active(self) -> None:
        self.session.clear()
