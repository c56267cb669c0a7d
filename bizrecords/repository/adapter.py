"""Generic entity repository.

``EntityRepository`` turns list/get/create/update/delete intents into calls
against a ``RecordService`` for the table an ``EntitySchema`` names, and
turns the service's envelopes back into plain records or typed failures.

Failure policy
- ``list`` degrades to an empty list and logs the remote message
- every other operation raises a ``RecordServiceError`` subclass; mutations
  never report success for a record the service did not accept
"""

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Sequence, Union

from bizrecords.common.logging import ServiceLogger
from bizrecords.common.metrics import MetricsCollector

from .base import (
    CascadeDeleteError,
    InvalidArgumentError,
    RecordNotFoundError,
    RecordService,
    RecordServiceError,
    RemoteUnavailableError,
    ValidationFailedError,
)
from .fields import EntitySchema, FieldKind, FieldSpec, coerce_number, parse_record_id

Record = Dict[str, Any]

_NOT_FOUND_PATTERN = re.compile(r"not\s+found|does\s+not\s+exist|no\s+such\s+record", re.IGNORECASE)

# Page size used while collecting child ids for a cascade delete.
CASCADE_BATCH_SIZE = 500


class Operator(str, Enum):
    """Comparison operators understood by the record service."""
    EQUAL_TO = "EqualTo"
    NOT_EQUAL_TO = "NotEqualTo"
    GREATER_THAN = "GreaterThan"
    GREATER_THAN_OR_EQUAL_TO = "GreaterThanOrEqualTo"
    LESS_THAN = "LessThan"
    LESS_THAN_OR_EQUAL_TO = "LessThanOrEqualTo"
    CONTAINS = "Contains"
    STARTS_WITH = "StartsWith"
    HAS_VALUE = "HasValue"
    DOES_NOT_HAVE_VALUE = "DoesNotHaveValue"


@dataclass(frozen=True)
class Filter:
    """``field <operator> any of values``, with ``field`` a logical name."""
    field: str
    operator: Union[Operator, str] = Operator.EQUAL_TO
    values: Sequence[Any] = ()


@dataclass(frozen=True)
class Ordering:
    field: str
    descending: bool = True


@dataclass
class DeleteOutcome:
    """Per-id result of one bulk delete request."""
    deleted: List[int] = field(default_factory=list)
    missing: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    message: str = ""


def require_id(value: Any, label: str = "Record") -> int:
    """Coerce ``value`` to a positive integer id or raise ``InvalidArgumentError``."""
    record_id = parse_record_id(value)
    if record_id is None:
        raise InvalidArgumentError(f"{label} ID is required and must be a positive integer (got {value!r})")
    return record_id


def _looks_not_found(message: Optional[str]) -> bool:
    return bool(message) and bool(_NOT_FOUND_PATTERN.search(message))


def _field_errors(result: Mapping[str, Any]) -> Dict[str, str]:
    errors = {}
    for error in result.get("errors") or []:
        if not isinstance(error, Mapping):
            continue
        label = str(error.get("fieldLabel") or error.get("field") or "record")
        errors[label] = str(error.get("message") or "is invalid")
    return errors


class EntityRepository:
    """CRUD operations for one entity, driven by its ``EntitySchema``.

    Parameters
    - service: Injected record service; its lifecycle belongs to the caller
    - schema: Field table and remote table for the entity
    - metrics: Optional collector recording every remote call
    """

    def __init__(
        self,
        service: RecordService,
        schema: EntitySchema,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.service = service
        self.schema = schema
        self.metrics = metrics
        self.log = ServiceLogger(f"repository.{schema.entity}", entity=schema.entity, table=schema.table)

    @property
    def table(self) -> str:
        return self.schema.table

    @property
    def label(self) -> str:
        return self.schema.entity.capitalize()

    async def _call(self, operation: str, call: Awaitable[Dict[str, Any]]) -> Dict[str, Any]:
        """Await one remote call, recording timing and outcome."""
        start = time.perf_counter()
        status = "error"
        try:
            envelope = await call
            if not isinstance(envelope, Mapping):
                raise RemoteUnavailableError(
                    "Malformed response from record service",
                    remote_message=repr(envelope)[:500]
                )
            status = "success" if envelope.get("success") else "failure"
            return dict(envelope)
        finally:
            if self.metrics is not None:
                self.metrics.record_remote_operation(
                    self.table, operation, status, time.perf_counter() - start
                )

    def _remote_field(self, name: str) -> str:
        try:
            return self.schema.get_field(name).remote_name
        except KeyError:
            raise InvalidArgumentError(f"Unknown {self.schema.entity} field: {name!r}")

    def _filter_value(self, spec: FieldSpec, value: Any) -> Any:
        """Coerce one filter value the way the field's own values are sent."""
        if value is None:
            return value
        if spec.kind is FieldKind.REFERENCE:
            return spec.coerce(value)
        if spec.kind in (FieldKind.NUMBER, FieldKind.INTEGER):
            number = coerce_number(value)
            if number is None:
                raise InvalidArgumentError(
                    f"Invalid number for {self.schema.entity} field {spec.name!r}: {value!r}"
                )
            return int(number) if spec.kind is FieldKind.INTEGER else number
        return value

    def _where(self, filters: Sequence[Filter]) -> List[Dict[str, Any]]:
        where = []
        for item in filters:
            try:
                spec = self.schema.get_field(item.field)
            except KeyError:
                raise InvalidArgumentError(f"Unknown {self.schema.entity} field: {item.field!r}")
            try:
                operator = Operator(item.operator)
            except ValueError:
                raise InvalidArgumentError(f"Unsupported filter operator: {item.operator!r}")
            values = [self._filter_value(spec, value) for value in item.values]
            where.append({
                "FieldName": spec.remote_name,
                "Operator": operator.value,
                "Values": values,
            })
        return where

    def _records(self, envelope: Mapping[str, Any]) -> List[Record]:
        data = envelope.get("data")
        if data is None:
            return []
        if not isinstance(data, list):
            raise RemoteUnavailableError("Malformed list response from record service")
        return [self.schema.to_record(row) for row in data if isinstance(row, Mapping)]

    async def list(
        self,
        filters: Optional[Sequence[Filter]] = None,
        order_by: Optional[Sequence[Ordering]] = None,
    ) -> List[Record]:
        """List records, newest first unless ``order_by`` says otherwise.

        Returns at most ``schema.page_size`` records. Remote failures are
        logged and reported as an empty list.
        """
        params: Dict[str, Any] = {
            "fields": self.schema.fetch_fields(),
            "orderBy": [
                {"fieldName": self._remote_field(order.field), "sorttype": "DESC" if order.descending else "ASC"}
                for order in order_by
            ] if order_by else [{"fieldName": self.schema.default_order_field, "sorttype": "DESC"}],
            "pagingInfo": {"limit": self.schema.page_size, "offset": 0},
        }
        if filters:
            params["where"] = self._where(filters)

        try:
            envelope = await self._call("fetch", self.service.fetch_records(self.table, params))
            if not envelope.get("success"):
                self.log.error(f"Error fetching {self.schema.entity} records", error=envelope.get("message"))
                return []
            return self._records(envelope)
        except RecordServiceError as e:
            self.log.error(f"Error fetching {self.schema.entity} records", error=e.remote_message)
            return []

    async def get_by_id(self, record_id: Any) -> Optional[Record]:
        """Fetch one record; ``None`` when the service reports it does not exist."""
        record_id = require_id(record_id, self.label)
        params = {"fields": self.schema.fetch_fields()}

        try:
            envelope = await self._call(
                "get", self.service.get_record_by_id(self.table, record_id, params)
            )
        except RecordNotFoundError:
            return None

        if not envelope.get("success"):
            message = envelope.get("message") or ""
            if _looks_not_found(message):
                return None
            self.log.error(f"Error fetching {self.schema.entity}", record_id=record_id, error=message)
            raise RemoteUnavailableError(
                message or f"Failed to fetch {self.schema.entity} {record_id}", remote_message=message
            )

        data = envelope.get("data")
        if not data:
            return None
        if not isinstance(data, Mapping):
            raise RemoteUnavailableError("Malformed record in response from record service")
        return self.schema.to_record(data)

    def _single_result(
        self,
        envelope: Mapping[str, Any],
        action: str,
        record_id: Optional[int] = None
    ) -> Record:
        """Unwrap the one per-record result of a create or update."""
        message = envelope.get("message") or ""
        results = envelope.get("results")

        if not envelope.get("success"):
            field_errors = {}
            if isinstance(results, list):
                for result in results:
                    if isinstance(result, Mapping):
                        field_errors.update(_field_errors(result))
            if field_errors:
                raise ValidationFailedError(
                    "; ".join(f"{label}: {error}" for label, error in field_errors.items()),
                    field_errors=field_errors,
                    remote_message=message,
                )
            if record_id is not None and _looks_not_found(message):
                raise RecordNotFoundError(message, remote_message=message)
            self.log.error(f"Error {action} {self.schema.entity}", record_id=record_id, error=message)
            raise RemoteUnavailableError(
                message or f"Failed {action} {self.schema.entity}", remote_message=message
            )

        if (
            not isinstance(results, list)
            or not results
            or not all(isinstance(result, Mapping) for result in results)
        ):
            raise RemoteUnavailableError(
                f"Record service returned no result {action} {self.schema.entity}", remote_message=message
            )

        failed = [result for result in results if not result.get("success")]
        if failed:
            self.log.error(
                f"Failed {action} {self.schema.entity}",
                record_id=record_id,
                failures=failed
            )
            result = failed[0]
            result_message = str(result.get("message") or "")
            field_errors = _field_errors(result)
            if record_id is not None and not field_errors and _looks_not_found(result_message):
                raise RecordNotFoundError(result_message, remote_message=result_message)
            if field_errors:
                text = "; ".join(f"{label}: {error}" for label, error in field_errors.items())
            else:
                text = result_message or f"{self.label} was rejected by the record service"
            raise ValidationFailedError(text, field_errors=field_errors, remote_message=result_message or message)

        data = results[0].get("data")
        if not isinstance(data, Mapping):
            raise RemoteUnavailableError(
                f"Record service returned no data {action} {self.schema.entity}", remote_message=message
            )
        return self.schema.to_record(data)

    async def create(self, values: Mapping[str, Any]) -> Record:
        """Create one record, filling defaults for every omitted field."""
        if values is None:
            raise InvalidArgumentError(f"{self.label} data is required")

        missing = self.schema.missing_required(values)
        if missing:
            raise ValidationFailedError(
                "; ".join(missing.values()), field_errors=missing, remote_message=""
            )

        unknown = self.schema.unknown_keys(values)
        if unknown:
            self.log.debug("Ignoring unknown fields", fields=unknown)

        payload = self.schema.build_create_payload(values)
        envelope = await self._call(
            "create", self.service.create_record(self.table, {"records": [payload]})
        )
        record = self._single_result(envelope, "creating")
        self.log.info(f"Created {self.schema.entity}", record_id=record.get("id"))
        return record

    async def update(self, record_id: Any, values: Mapping[str, Any]) -> Record:
        """Update the supplied fields of one record; omitted fields are not sent."""
        record_id = require_id(record_id, self.label)
        if values is None:
            raise InvalidArgumentError(f"{self.label} data is required for update")

        blanked = self.schema.missing_required(values, partial=True)
        if blanked:
            raise ValidationFailedError(
                "; ".join(blanked.values()), field_errors=blanked, remote_message=""
            )

        unknown = self.schema.unknown_keys(values)
        if unknown:
            self.log.debug("Ignoring unknown fields", fields=unknown)

        payload = self.schema.build_update_payload(record_id, values)
        try:
            envelope = await self._call(
                "update", self.service.update_record(self.table, {"records": [payload]})
            )
        except RecordNotFoundError:
            self.log.warning(f"{self.label} not found for update", record_id=record_id)
            raise

        record = self._single_result(envelope, "updating", record_id)
        self.log.info(f"Updated {self.schema.entity}", record_id=record_id, fields=sorted(payload))
        return record

    async def _delete_ids(self, record_ids: List[int]) -> DeleteOutcome:
        """Delete ``record_ids`` in one request; split the ids by outcome.

        Returns ``deleted``, ``missing`` (service says they do not exist) and
        ``failed`` id lists. Raises when the request as a whole fails:
        ``RecordNotFoundError`` if the service says the records do not exist,
        ``RemoteUnavailableError`` otherwise.
        """
        envelope = await self._call(
            "delete", self.service.delete_record(self.table, {"RecordIds": record_ids})
        )
        message = envelope.get("message") or ""
        if not envelope.get("success"):
            if _looks_not_found(message):
                raise RecordNotFoundError(message, remote_message=message)
            self.log.error(f"Error deleting {self.schema.entity}", record_ids=record_ids, error=message)
            raise RemoteUnavailableError(
                message or f"Failed deleting {self.schema.entity}", remote_message=message
            )

        results = envelope.get("results")
        if (
            not isinstance(results, list)
            or len(results) != len(record_ids)
            or not all(isinstance(result, Mapping) for result in results)
        ):
            raise RemoteUnavailableError(
                f"Record service returned malformed delete results for {self.schema.entity}",
                remote_message=message
            )

        outcome = DeleteOutcome()
        messages = []
        for record_id, result in zip(record_ids, results):
            if result.get("success"):
                outcome.deleted.append(record_id)
            elif _looks_not_found(result.get("message")):
                outcome.missing.append(record_id)
            else:
                outcome.failed.append(record_id)
                messages.append(str(result.get("message") or "delete rejected"))

        if outcome.failed:
            self.log.error(
                f"Failed deleting {self.schema.entity}",
                failed_ids=outcome.failed,
                errors=messages
            )
        outcome.message = "; ".join(messages)
        return outcome

    async def delete(self, record_id: Any) -> bool:
        """Delete one record. ``False`` when there was nothing to delete."""
        record_id = require_id(record_id, self.label)
        try:
            outcome = await self._delete_ids([record_id])
        except RecordNotFoundError:
            return False

        if outcome.failed:
            text = outcome.message or f"Failed deleting {self.schema.entity} {record_id}"
            raise RemoteUnavailableError(text, remote_message=text)

        deleted = bool(outcome.deleted)
        if deleted:
            self.log.info(f"Deleted {self.schema.entity}", record_id=record_id)
        return deleted


class ChildEntityRepository(EntityRepository):
    """Repository for an entity that references a parent through ``schema.parent_field``."""

    def __init__(
        self,
        service: RecordService,
        schema: EntitySchema,
        metrics: Optional[MetricsCollector] = None,
    ):
        if schema.parent_field is None:
            raise ValueError(f"Schema for {schema.entity} declares no parent_field")
        super().__init__(service, schema, metrics)

    async def _child_ids(self, parent_id: int) -> List[int]:
        """Collect every child id for ``parent_id``, page by page."""
        parent = self.schema.get_field(self.schema.parent_field)
        ids: List[int] = []
        offset = 0
        while True:
            params = {
                "fields": [{"field": {"Name": "Id"}}],
                "where": [{"FieldName": parent.remote_name, "Operator": Operator.EQUAL_TO.value, "Values": [parent_id]}],
                "orderBy": [{"fieldName": "Id", "sorttype": "ASC"}],
                "pagingInfo": {"limit": CASCADE_BATCH_SIZE, "offset": offset},
            }
            envelope = await self._call("fetch", self.service.fetch_records(self.table, params))
            if not envelope.get("success"):
                message = envelope.get("message") or ""
                self.log.error(
                    f"Error listing {self.schema.entity} records for cascade delete",
                    parent_id=parent_id,
                    error=message
                )
                raise RemoteUnavailableError(
                    message or f"Failed listing {self.schema.entity} records", remote_message=message
                )

            data = envelope.get("data") or []
            if not isinstance(data, list):
                raise RemoteUnavailableError("Malformed list response from record service")
            for row in data:
                record_id = parse_record_id(row.get("Id")) if isinstance(row, Mapping) else None
                if record_id is not None and record_id not in ids:
                    ids.append(record_id)
            if len(data) < CASCADE_BATCH_SIZE:
                return ids
            offset += CASCADE_BATCH_SIZE

    async def delete_by_parent(self, parent_id: Any) -> List[int]:
        """Delete every record whose parent reference equals ``parent_id``.

        Lists the children, then removes them in one bulk delete. Returns the
        deleted ids. If the bulk delete leaves any listed child behind, raises
        ``CascadeDeleteError`` naming what was and was not removed. Children
        created between the two steps are not covered.
        """
        parent_label = (self.schema.get_field(self.schema.parent_field).references or "parent").capitalize()
        parent_id = require_id(parent_id, parent_label)
        log = self.log.bind(parent_id=parent_id)

        child_ids = await self._child_ids(parent_id)
        if not child_ids:
            return []

        try:
            outcome = await self._delete_ids(child_ids)
        except RecordServiceError as e:
            log.error("Cascade delete failed", child_ids=child_ids, error=e.remote_message)
            raise CascadeDeleteError(
                f"Failed deleting {self.schema.entity} records for {parent_label.lower()} {parent_id}: {e.message}",
                deleted_ids=[],
                failed_ids=child_ids,
                remote_message=e.remote_message,
            )

        # Rows already gone count as removed; the postcondition still holds
        removed = outcome.deleted + outcome.missing
        if self.metrics is not None:
            self.metrics.record_cascade_delete(self.table, len(outcome.deleted))

        if outcome.failed:
            raise CascadeDeleteError(
                f"Deleted {len(removed)} of {len(child_ids)} {self.schema.entity} records "
                f"for {parent_label.lower()} {parent_id}",
                deleted_ids=removed,
                failed_ids=outcome.failed,
                remote_message=outcome.message,
            )

        log.info(f"Deleted {self.schema.entity} records by {parent_label.lower()}", count=len(removed))
        return removed
