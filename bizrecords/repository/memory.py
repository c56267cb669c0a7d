"""In-memory record service implementation.

Keeps tables as dicts of rows inside the process and answers with the same
envelopes the remote service produces, including per-record failures. Used
for local runs without a remote project and as the backend in tests.
"""

import asyncio
import copy
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from bizrecords.common.logging import get_logger

from .base import RecordService

logger = get_logger("repository.memory")

SYSTEM_FIELDS = ("CreatedOn", "CreatedBy", "ModifiedOn", "ModifiedBy")


def _not_found_message(table: str, record_id: Any) -> str:
    return f"Record with Id {record_id} does not exist in {table}"


def _sort_key(value: Any) -> tuple:
    # None sorts before any value; mixed types compare by their string form
    if value is None:
        return (0, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    return (2, str(value))


def _matches(row: Mapping[str, Any], condition: Mapping[str, Any]) -> bool:
    value = row.get(condition.get("FieldName"))
    operator = condition.get("Operator", "EqualTo")
    values = list(condition.get("Values") or [])

    if operator == "EqualTo":
        return value in values
    if operator == "NotEqualTo":
        return value not in values
    if operator == "Contains":
        return any(str(candidate).lower() in str(value or "").lower() for candidate in values)
    if operator == "StartsWith":
        return any(str(value or "").lower().startswith(str(candidate).lower()) for candidate in values)
    if operator == "HasValue":
        return value not in (None, "")
    if operator == "DoesNotHaveValue":
        return value in (None, "")

    comparisons: Dict[str, Callable[[tuple, tuple], bool]] = {
        "GreaterThan": lambda left, right: left > right,
        "GreaterThanOrEqualTo": lambda left, right: left >= right,
        "LessThan": lambda left, right: left < right,
        "LessThanOrEqualTo": lambda left, right: left <= right,
    }
    compare = comparisons.get(operator)
    if compare is None:
        raise ValueError(f"Unsupported operator: {operator}")
    if value is None or not values:
        return False
    return compare(_sort_key(value), _sort_key(values[0]))


class InMemoryRecordService(RecordService):
    """Record service backed by process-local dictionaries.

    Parameters
    - required_fields: Per-table remote column names that must be non-empty
      on create; violations produce field-level errors like the remote
      service's validation does
    - owner_id: Value stamped into ``CreatedBy`` / ``ModifiedBy``
    """

    def __init__(
        self,
        required_fields: Optional[Mapping[str, Sequence[str]]] = None,
        owner_id: Optional[int] = None,
    ):
        self.required_fields = {table: tuple(columns) for table, columns in (required_fields or {}).items()}
        self.owner_id = owner_id
        self._tables: Dict[str, Dict[int, Dict[str, Any]]] = {}
        self._ids = itertools.count(1)
        self._last_stamp: Optional[datetime] = None
        self._lock = asyncio.Lock()

    def _table(self, table: str) -> Dict[int, Dict[str, Any]]:
        return self._tables.setdefault(table, {})

    def _now(self) -> str:
        # Strictly increasing so newest-first ordering never ties
        now = datetime.now(timezone.utc)
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = now
        return now.isoformat(timespec="microseconds")

    @staticmethod
    def _project(row: Mapping[str, Any], fields: Optional[Iterable[Mapping[str, Any]]]) -> Dict[str, Any]:
        if not fields:
            return copy.deepcopy(dict(row))
        names = {"Id"}
        for entry in fields:
            name = (entry.get("field") or {}).get("Name")
            if name:
                names.add(name)
        return {name: copy.deepcopy(row[name]) for name in names if name in row}

    def _field_errors(self, table: str, record: Mapping[str, Any]) -> List[Dict[str, str]]:
        errors = []
        for column in self.required_fields.get(table, ()):
            value = record.get(column)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors.append({"fieldLabel": column, "message": "This field is required"})
        return errors

    async def fetch_records(self, table: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Filter, order and page rows of ``table``."""
        async with self._lock:
            rows = list(self._table(table).values())

        try:
            for condition in params.get("where") or []:
                rows = [row for row in rows if _matches(row, condition)]
        except ValueError as e:
            return {"success": False, "data": None, "message": str(e)}

        # Id as a tiebreaker keeps rows created in the same instant in creation order
        rows.sort(key=lambda row: row["Id"])
        for order in reversed(params.get("orderBy") or []):
            descending = str(order.get("sorttype", "ASC")).upper() == "DESC"
            rows.sort(key=lambda row: _sort_key(row.get(order.get("fieldName"))), reverse=descending)

        paging = params.get("pagingInfo") or {}
        offset = int(paging.get("offset", 0) or 0)
        limit = paging.get("limit")
        rows = rows[offset:offset + int(limit)] if limit is not None else rows[offset:]

        data = [self._project(row, params.get("fields")) for row in rows]
        return {"success": True, "data": data, "message": ""}

    async def get_record_by_id(
        self,
        table: str,
        record_id: int,
        params: Dict[str, Any]
    ) -> Dict[str, Any]:
        async with self._lock:
            row = self._table(table).get(record_id)
        if row is None:
            return {"success": False, "data": None, "message": _not_found_message(table, record_id)}
        return {"success": True, "data": self._project(row, params.get("fields")), "message": ""}

    async def create_record(self, table: str, params: Dict[str, Any]) -> Dict[str, Any]:
        records = params.get("records")
        if not isinstance(records, list) or not records:
            return {"success": False, "results": None, "message": "No records supplied"}

        results = []
        async with self._lock:
            rows = self._table(table)
            for record in records:
                errors = self._field_errors(table, record)
                if errors:
                    results.append({"success": False, "errors": errors, "message": "Validation failed"})
                    continue

                now = self._now()
                row = {key: copy.deepcopy(value) for key, value in record.items() if key not in SYSTEM_FIELDS}
                row["Id"] = next(self._ids)
                row.update({"CreatedOn": now, "ModifiedOn": now, "CreatedBy": self.owner_id, "ModifiedBy": self.owner_id})
                rows[row["Id"]] = row
                results.append({"success": True, "data": copy.deepcopy(row)})

        logger.debug("Created records", table=table, count=sum(1 for r in results if r["success"]))
        return {"success": True, "results": results, "message": ""}

    async def update_record(self, table: str, params: Dict[str, Any]) -> Dict[str, Any]:
        records = params.get("records")
        if not isinstance(records, list) or not records:
            return {"success": False, "results": None, "message": "No records supplied"}

        results = []
        async with self._lock:
            rows = self._table(table)
            for record in records:
                record_id = record.get("Id")
                row = rows.get(record_id)
                if row is None:
                    results.append({"success": False, "message": _not_found_message(table, record_id)})
                    continue

                candidate = dict(row)
                candidate.update(
                    {key: copy.deepcopy(value) for key, value in record.items() if key not in SYSTEM_FIELDS}
                )
                # Only columns present in the update are validated
                errors = [
                    error for error in self._field_errors(table, candidate)
                    if error["fieldLabel"] in record
                ]
                if errors:
                    results.append({"success": False, "errors": errors, "message": "Validation failed"})
                    continue

                candidate["Id"] = record_id
                candidate["ModifiedOn"] = self._now()
                candidate["ModifiedBy"] = self.owner_id
                rows[record_id] = candidate
                results.append({"success": True, "data": copy.deepcopy(candidate)})

        return {"success": True, "results": results, "message": ""}

    async def delete_record(self, table: str, params: Dict[str, Any]) -> Dict[str, Any]:
        record_ids = params.get("RecordIds")
        if not isinstance(record_ids, list) or not record_ids:
            return {"success": False, "results": None, "message": "No record ids supplied"}

        results = []
        async with self._lock:
            rows = self._table(table)
            for record_id in record_ids:
                if rows.pop(record_id, None) is None:
                    results.append({"success": False, "message": _not_found_message(table, record_id)})
                else:
                    results.append({"success": True, "data": {"Id": record_id}})

        return {"success": True, "results": results, "message": ""}

    async def health_check(self) -> bool:
        return True
