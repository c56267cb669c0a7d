"""Declarative field tables for record entities.

Each entity is described by one ``EntitySchema``: the remote table it lives
in, its page size, and a tuple of ``FieldSpec`` rows mapping a logical field
name onto the remote column with a semantic kind and a default.

The schema owns the two payload rules every repository shares:

- create sends every writable field, filling defaults for absent ones
- update sends ``Id`` plus only the fields the caller supplied

Both paths run each outgoing value through ``FieldSpec.coerce`` so form text
such as ``"1234.50"`` leaves as ``1234.5`` and never as a string.
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

_MISSING = object()


class FieldKind(Enum):
    """Semantic types a field can declare."""
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    CHOICE = "choice"
    URL = "url"
    DATETIME = "datetime"
    REFERENCE = "reference"
    TAGS = "tags"


def parse_record_id(value: Any) -> Optional[int]:
    """Return ``value`` as a positive integer id, or ``None`` if it is not one.

    Accepts ints, integral floats and digit strings (surrounding whitespace
    allowed). Booleans are rejected even though they are ints.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float):
        if value.is_integer() and value > 0:
            return int(value)
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.isdecimal():
            number = int(text)
            return number if number > 0 else None
    return None


def coerce_string(value: Any, default: Any = "") -> Any:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip()
    return str(value)


def coerce_number(value: Any, default: Any = None) -> Any:
    """Coerce form input to ``float``; empty or unparsable input yields ``default``."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return default
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            return default
    else:
        return default
    if not math.isfinite(number):
        return default
    return number


def coerce_integer(value: Any, default: Any = None) -> Any:
    number = coerce_number(value, _MISSING)
    if number is _MISSING:
        return default
    return int(number)


def coerce_choice(value: Any, choices: Sequence[str], default: Any = "") -> Any:
    """Match ``value`` against ``choices`` case-insensitively.

    Values outside the declared choices fall back to ``default``.
    """
    text = coerce_string(value, default)
    if not choices or text == default:
        return text
    for choice in choices:
        if choice.lower() == str(text).lower():
            return choice
    return default


def coerce_tags(value: Any, default: Any = "") -> Any:
    """Join a list of labels into the comma-separated form the remote side stores."""
    if isinstance(value, (list, tuple, set)):
        labels = [coerce_string(item) for item in value]
        return ", ".join(label for label in labels if label)
    return coerce_string(value, default)


def coerce_datetime(value: Any, default: Any = None) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = coerce_string(value, default)
    return text if text else default


@dataclass(frozen=True)
class FieldSpec:
    """One row of an entity's field table.

    Parameters
    - name: Logical name used by callers and in returned records
    - remote_name: Column name on the remote table
    - kind: Semantic type selecting the coercion
    - default: Value sent on create when the caller omits the field
    - required: Create fails locally when the coerced value is empty
    - choices: Allowed values for ``FieldKind.CHOICE``
    - aliases: Extra input keys accepted for this field
    - read_only: Fetched and returned, never sent
    - auto_now_add / auto_now: Stamped with the current time on create /
      on create and every update; caller values are ignored
    - references: Entity name a ``REFERENCE`` field points at
    """
    name: str
    remote_name: str
    kind: FieldKind = FieldKind.STRING
    default: Any = ""
    required: bool = False
    choices: Tuple[str, ...] = ()
    aliases: Tuple[str, ...] = ()
    read_only: bool = False
    auto_now_add: bool = False
    auto_now: bool = False
    references: Optional[str] = None

    @property
    def writable(self) -> bool:
        return not (self.read_only or self.auto_now_add or self.auto_now)

    @property
    def input_keys(self) -> Tuple[str, ...]:
        """Keys looked up in caller input, in precedence order."""
        return (self.name,) + tuple(self.aliases) + (self.remote_name,)

    def coerce(self, value: Any) -> Any:
        if self.kind in (FieldKind.STRING, FieldKind.URL):
            return coerce_string(value, self.default)
        if self.kind is FieldKind.NUMBER:
            return coerce_number(value, self.default)
        if self.kind is FieldKind.INTEGER:
            return coerce_integer(value, self.default)
        if self.kind is FieldKind.CHOICE:
            return coerce_choice(value, self.choices, self.default)
        if self.kind is FieldKind.REFERENCE:
            record_id = parse_record_id(value)
            return record_id if record_id is not None else self.default
        if self.kind is FieldKind.TAGS:
            return coerce_tags(value, self.default)
        if self.kind is FieldKind.DATETIME:
            return coerce_datetime(value, self.default)
        raise ValueError(f"Unsupported field kind: {self.kind}")


# Remote bookkeeping columns exposed read-only on every entity.
CREATED_ON = FieldSpec("created_on", "CreatedOn", FieldKind.DATETIME, default=None, read_only=True)
MODIFIED_ON = FieldSpec("modified_on", "ModifiedOn", FieldKind.DATETIME, default=None, read_only=True)
CREATED_BY = FieldSpec("created_by", "CreatedBy", FieldKind.REFERENCE, default=None, read_only=True)
MODIFIED_BY = FieldSpec("modified_by", "ModifiedBy", FieldKind.REFERENCE, default=None, read_only=True)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass(frozen=True)
class EntitySchema:
    """Declarative description of one entity and its remote table.

    Parameters
    - entity: Singular entity name (``customer``)
    - table: Remote table name (``customer_c``)
    - fields: Field table; must contain a ``name`` field mapped to ``Name``
      when ``name_from`` is used
    - page_size: Fixed ``pagingInfo.limit`` for list requests
    - name_from: Logical fields joined with a space to derive ``name`` when
      the caller does not supply one
    - parent_field: Logical ``REFERENCE`` field used by cascade deletes
    - default_order_field: Remote column list requests sort on by default
    """
    entity: str
    table: str
    fields: Tuple[FieldSpec, ...]
    page_size: int = 100
    name_from: Tuple[str, ...] = ()
    parent_field: Optional[str] = None
    default_order_field: str = "CreatedOn"
    _by_name: Dict[str, FieldSpec] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        by_name = {spec.name: spec for spec in self.fields}
        if len(by_name) != len(self.fields):
            raise ValueError(f"Duplicate field names in schema for {self.entity}")
        if self.name_from and "name" not in by_name:
            raise ValueError(f"Schema for {self.entity} derives 'name' but declares no name field")
        for source in self.name_from:
            if source not in by_name:
                raise ValueError(f"name_from refers to unknown field {source!r}")
        if self.parent_field is not None:
            parent = by_name.get(self.parent_field)
            if parent is None or parent.kind is not FieldKind.REFERENCE:
                raise ValueError(f"parent_field {self.parent_field!r} must be a reference field")
        object.__setattr__(self, "_by_name", by_name)

    def get_field(self, name: str) -> FieldSpec:
        """Look up a field by logical name (or remote name)."""
        spec = self._by_name.get(name)
        if spec is not None:
            return spec
        for candidate in self.fields:
            if candidate.remote_name == name:
                return candidate
        raise KeyError(name)

    @property
    def remote_field_names(self) -> List[str]:
        return [spec.remote_name for spec in self.fields]

    def fetch_fields(self) -> List[Dict[str, Any]]:
        """The ``fields`` projection sent with every read."""
        return [{"field": {"Name": remote}} for remote in self.remote_field_names]

    def _supplied(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        """Pick the caller's raw values for writable fields, keyed by logical name."""
        supplied = {}
        for spec in self.fields:
            if not spec.writable:
                continue
            for key in spec.input_keys:
                if key in values:
                    supplied[spec.name] = values[key]
                    break
        return supplied

    def unknown_keys(self, values: Mapping[str, Any]) -> List[str]:
        known = {"id", "Id"}
        for spec in self.fields:
            known.update(spec.input_keys)
        return sorted(key for key in values if key not in known)

    def _derived_name(self, coerced: Mapping[str, Any]) -> str:
        parts = [str(coerced[source]) for source in self.name_from if not _is_empty(coerced.get(source))]
        return " ".join(parts).strip()

    def missing_required(self, values: Mapping[str, Any], partial: bool = False) -> Dict[str, str]:
        """Required fields that would be empty after coercion.

        With ``partial`` (updates) only the required fields present in
        ``values`` are checked, so an update can omit them but not blank them.
        """
        supplied = self._supplied(values)
        missing = {}
        for spec in self.fields:
            if not spec.required or not spec.writable:
                continue
            if partial and spec.name not in supplied:
                continue
            if _is_empty(spec.coerce(supplied.get(spec.name))):
                missing[spec.name] = f"{spec.name} is required"
        return missing

    def build_create_payload(
        self,
        values: Mapping[str, Any],
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Every writable field, caller value or default, keyed by remote name."""
        now = now or _utc_now()
        supplied = self._supplied(values)
        coerced = {}
        for spec in self.fields:
            if spec.read_only:
                continue
            if spec.auto_now_add or spec.auto_now:
                coerced[spec.name] = coerce_datetime(now)
            elif spec.name in supplied:
                coerced[spec.name] = spec.coerce(supplied[spec.name])
            else:
                coerced[spec.name] = spec.default

        if self.name_from and _is_empty(coerced.get("name")):
            coerced["name"] = self._derived_name(coerced)

        return {self._by_name[name].remote_name: value for name, value in coerced.items()}

    def build_update_payload(
        self,
        record_id: int,
        values: Mapping[str, Any],
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """``Id`` plus only the supplied fields, keyed by remote name.

        ``name`` is re-derived only when every ``name_from`` source is part of
        the update, so a partial edit never overwrites it with half a value.
        """
        now = now or _utc_now()
        supplied = self._supplied(values)
        coerced = {name: self._by_name[name].coerce(raw) for name, raw in supplied.items()}

        for spec in self.fields:
            if spec.auto_now:
                coerced[spec.name] = coerce_datetime(now)

        if (
            self.name_from
            and "name" not in supplied
            and all(source in supplied for source in self.name_from)
        ):
            coerced["name"] = self._derived_name(coerced)

        payload = {"Id": record_id}
        payload.update({self._by_name[name].remote_name: value for name, value in coerced.items()})
        return payload

    def to_record(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Translate a remote row into a plain record keyed by logical names."""
        record = {"id": data.get("Id")}
        for spec in self.fields:
            if spec.remote_name in data:
                record[spec.name] = data[spec.remote_name]
        return record
