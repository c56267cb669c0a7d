#!/usr/bin/env python3
"""Command-line admin for the business records tables.

Examples
- ``records_admin.py customer list``
- ``records_admin.py customer create --set first_name=Ada --set last_name=Lovelace``
- ``records_admin.py task update 7 --json '{"status": "done"}'``
- ``records_admin.py hobby delete-children 3``
- ``records_admin.py task activate 7``

Backend selection comes from ``RecordsConfig`` (``RECORDS_BACKEND`` etc.) and
can be overridden with ``--backend``.
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional, Sequence

from bizrecords.common.config import RecordsConfig
from bizrecords.common.logging import configure_logging, get_logger
from bizrecords.common.metrics import MetricsCollector
from bizrecords.repository.adapter import Filter, Ordering
from bizrecords.repository.base import RecordServiceError
from bizrecords.repository.entities import SCHEMAS
from bizrecords.repository.factory import create_record_service_from_env, create_repositories

logger = get_logger("records_admin")

CHILD_ENTITIES = ("hobby", "task")


def parse_assignments(assignments: Sequence[str]) -> Dict[str, Any]:
    """Turn ``key=value`` strings into a mapping; values stay text for coercion."""
    values: Dict[str, Any] = {}
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected key=value, got {assignment!r}")
        values[key.strip()] = value
    return values


def parse_filters(expressions: Sequence[str]) -> List[Filter]:
    """``field=value`` or ``field:Operator=v1,v2`` into ``Filter`` objects."""
    filters = []
    for expression in expressions:
        target, sep, raw_values = expression.partition("=")
        if not sep:
            raise ValueError(f"Expected field=value, got {expression!r}")
        field_name, _, operator = target.partition(":")
        filters.append(Filter(
            field=field_name.strip(),
            operator=operator.strip() or "EqualTo",
            values=raw_values.split(",") if raw_values else [],
        ))
    return filters


def parse_ordering(expression: Optional[str]) -> Optional[List[Ordering]]:
    if not expression:
        return None
    field_name, _, direction = expression.partition(":")
    return [Ordering(field=field_name.strip(), descending=direction.strip().lower() != "asc")]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Administer business records tables")
    parser.add_argument("--backend", choices=["http", "memory"], help="Override RECORDS_BACKEND")
    parser.add_argument("--log-format", choices=["json", "console"], help="Override RECORDS_LOG_FORMAT")
    parser.add_argument("entity", choices=sorted(SCHEMAS), help="Entity to operate on")

    actions = parser.add_subparsers(dest="action", required=True)

    list_parser = actions.add_parser("list", help="List records, newest first")
    list_parser.add_argument("--where", action="append", default=[], help="field[:Operator]=v1,v2")
    list_parser.add_argument("--order", help="field[:asc|desc]")

    get_parser = actions.add_parser("get", help="Fetch one record")
    get_parser.add_argument("id")

    for name in ("create", "update"):
        write_parser = actions.add_parser(name, help=f"{name.capitalize()} a record")
        if name == "update":
            write_parser.add_argument("id")
        write_parser.add_argument("--set", dest="assignments", action="append", default=[], help="field=value")
        write_parser.add_argument("--json", dest="json_data", help="JSON object of field values")

    delete_parser = actions.add_parser("delete", help="Delete one record")
    delete_parser.add_argument("id")

    children_parser = actions.add_parser("delete-children", help="Delete every record of a parent (hobby, task)")
    children_parser.add_argument("parent_id")

    activate_parser = actions.add_parser("activate", help="Mark a task as active")
    activate_parser.add_argument("id")

    actions.add_parser("active", help="Show the active task")

    return parser


def _field_values(args: argparse.Namespace) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    if args.json_data:
        data = json.loads(args.json_data)
        if not isinstance(data, dict):
            raise ValueError("--json must be a JSON object")
        values.update(data)
    values.update(parse_assignments(args.assignments))
    return values


async def run_command(args: argparse.Namespace, config: RecordsConfig) -> Any:
    """Execute one CLI action and return its plain result."""
    metrics = MetricsCollector("records_admin") if config.records_metrics_enabled else None

    async with create_record_service_from_env(config.to_env_config()) as service:
        repositories = create_repositories(service, metrics=metrics)
        repository = repositories.for_entity(args.entity)

        if args.action == "list":
            return await repository.list(
                filters=parse_filters(args.where) or None,
                order_by=parse_ordering(args.order),
            )
        if args.action == "get":
            return await repository.get_by_id(args.id)
        if args.action == "create":
            return await repository.create(_field_values(args))
        if args.action == "update":
            return await repository.update(args.id, _field_values(args))
        if args.action == "delete":
            return {"deleted": await repository.delete(args.id)}
        if args.action == "delete-children":
            return {"deleted_ids": await repository.delete_by_parent(args.parent_id)}
        if args.action == "activate":
            return await repository.set_active(args.id)
        if args.action == "active":
            return await repository.get_active_task()

    raise ValueError(f"Unknown action: {args.action}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main function for CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.action == "delete-children" and args.entity not in CHILD_ENTITIES:
        parser.error(f"delete-children is only available for {', '.join(CHILD_ENTITIES)}")
    if args.action in ("activate", "active") and args.entity != "task":
        parser.error(f"{args.action} is only available for task")

    overrides = {}
    if args.backend:
        overrides["records_backend"] = args.backend
    if args.log_format:
        overrides["records_log_format"] = args.log_format
    config = RecordsConfig(**overrides)

    try:
        configure_logging("records_admin", config.records_log_level, config.records_log_format)
        result = asyncio.run(run_command(args, config))
    except RecordServiceError as e:
        logger.error("Command failed", action=args.action, entity=args.entity, kind=e.kind, error=e.remote_message)
        print(f"{e.kind}: {e.message}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
