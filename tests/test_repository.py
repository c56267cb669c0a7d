"""Tests for the generic entity repository against the in-memory service."""

from typing import Any, Dict

import pytest

from bizrecords.common.metrics import MetricsCollector
from bizrecords.repository.adapter import Filter, Operator, Ordering
from bizrecords.repository.base import (
    InvalidArgumentError,
    RecordNotFoundError,
    RemoteUnavailableError,
    ValidationFailedError,
)
from bizrecords.repository.entities import (
    ClientRepository,
    CustomerRepository,
    ProjectRepository,
)
from bizrecords.repository.memory import InMemoryRecordService


class FailingRecordService(InMemoryRecordService):
    """In-memory service whose chosen operations answer with failure envelopes."""

    def __init__(self, fail: Dict[str, Dict[str, Any]], **kwargs: Any):
        super().__init__(**kwargs)
        self.fail = fail

    async def fetch_records(self, table, params):
        if "fetch" in self.fail:
            return self.fail["fetch"]
        return await super().fetch_records(table, params)

    async def get_record_by_id(self, table, record_id, params):
        if "get" in self.fail:
            return self.fail["get"]
        return await super().get_record_by_id(table, record_id, params)

    async def create_record(self, table, params):
        if "create" in self.fail:
            return self.fail["create"]
        return await super().create_record(table, params)

    async def delete_record(self, table, params):
        if "delete" in self.fail:
            return self.fail["delete"]
        return await super().delete_record(table, params)


class RaisingRecordService(InMemoryRecordService):
    """In-memory service whose reads fail at the transport level."""

    async def fetch_records(self, table, params):
        raise RemoteUnavailableError("connection refused")


class RecordingRecordService(InMemoryRecordService):
    """In-memory service that remembers the params of every write."""

    def __init__(self, **kwargs: Any):
        super().__init__(**kwargs)
        self.calls = []

    async def fetch_records(self, table, params):
        self.calls.append(("fetch", table, params))
        return await super().fetch_records(table, params)

    async def create_record(self, table, params):
        self.calls.append(("create", table, params))
        return await super().create_record(table, params)

    async def update_record(self, table, params):
        self.calls.append(("update", table, params))
        return await super().update_record(table, params)


class TestEntityRepository:
    """CRUD contract shared by every entity."""

    @pytest.fixture
    def service(self):
        return RecordingRecordService()

    @pytest.fixture
    def customers(self, service):
        return CustomerRepository(service)

    @pytest.mark.asyncio
    async def test_create_returns_record_with_defaults(self, customers):
        """A created customer gets a fresh id and defaults for omitted fields."""
        customer = await customers.create({
            "first_name": "Ada",
            "last_name": "Lovelace",
            "email": "ada@example.com",
        })

        assert isinstance(customer["id"], int) and customer["id"] > 0
        assert customer["first_name"] == "Ada"
        assert customer["last_name"] == "Lovelace"
        assert customer["email"] == "ada@example.com"
        assert customer["name"] == "Ada Lovelace"
        assert customer["income"] is None
        assert customer["rating"] is None
        assert customer["phone"] == ""

    @pytest.mark.asyncio
    async def test_create_then_get_round_trips(self, customers):
        created = await customers.create({
            "first_name": "Grace",
            "last_name": "Hopper",
            "email": "grace@example.com",
            "income": "1234.50",
            "rating": "9",
        })

        fetched = await customers.get_by_id(created["id"])

        assert fetched == created
        assert fetched["income"] == 1234.5
        assert fetched["rating"] == 9

    @pytest.mark.asyncio
    async def test_create_sends_one_record_without_id(self, customers, service):
        await customers.create({"first_name": "A", "last_name": "B", "email": "a@b.c", "id": 99})

        operation, table, params = service.calls[-1]
        assert operation == "create"
        assert table == "customer_c"
        assert len(params["records"]) == 1
        assert "Id" not in params["records"][0]

    @pytest.mark.asyncio
    async def test_create_missing_required_fields_fails_before_sending(self, customers, service):
        with pytest.raises(ValidationFailedError) as exc_info:
            await customers.create({"first_name": "Ada"})

        assert set(exc_info.value.field_errors) == {"last_name", "email"}
        assert exc_info.value.kind == "ValidationFailed"
        assert service.calls == []

    @pytest.mark.asyncio
    async def test_create_remote_field_errors_raise_validation_failed(self):
        service = InMemoryRecordService(required_fields={"project_c": ["color_c"]})
        projects = ProjectRepository(service)

        with pytest.raises(ValidationFailedError) as exc_info:
            await projects.create({"name": "Apollo", "color": ""})

        assert exc_info.value.field_errors == {"color_c": "This field is required"}
        assert "color_c: This field is required" in exc_info.value.message
        assert await projects.list() == []

    @pytest.mark.asyncio
    async def test_create_unsuccessful_envelope_raises_remote_unavailable(self):
        service = FailingRecordService({"create": {"success": False, "message": "Quota exceeded"}})
        projects = ProjectRepository(service)

        with pytest.raises(RemoteUnavailableError) as exc_info:
            await projects.create({"name": "Apollo"})

        assert exc_info.value.remote_message == "Quota exceeded"

    @pytest.mark.asyncio
    async def test_create_failed_result_without_detail_is_validation_failure(self):
        service = FailingRecordService({"create": {
            "success": True,
            "results": [{"success": False, "message": "Duplicate value for Name"}],
        }})
        projects = ProjectRepository(service)

        with pytest.raises(ValidationFailedError) as exc_info:
            await projects.create({"name": "Apollo"})

        assert exc_info.value.field_errors == {}
        assert exc_info.value.message == "Duplicate value for Name"

    @pytest.mark.asyncio
    async def test_update_changes_only_named_fields(self, customers, service):
        created = await customers.create({
            "first_name": "Ada",
            "last_name": "Lovelace",
            "email": "ada@example.com",
            "phone": "555-0100",
            "income": 5000,
        })

        updated = await customers.update(created["id"], {"email": "countess@example.com"})

        operation, _, params = service.calls[-1]
        assert operation == "update"
        assert params["records"] == [{"Id": created["id"], "email_c": "countess@example.com"}]

        assert updated["email"] == "countess@example.com"
        for name in ("first_name", "last_name", "phone", "income", "name", "rating"):
            assert updated[name] == created[name]

        fetched = await customers.get_by_id(str(created["id"]))
        assert fetched["email"] == "countess@example.com"
        assert fetched["phone"] == "555-0100"

    @pytest.mark.asyncio
    async def test_update_missing_record_raises_not_found(self, customers):
        with pytest.raises(RecordNotFoundError) as exc_info:
            await customers.update(404, {"email": "x@example.com"})

        assert "does not exist" in exc_info.value.remote_message

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", [None, "", "abc", 0, -1, "1.5", "\u00b2"])
    async def test_invalid_ids_are_rejected(self, customers, bad_id):
        with pytest.raises(InvalidArgumentError):
            await customers.get_by_id(bad_id)
        with pytest.raises(InvalidArgumentError):
            await customers.update(bad_id, {"email": "x@example.com"})
        with pytest.raises(InvalidArgumentError):
            await customers.delete(bad_id)

    @pytest.mark.asyncio
    async def test_delete_then_get_reports_absent(self, customers):
        created = await customers.create({"first_name": "A", "last_name": "B", "email": "a@b.c"})

        assert await customers.delete(created["id"]) is True
        assert await customers.get_by_id(created["id"]) is None
        assert await customers.delete(created["id"]) is False

    @pytest.mark.asyncio
    async def test_delete_failure_raises(self):
        service = FailingRecordService({"delete": {
            "success": True,
            "results": [{"success": False, "message": "Permission denied"}],
        }})
        clients = ClientRepository(service)

        with pytest.raises(RemoteUnavailableError) as exc_info:
            await clients.delete(1)

        assert exc_info.value.remote_message == "Permission denied"

    @pytest.mark.asyncio
    async def test_delete_not_found_envelope_is_false(self):
        service = FailingRecordService({"delete": {"success": False, "message": "Record does not exist"}})
        clients = ClientRepository(service)

        assert await clients.delete(5) is False

    @pytest.mark.asyncio
    async def test_delete_malformed_results_raise(self):
        service = FailingRecordService({"delete": {"success": True, "results": ["deleted"]}})
        clients = ClientRepository(service)

        with pytest.raises(RemoteUnavailableError):
            await clients.delete(5)

    @pytest.mark.asyncio
    async def test_create_malformed_results_raise(self):
        service = FailingRecordService({"create": {"success": True, "results": [None]}})
        projects = ProjectRepository(service)

        with pytest.raises(RemoteUnavailableError):
            await projects.create({"name": "Apollo"})

    @pytest.mark.asyncio
    async def test_update_cannot_blank_required_field(self, customers, service):
        created = await customers.create({"first_name": "Ada", "last_name": "L", "email": "ada@x.io"})
        calls_before = len(service.calls)

        with pytest.raises(ValidationFailedError) as exc_info:
            await customers.update(created["id"], {"first_name": "  ", "phone": "555"})

        assert exc_info.value.field_errors == {"first_name": "first_name is required"}
        assert len(service.calls) == calls_before
        assert (await customers.get_by_id(created["id"]))["name"] == "Ada L"

    @pytest.mark.asyncio
    async def test_get_remote_failure_raises(self):
        service = FailingRecordService({"get": {"success": False, "message": "Unauthorized"}})
        clients = ClientRepository(service)

        with pytest.raises(RemoteUnavailableError) as exc_info:
            await clients.get_by_id(1)

        assert exc_info.value.remote_message == "Unauthorized"

    @pytest.mark.asyncio
    async def test_list_is_newest_first_and_bounded(self, service):
        clients = ClientRepository(service)
        for index in range(55):
            await clients.create({"name": f"Client {index}"})

        listed = await clients.list()

        assert len(listed) == 50
        assert listed[0]["name"] == "Client 54"
        assert listed[-1]["name"] == "Client 5"

        _, table, params = service.calls[-1]
        assert table == "client_c"
        assert params["orderBy"] == [{"fieldName": "CreatedOn", "sorttype": "DESC"}]
        assert params["pagingInfo"] == {"limit": 50, "offset": 0}

    @pytest.mark.asyncio
    async def test_list_filters_and_ordering(self, customers):
        for first, income in (("Ada", "100"), ("Grace", "300"), ("Alan", "200")):
            await customers.create({"first_name": first, "last_name": "X", "email": f"{first}@x.io", "income": income})

        rich = await customers.list(
            filters=[Filter("income", Operator.GREATER_THAN, [150])],
            order_by=[Ordering("income", descending=False)],
        )
        assert [c["first_name"] for c in rich] == ["Alan", "Grace"]

        named = await customers.list(filters=[Filter("first_name", "EqualTo", ["Ada"])])
        assert [c["first_name"] for c in named] == ["Ada"]

    @pytest.mark.asyncio
    async def test_list_filters_coerce_numeric_text(self, service):
        customers = CustomerRepository(service)
        clients = ClientRepository(service)
        for first, income in (("Ada", "100"), ("Grace", "300")):
            await customers.create({"first_name": first, "last_name": "X", "email": f"{first}@x.io", "income": income})
        await clients.create({"name": "Acme", "rating": "7"})

        rich = await customers.list(filters=[Filter("income", Operator.GREATER_THAN, ["150"])])

        assert [c["first_name"] for c in rich] == ["Grace"]
        _, _, params = service.calls[-1]
        assert params["where"] == [{"FieldName": "income_c", "Operator": "GreaterThan", "Values": [150.0]}]

        rated = await clients.list(filters=[Filter("rating", "EqualTo", ["7"])])
        assert [c["name"] for c in rated] == ["Acme"]

    @pytest.mark.asyncio
    async def test_list_filter_rejects_non_numeric_text(self, customers):
        with pytest.raises(InvalidArgumentError):
            await customers.list(filters=[Filter("income", Operator.GREATER_THAN, ["lots"])])

    @pytest.mark.asyncio
    async def test_list_unknown_field_is_invalid(self, customers):
        with pytest.raises(InvalidArgumentError):
            await customers.list(filters=[Filter("shoe_size", "EqualTo", [42])])
        with pytest.raises(InvalidArgumentError):
            await customers.list(order_by=[Ordering("shoe_size")])

    @pytest.mark.asyncio
    async def test_list_empty_is_success(self, customers):
        assert await customers.list() == []

    @pytest.mark.asyncio
    async def test_list_degrades_to_empty_on_failure(self):
        failing = CustomerRepository(FailingRecordService({"fetch": {"success": False, "message": "Boom"}}))
        assert await failing.list() == []

        raising = CustomerRepository(RaisingRecordService())
        assert await raising.list() == []

    @pytest.mark.asyncio
    async def test_metrics_record_remote_calls(self):
        metrics = MetricsCollector("test")
        projects = ProjectRepository(InMemoryRecordService(), metrics=metrics)

        await projects.create({"name": "Apollo"})
        await projects.get_by_id(999)

        exposition = metrics.get_metrics()
        assert 'records_remote_operations_total{operation="create",status="success",table="project_c"} 1.0' in exposition
        assert 'records_remote_operations_total{operation="get",status="failure",table="project_c"} 1.0' in exposition
