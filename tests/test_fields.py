"""Tests for field tables, coercion, and payload building."""

from datetime import datetime, timezone

import pytest

from bizrecords.repository.entities import (
    CLIENT_SCHEMA,
    CUSTOMER_SCHEMA,
    HOBBY_SCHEMA,
    PROJECT_SCHEMA,
    TASK_SCHEMA,
)
from bizrecords.repository.fields import (
    EntitySchema,
    FieldKind,
    FieldSpec,
    coerce_choice,
    coerce_integer,
    coerce_number,
    coerce_tags,
    parse_record_id,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("value, expected", [
    (7, 7),
    ("42", 42),
    (" 9 ", 9),
    (3.0, 3),
    (0, None),
    (-4, None),
    ("abc", None),
    ("", None),
    (None, None),
    (True, None),
    (2.5, None),
    ("\u00b2", None),
    ("1\u00b2", None),
])
def test_parse_record_id(value, expected):
    """Ids must coerce to positive integers."""
    assert parse_record_id(value) == expected


def test_number_coercion():
    """Numeric text becomes a float; empty or junk input takes the default."""
    assert coerce_number("1234.50") == 1234.5
    assert coerce_number(" 12 ") == 12.0
    assert coerce_number("", default=0) == 0
    assert coerce_number("", default=None) is None
    assert coerce_number("twelve", default=0) == 0
    assert coerce_number("nan", default=None) is None
    assert coerce_number(False, default=0) == 0
    assert coerce_number(10 ** 400, default=0) == 0
    assert coerce_number("1e400", default=None) is None


def test_integer_coercion():
    assert coerce_integer("8") == 8
    assert coerce_integer("7.9") == 7
    assert coerce_integer("", default=0) == 0
    assert coerce_integer("x", default=None) is None


def test_choice_coercion():
    """Choices match case-insensitively and unknown values fall back to the default."""
    assert coerce_choice("female", ("Male", "Female"), "") == "Female"
    assert coerce_choice("robot", ("Male", "Female"), "") == ""
    assert coerce_choice(None, ("low", "medium", "high"), "medium") == "medium"
    assert coerce_choice("", ("low", "medium", "high"), "medium") == "medium"


def test_tags_coercion():
    assert coerce_tags(["Chess", " Hiking ", ""]) == "Chess, Hiking"
    assert coerce_tags("Reading") == "Reading"
    assert coerce_tags(None) == ""


def test_create_payload_fills_every_writable_field():
    """Create sends defaults for omitted fields and derives the display name."""
    payload = CUSTOMER_SCHEMA.build_create_payload(
        {"first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com"},
        now=NOW,
    )

    assert payload == {
        "Name": "Ada Lovelace",
        "Tags": "",
        "Owner": None,
        "firstName_c": "Ada",
        "lastName_c": "Lovelace",
        "email_c": "ada@example.com",
        "phone_c": "",
        "address_c": "",
        "income_c": None,
        "gender_c": "",
        "website_c": "",
        "customerRating_c": None,
    }
    assert "Id" not in payload
    assert "CreatedOn" not in payload


def test_create_payload_coerces_form_text():
    payload = CLIENT_SCHEMA.build_create_payload(
        {"name": "Acme", "income": "1234.50", "rating": "", "owner": "3"},
        now=NOW,
    )
    assert payload["income_c"] == 1234.5
    assert payload["customerrating_c"] == 0
    assert payload["Owner"] == 3


def test_create_payload_accepts_remote_names_and_aliases():
    payload = HOBBY_SCHEMA.build_create_payload(
        {"customerId_c": "5", "hobbies": ["Chess", "Sailing"]},
        now=NOW,
    )
    assert payload["customerId_c"] == 5
    assert payload["hobbyName_c"] == "Chess, Sailing"
    assert payload["Name"] == "Chess, Sailing"


def test_create_payload_stamps_timestamps():
    """Auto timestamps ignore caller input."""
    payload = TASK_SCHEMA.build_create_payload(
        {"title": "Write report", "created_at": "1999-01-01"},
        now=NOW,
    )
    assert payload["createdAt_c"] == NOW.isoformat()
    assert payload["updatedAt_c"] == NOW.isoformat()
    assert payload["priority_c"] == "medium"
    assert payload["status_c"] == "todo"
    assert payload["projectId_c"] is None
    assert payload["Name"] == "Write report"


def test_update_payload_only_carries_supplied_fields():
    """Omitted fields never appear in an update, not even as None."""
    payload = CUSTOMER_SCHEMA.build_update_payload(12, {"email": "new@example.com"}, now=NOW)
    assert payload == {"Id": 12, "email_c": "new@example.com"}


def test_update_payload_derives_name_only_from_complete_sources():
    partial = CUSTOMER_SCHEMA.build_update_payload(1, {"first_name": "Grace"}, now=NOW)
    assert "Name" not in partial

    complete = CUSTOMER_SCHEMA.build_update_payload(
        1, {"first_name": "Grace", "last_name": "Hopper"}, now=NOW
    )
    assert complete["Name"] == "Grace Hopper"


def test_update_payload_coerces_empty_numbers_to_defaults():
    client = CLIENT_SCHEMA.build_update_payload(4, {"income": ""}, now=NOW)
    assert client == {"Id": 4, "income_c": 0.0}

    customer = CUSTOMER_SCHEMA.build_update_payload(4, {"income": "", "rating": "9"}, now=NOW)
    assert customer == {"Id": 4, "income_c": None, "customerRating_c": 9}


def test_update_payload_refreshes_auto_now_only():
    payload = TASK_SCHEMA.build_update_payload(3, {"status": "done"}, now=NOW)
    assert payload == {"Id": 3, "status_c": "done", "updatedAt_c": NOW.isoformat()}

    project = PROJECT_SCHEMA.build_update_payload(3, {"color": "#FF0000"}, now=NOW)
    assert project == {"Id": 3, "color_c": "#FF0000"}


def test_missing_required_fields():
    assert CUSTOMER_SCHEMA.missing_required({"first_name": "Ada"}) == {
        "last_name": "last_name is required",
        "email": "email is required",
    }
    assert PROJECT_SCHEMA.missing_required({"name": "  "}) == {"name": "name is required"}
    assert HOBBY_SCHEMA.missing_required({"customer_id": "abc", "hobby_name": "Chess"}) == {
        "customer_id": "customer_id is required",
    }


def test_missing_required_on_partial_input():
    """Updates may omit required fields but not blank them."""
    assert TASK_SCHEMA.missing_required({"status": "done"}, partial=True) == {}
    assert TASK_SCHEMA.missing_required({"title": " "}, partial=True) == {"title": "title is required"}
    assert CUSTOMER_SCHEMA.missing_required({"email_c": ""}, partial=True) == {"email": "email is required"}


def test_to_record_uses_logical_names():
    record = CUSTOMER_SCHEMA.to_record({
        "Id": 9,
        "firstName_c": "Ada",
        "customerRating_c": 8,
        "CreatedOn": "2026-10-19T12:00:00+00:00",
        "Unrelated": "ignored",
    })
    assert record == {
        "id": 9,
        "first_name": "Ada",
        "rating": 8,
        "created_on": "2026-10-19T12:00:00+00:00",
    }


def test_unknown_keys():
    assert PROJECT_SCHEMA.unknown_keys({"name": "x", "colour": "red", "Id": 1}) == ["colour"]


def test_schema_rejects_bad_parent_field():
    with pytest.raises(ValueError):
        EntitySchema(
            entity="widget",
            table="widget_c",
            parent_field="name",
            fields=(FieldSpec("name", "Name"),),
        )


def test_schema_get_field_by_remote_name():
    assert TASK_SCHEMA.get_field("projectId_c").name == "project_id"
    assert TASK_SCHEMA.get_field("project_id").kind is FieldKind.REFERENCE
    with pytest.raises(KeyError):
        TASK_SCHEMA.get_field("nope")
