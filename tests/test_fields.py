"""
Test suite for custom fields module

Tests field type validation, range/pattern/option rules, state-dependent
editability and requiredness, and schema serialization.
"""

import pytest
from datetime import date

from governance_engine.fields import (
    FieldSchema, FieldType, FieldValidation, validate_field_values
)


class TestFieldValidation:
    """Test single-value validation per field type"""

    def test_text_pattern_and_length(self):
        email = FieldSchema(
            name="email", label="Email",
            validation=FieldValidation(pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$", max=40)
        )

        assert email.validate_value("student@example.ac.uk") == []
        assert email.validate_value("not-an-email") == ["Email format is invalid"]
        assert email.validate_value("a" * 41 + "@x.io") != []
        assert email.validate_value(42) == ["Email must be a string"]

    def test_number_range(self):
        months = FieldSchema(
            name="months", label="Months", field_type=FieldType.NUMBER,
            validation=FieldValidation(min=1, max=60)
        )

        assert months.validate_value(36) == []
        assert months.validate_value(12.5) == []
        assert months.validate_value(0) == ["Months must be at least 1"]
        assert months.validate_value(61) == ["Months must be at most 60"]
        assert months.validate_value("12") == ["Months must be a number"]
        assert months.validate_value(True) == ["Months must be a number"]

    def test_date(self):
        incident = FieldSchema(name="incident", label="Incident", field_type=FieldType.DATE)

        assert incident.validate_value("2026-02-28") == []
        assert incident.validate_value(date(2026, 2, 28)) == []
        assert incident.validate_value("28/02/2026") != []

    def test_boolean(self):
        flag = FieldSchema(name="urgent", label="Urgent", field_type=FieldType.BOOLEAN)

        assert flag.validate_value(False) == []
        assert flag.validate_value("yes") == ["Urgent must be a boolean"]

    def test_select_and_multiselect(self):
        category = FieldSchema(
            name="category", label="Category", field_type=FieldType.SELECT,
            validation=FieldValidation(options=["Academic", "Other"])
        )
        areas = FieldSchema(
            name="areas", label="Areas", field_type=FieldType.MULTISELECT,
            validation=FieldValidation(options=["finance", "estates", "ethics"], min=1, max=2)
        )

        assert category.validate_value("Academic") == []
        assert category.validate_value("Sport") != []
        assert areas.validate_value(["finance"]) == []
        assert areas.validate_value(["finance", "sport"]) != []
        assert areas.validate_value([]) == ["Areas needs at least 1 selections"]
        assert areas.validate_value(["finance", "estates", "ethics"]) == [
            "Areas allows at most 2 selections"
        ]
        assert areas.validate_value("finance") == ["Areas must be a list"]

    def test_references(self):
        officer = FieldSchema(name="officer", label="Officer", field_type=FieldType.USER)

        assert officer.validate_value("user-17") == []
        assert officer.validate_value("  ") != []

    def test_none_is_always_valid_value(self):
        months = FieldSchema(name="months", label="Months", field_type=FieldType.NUMBER,
                             validation=FieldValidation(min=1))
        assert months.validate_value(None) == []


class TestFieldStates:
    """Test state-dependent field behaviour"""

    def test_editable_everywhere_by_default(self):
        notes = FieldSchema(name="notes", label="Notes")

        assert notes.is_editable_in("draft")
        assert notes.is_visible_in("approved")

    def test_editable_in_listed_states_only(self):
        title = FieldSchema(name="title", label="Title", editable_in_states=["draft"])

        assert title.is_editable_in("draft")
        assert not title.is_editable_in("pending-review")

    def test_required_in_state(self):
        resolution = FieldSchema(name="resolution", label="Resolution",
                                 required_in_states=["resolved"])

        assert resolution.is_required_in("resolved")
        assert not resolution.is_required_in("submitted")
        assert FieldSchema(name="x", label="X", required=True).is_required_in("any")

    def test_referenced_states(self):
        schema = FieldSchema(name="x", label="X", editable_in_states=["a"],
                             visible_in_states=["b"], required_in_states=["c"])
        assert sorted(schema.referenced_states()) == ["a", "b", "c"]


class TestValidateFieldValues:
    """Test validating a full set of values"""

    @pytest.fixture
    def fields(self):
        return [
            FieldSchema(name="title", label="Title", required=True),
            FieldSchema(name="amount", label="Amount", field_type=FieldType.NUMBER,
                        validation=FieldValidation(min=0)),
            FieldSchema(name="resolution", label="Resolution", required_in_states=["closed"]),
        ]

    def test_all_errors_collected(self, fields):
        errors = validate_field_values(fields, {"amount": -5, "colour": "red"}, state_id="open")

        assert "Unknown field: colour" in errors
        assert "Required field missing: Title" in errors
        assert "Amount must be at least 0" in errors
        assert len(errors) == 3

    def test_state_requirements(self, fields):
        values = {"title": "Budget"}

        assert validate_field_values(fields, values, state_id="open") == []
        assert validate_field_values(fields, values, state_id="closed") == [
            "Required field missing: Resolution"
        ]

    def test_partial_updates_skip_required(self, fields):
        assert validate_field_values(fields, {"amount": 10}, check_required=False) == []


class TestFieldSerialization:
    """Test schema dictionaries"""

    def test_round_trip_preserves_rules(self):
        schema = FieldSchema(
            name="category", label="Category", field_type=FieldType.SELECT,
            validation=FieldValidation(options=["A", "B"]),
            editable_in_states=["draft"], default="A"
        )

        data = schema.to_dict()
        assert data["type"] == "select"

        restored = FieldSchema.from_dict(data)
        assert restored == schema

    def test_defaults_from_minimal_dict(self):
        schema = FieldSchema.from_dict({"name": "notes"})

        assert schema.label == "notes"
        assert schema.field_type == FieldType.TEXT
        assert schema.editable_in_states is None
