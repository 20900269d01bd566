"""
Tests for create/update payload validation against field constraints.
"""

import pytest

from schema_engine.errors import ValidationError
from schema_engine.schema import FieldType, SchemaRegistry, SchemaDefinition, field
from schema_engine.schema.validation import validate_payload


def _valid_contact(**overrides):
    data = {"name": "Ann", "email": "ann@example.com"}
    data.update(overrides)
    return data


class TestRequiredFields:
    def test_missing_required_field_is_named(self):
        """Contact{name, email} created with only a name fails on email."""
        reg = SchemaRegistry()
        schema = reg.define_schema(SchemaDefinition(
            entity_name="Contact",
            table_name="contacts",
            primary_key_column="id",
            form_fields={
                "name": field(FieldType.STRING, required=True),
                "email": field(FieldType.STRING, required=True),
            },
            entity_fields={"id": field(FieldType.INTEGER, read_only=True)},
        ))

        with pytest.raises(ValidationError) as exc_info:
            validate_payload(schema, {"name": "Ann"})

        assert exc_info.value.field == "email"
        assert exc_info.value.rule == "required"
        assert exc_info.value.kind == "VALIDATION_ERROR"

    def test_blank_string_counts_as_missing(self, contact_schema):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(contact_schema, _valid_contact(name="   "))
        assert exc_info.value.field == "name"
        assert exc_info.value.rule == "required"

    def test_all_failures_collected(self, contact_schema):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(contact_schema, {"status": "unknown"})

        errors = exc_info.value.errors
        assert set(errors) == {"name", "email", "status"}
        assert errors["status"]["rule"] == "enum"


class TestConstraints:
    @pytest.mark.parametrize("overrides, field_name, rule", [
        ({"name": "A"}, "name", "minLength"),
        ({"name": "A" * 51}, "name", "maxLength"),
        ({"email": "not-an-email"}, "email", "type"),
        ({"phone": "call me"}, "phone", "pattern"),
        ({"status": "deleted"}, "status", "enum"),
        ({"score": -1}, "score", "min"),
        ({"score": 101}, "score", "max"),
        ({"score": "high"}, "score", "type"),
        ({"companyId": 1.5}, "companyId", "type"),
        ({"companyId": True}, "companyId", "type"),
        ({"tags": "vip"}, "tags", "type"),
        ({"birthday": "March 3rd"}, "birthday", "type"),
    ])
    def test_violation_reports_field_and_rule(self, contact_schema, overrides, field_name, rule):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(contact_schema, _valid_contact(**overrides))
        assert exc_info.value.field == field_name
        assert exc_info.value.rule == rule

    def test_valid_payload_passes(self, contact_schema):
        validate_payload(contact_schema, _valid_contact(
            phone="+1 (555) 010-9999", status="pending", score=42.5, companyId=3,
            tags=["vip"], birthday="1990-03-03",
        ))

    def test_optional_none_is_accepted(self, contact_schema):
        validate_payload(contact_schema, _valid_contact(phone=None, score=None))

    def test_read_only_and_unknown_keys_are_ignored(self, contact_schema):
        validate_payload(contact_schema, _valid_contact(id="not-an-int", label=123, bogus=object()))


class TestCustomValidators:
    def test_field_validator(self):
        def no_free_mail(value, data):
            if value.endswith("@freemail.test"):
                return "Use a work address"
            return None

        schema = SchemaRegistry().define_schema(SchemaDefinition(
            entity_name="Lead",
            table_name="leads",
            primary_key_column="id",
            form_fields={"email": field(FieldType.EMAIL, validate=no_free_mail)},
            entity_fields={"id": field(FieldType.INTEGER, read_only=True)},
        ))

        with pytest.raises(ValidationError) as exc_info:
            validate_payload(schema, {"email": "bob@freemail.test"})
        assert exc_info.value.rule == "custom"
        assert exc_info.value.message == "Use a work address"

    def test_entity_validator(self, contact_schema):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(contact_schema, _valid_contact(status="archived"))
        assert exc_info.value.field == "companyId"
        assert exc_info.value.rule == "custom"

    def test_entity_validator_sees_current_values_on_update(self, contact_schema):
        current = {"name": "Ann", "email": "ann@example.com", "companyId": 7}
        validate_payload(contact_schema, {"status": "archived"}, partial=True, current=current)


class TestPartialValidation:
    def test_only_present_keys_checked(self, contact_schema):
        validate_payload(contact_schema, {"status": "pending"}, partial=True)

    def test_present_required_key_cannot_be_cleared(self, contact_schema):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(contact_schema, {"email": None}, partial=True)
        assert exc_info.value.field == "email"
        assert exc_info.value.rule == "required"

    def test_error_serializes(self, contact_schema):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(contact_schema, {"name": "A"}, partial=True)

        payload = exc_info.value.to_dict()
        assert payload["error"] is True
        assert payload["code"] == "VALIDATION_ERROR"
        assert payload["field"] == "name"
        assert payload["rule"] == "minLength"
