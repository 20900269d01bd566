"""
Tests for the error taxonomy and backend error translation.
"""

import pytest

from schema_engine.errors import (
    DuplicateError,
    EngineError,
    InvalidQueryError,
    NotFoundError,
    ReferenceViolationError,
    RequiredFieldError,
    StorageError,
    UnsupportedOperatorError,
    ValidationError,
    translate_database_error,
)
from tests.engine_test_utils import FakePostgresError


class TestErrorShape:
    def test_to_dict_drops_empty_details(self):
        error = NotFoundError("Contact with id=4 not found", entity="Contact", key="4", operation=None)
        assert error.to_dict() == {
            "error": True,
            "code": "NOT_FOUND",
            "message": "Contact with id=4 not found",
            "entity": "Contact",
            "key": "4",
        }

    def test_every_error_is_an_engine_error(self):
        for cls in (DuplicateError, ReferenceViolationError, RequiredFieldError, StorageError,
                    ValidationError, InvalidQueryError, UnsupportedOperatorError):
            assert issubclass(cls, EngineError)

    def test_validation_error_defaults_errors_map(self):
        error = ValidationError("Too short", field="name", rule="minLength")
        assert error.errors == {"name": {"rule": "minLength", "message": "Too short"}}


class TestTranslateDatabaseError:
    """Backend failures map onto typed errors by SQLSTATE."""

    def test_unique_violation(self, contact_schema):
        error = translate_database_error(
            FakePostgresError("duplicate key", sqlstate="23505", detail="Key (email)=(a@b.com) already exists."),
            contact_schema, "create",
        )
        assert isinstance(error, DuplicateError)
        assert error.message == "Duplicate entry: a Contact with this email already exists"
        assert error.details["operation"] == "create"

    def test_unique_violation_maps_column_to_field(self, contact_schema):
        error = translate_database_error(
            FakePostgresError("duplicate key", sqlstate="23505", detail="Key (company_id)=(3) already exists."),
            contact_schema, "update",
        )
        assert error.details["field"] == "companyId"

    def test_composite_key_keeps_column_list(self, contact_schema):
        error = translate_database_error(
            FakePostgresError("duplicate key", sqlstate="23505", detail="Key (name, email)=(Ann, a@b.com) already exists."),
            contact_schema, "create",
        )
        assert error.details["field"] == "name, email"

    def test_unique_violation_without_schema(self):
        error = translate_database_error(FakePostgresError("duplicate key", sqlstate="23505"))
        assert error.message == "Duplicate entry: a record with this value already exists"

    def test_foreign_key_on_insert(self, contact_schema):
        error = translate_database_error(
            FakePostgresError(
                "violates foreign key constraint",
                sqlstate="23503",
                detail='Key (company_id)=(99) is not present in table "companies".',
                constraint_name="contacts_company_id_fkey",
            ),
            contact_schema, "create",
        )
        assert isinstance(error, ReferenceViolationError)
        assert error.kind == "REFERENCE_ERROR"
        assert error.message == "Invalid reference: companyId does not exist in companies"
        assert error.details["constraint"] == "contacts_company_id_fkey"

    def test_not_null_from_message(self, contact_schema):
        error = translate_database_error(
            FakePostgresError('null value in column "email" of relation "contacts" violates not-null constraint',
                              sqlstate="23502"),
            contact_schema, "create",
        )
        assert isinstance(error, RequiredFieldError)
        assert error.details["field"] == "email"

    def test_not_null_from_column_name(self, contact_schema):
        error = translate_database_error(
            FakePostgresError("not-null violation", sqlstate="23502", column_name="company_id"),
            contact_schema, "create",
        )
        assert error.message == "Required field missing: 'companyId' cannot be null"

    def test_check_violation(self, contact_schema):
        error = translate_database_error(
            FakePostgresError('new row for relation "contacts" violates check constraint "contacts_score_check"',
                              sqlstate="23514"),
            contact_schema, "update",
        )
        assert isinstance(error, ValidationError)
        assert error.rule == "check"
        assert error.details["constraint"] == "contacts_score_check"

    def test_pgcode_attribute_is_read(self, contact_schema):
        class DbApiError(Exception):
            pgcode = "23505"

        assert isinstance(translate_database_error(DbApiError("dup"), contact_schema), DuplicateError)

    @pytest.mark.parametrize("cause", [
        FakePostgresError("canceling statement due to statement timeout", sqlstate="57014"),
        OSError("connection refused"),
        RuntimeError("pool is closed"),
    ])
    def test_everything_else_is_storage_error(self, contact_schema, cause):
        error = translate_database_error(cause, contact_schema, "find_all")
        assert isinstance(error, StorageError)
        assert error.original is cause
        assert error.details["entity"] == "Contact"
        assert str(cause) in error.message
