"""
Engine Testing Utilities

In-memory execution interface and sample entity schemas for exercising the
builder, resolver and repository without a database.
"""

from collections import deque
from typing import Any, Optional

from schema_engine.database import QueryResult
from schema_engine.entity import Entity
from schema_engine.schema import (
    FieldType,
    SchemaDefinition,
    SchemaRegistry,
    SoftDeleteConfig,
    belongs_to,
    field,
    has_many,
)


class FakeDatabase:
    """
    Records every executed statement and replays queued results in order.

    Usage:
        db = FakeDatabase()
        db.queue([{"id": 1, "name": "Ann"}])
        await repo.find_by_id(1)
        sql, params = db.calls[0]
    """

    def __init__(self):
        self.calls: list[tuple[str, list]] = []
        self._results: deque = deque()

    def queue(self, *row_lists: list) -> "FakeDatabase":
        for rows in row_lists:
            self._results.append(rows)
        return self

    def fail_with(self, error: BaseException) -> "FakeDatabase":
        self._results.append(error)
        return self

    async def execute(self, sql: str, params) -> QueryResult:
        self.calls.append((sql, list(params)))
        if not self._results:
            return QueryResult(rows=[], row_count=0)
        result = self._results.popleft()
        if isinstance(result, BaseException):
            raise result
        return QueryResult(rows=list(result), row_count=len(result))

    @property
    def statements(self) -> list[str]:
        return [sql for sql, _ in self.calls]


class FakePostgresError(Exception):
    """Mimics the attributes asyncpg exposes on PostgresError subclasses."""

    def __init__(self, message: str, sqlstate: Optional[str] = None, detail: Optional[str] = None,
                 constraint_name: Optional[str] = None, column_name: Optional[str] = None):
        super().__init__(message)
        self.sqlstate = sqlstate
        self.detail = detail
        self.constraint_name = constraint_name
        self.column_name = column_name


def _archived_needs_company(data: dict) -> Optional[dict]:
    if data.get("status") == "archived" and not data.get("companyId"):
        return {"companyId": "Archived contacts must belong to a company"}
    return None


def build_sample_registry() -> tuple[SchemaRegistry, dict[str, type]]:
    """
    Fresh registry with three related entities:

    Company (companies.id) 1──* Contact (contacts.id, soft delete) 1──* Note (notes.note_id)
    """
    reg = SchemaRegistry()

    class Company(Entity):
        __schema__ = SchemaDefinition(
            entity_name="Company",
            table_name="companies",
            primary_key_column="id",
            form_fields={
                "name": field(FieldType.STRING, required=True, max_length=100, label="Company name"),
                "website": field(FieldType.URL),
            },
            entity_fields={
                "id": field(FieldType.INTEGER, read_only=True),
            },
            relationships={
                "contacts": has_many("Contact", foreign_key="companyId"),
            },
            timestamps=True,
        )

    class Contact(Entity):
        __schema__ = SchemaDefinition(
            entity_name="Contact",
            table_name="contacts",
            primary_key_column="id",
            form_fields={
                "name": field(FieldType.STRING, required=True, min_length=2, max_length=50),
                "email": field(FieldType.EMAIL, required=True),
                "status": field(FieldType.STRING, default="active", enum_values=["active", "pending", "archived"]),
                "phone": field(FieldType.PHONE, pattern=r"^\+?[0-9 ()-]{7,20}$"),
                "companyId": field(FieldType.INTEGER, db_column="company_id"),
                "tags": field(FieldType.ARRAY, default=list),
                "score": field(FieldType.NUMBER, min=0, max=100),
                "birthday": field(FieldType.DATE),
            },
            entity_fields={
                "id": field(FieldType.INTEGER, read_only=True),
                "lastContactedAt": field(FieldType.DATETIME, db_column="last_contacted_at", read_only=True),
                "label": field(FieldType.STRING, expression="contacts.name || ' <' || contacts.email || '>'"),
            },
            relationships={
                "company": belongs_to("Company", local_key="companyId"),
                "notes": has_many("Note", foreign_key="contactId"),
            },
            validators=[_archived_needs_company],
            soft_delete=SoftDeleteConfig(),
            default_order=[("name", "asc")],
        )

    class Note(Entity):
        __schema__ = SchemaDefinition(
            entity_name="Note",
            table_name="notes",
            primary_key_column="note_id",
            form_fields={
                "body": field(FieldType.STRING, required=True),
                "contactId": field(FieldType.INTEGER, db_column="contact_id", required=True),
            },
            entity_fields={
                "noteId": field(FieldType.INTEGER, db_column="note_id", read_only=True),
            },
            relationships={
                "contact": belongs_to("Contact", local_key="contactId"),
            },
        )

    for entity_type in (Company, Contact, Note):
        reg.register(entity_type)

    return reg, {"Company": Company, "Contact": Contact, "Note": Note}


def contact_row(id: int = 1, **overrides: Any) -> dict:
    """A SELECT row for Contact (columns aliased to API names)."""
    row = {
        "id": id,
        "name": "Ann",
        "email": "ann@example.com",
        "status": "active",
        "phone": None,
        "companyId": None,
        "tags": [],
        "score": None,
        "birthday": None,
        "lastContactedAt": None,
        "label": "Ann <ann@example.com>",
    }
    row.update(overrides)
    return row


def contact_record(id: int = 1, **overrides: Any) -> dict:
    """A RETURNING * row for Contact (keyed by column name)."""
    record = {
        "id": id,
        "name": "Ann",
        "email": "ann@example.com",
        "status": "active",
        "phone": None,
        "company_id": None,
        "tags": [],
        "score": None,
        "birthday": None,
        "last_contacted_at": None,
        "is_deleted": False,
        "deleted_at": None,
    }
    record.update(overrides)
    return record
