"""
Query Request

Structured description of one read: filters, includes, ordering, pagination
and projection. Accepts snake_case or camelCase keys so requests can come
straight from a JSON body.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from ..errors import InvalidQueryError

OrderEntry = tuple[str, str]


def _parse_order_entry(entry: Any) -> OrderEntry:
    """Normalize "field", "-field", "field desc" or (field, direction) to (field, DIRECTION)."""
    if isinstance(entry, str):
        text = entry.strip()
        if text.startswith("-"):
            return text[1:], "DESC"
        parts = text.split()
        if len(parts) == 2:
            return parts[0], parts[1].upper()
        return text, "ASC"
    if isinstance(entry, (list, tuple)) and len(entry) == 2:
        return str(entry[0]), str(entry[1]).upper()
    if isinstance(entry, dict) and "field" in entry:
        return str(entry["field"]), str(entry.get("direction", "ASC")).upper()
    raise ValueError(f"Invalid orderBy entry: {entry!r}")


class QueryRequest(BaseModel):
    """Filters, joins, sort and pagination for one read operation."""
    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    where: dict[str, Any] = Field(default_factory=dict)
    include: list[str] = Field(default_factory=list)
    include_counts: list[str] = Field(default_factory=list, alias="includeCounts")
    order_by: list[OrderEntry] = Field(default_factory=list, alias="orderBy")
    limit: Optional[int] = Field(None, ge=0)
    offset: int = Field(0, ge=0)
    projection: Optional[list[str]] = None
    with_deleted: bool = Field(False, alias="withDeleted")
    skip_auto_load: bool = Field(False, alias="skipAutoLoad")

    @field_validator('where', mode='before')
    @classmethod
    def none_where_is_empty(cls, v):
        return {} if v is None else v

    @field_validator('include', 'include_counts', 'projection', mode='before')
    @classmethod
    def accept_sets_and_strings(cls, v):
        if isinstance(v, str):
            return [v]
        if isinstance(v, (set, frozenset, tuple)):
            return list(v)
        return v

    @field_validator('order_by', mode='before')
    @classmethod
    def normalize_order_by(cls, v):
        if v is None:
            return []
        if isinstance(v, (str, dict)):
            v = [v]
        elif isinstance(v, (list, tuple)) and len(v) == 2 and all(isinstance(x, str) for x in v) \
                and v[1].lower() in ("asc", "desc"):
            # A bare (field, direction) pair
            v = [v]
        return [_parse_order_entry(entry) for entry in v]


def coerce_request(request: Union[QueryRequest, dict, None] = None, **overrides: Any) -> QueryRequest:
    """
    Build a QueryRequest from a request, a plain dict, or keyword options.

    Keyword overrides with a None value are ignored.

    Raises:
        InvalidQueryError: if the request is malformed
    """
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if isinstance(request, QueryRequest):
        if not overrides:
            return request
        data = request.model_dump()
    elif request is None:
        data = {}
    elif isinstance(request, dict):
        data = dict(request)
    else:
        raise InvalidQueryError(f"Unsupported query request type: {type(request).__name__}")

    data.update(overrides)
    try:
        return QueryRequest.model_validate(data)
    except PydanticValidationError as e:
        problems = [
            {"path": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise InvalidQueryError(
            f"Invalid query request: {problems[0]['path']}: {problems[0]['message']}",
            errors=problems,
        ) from e
