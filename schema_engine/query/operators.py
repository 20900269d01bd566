"""
Filter Operators

Renders one (column, operator, value) condition into SQL. Values always go
to the parameter list; the SQL text only ever receives placeholders.
"""

import re
from datetime import date, datetime
from typing import Any, Optional

from ..errors import InvalidQueryError, UnsupportedOperatorError
from ..schema.fields import FieldDescriptor, FieldType, JSON_TYPES
from ..schema.types import serialize_value

COMPARISON_OPERATORS = {
    "eq": "=",
    "ne": "!=",
    "neq": "!=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}

PATTERN_OPERATORS = {"like": "LIKE", "ilike": "ILIKE"}

LIST_OPERATORS = {"in": "IN", "notIn": "NOT IN"}

VALID_OPERATORS = set(COMPARISON_OPERATORS) | set(PATTERN_OPERATORS) | set(LIST_OPERATORS) | {"between", "isNull"}

# Partial date shorthand: YYYY or YYYY-MM
_PARTIAL_DATE_RE = re.compile(r"^(\d{4})(?:-(\d{2}))?$")


def _expand_date_shorthand(value: str) -> tuple[Optional[date], Optional[date]]:
    """
    Expand a partial date string into a half-open (start, end) range.
    - "2026" → (date(2026,1,1), date(2027,1,1))
    - "2026-01" → (date(2026,1,1), date(2026,2,1))
    Returns (None, None) if the value is not a shorthand.
    """
    m = _PARTIAL_DATE_RE.match(value)
    if not m:
        return None, None

    year = int(m.group(1))
    month = m.group(2)
    if month:
        month_int = int(month)
        if not 1 <= month_int <= 12:
            raise InvalidQueryError(f"Invalid month in date shorthand '{value}'")
        if month_int == 12:
            return date(year, 12, 1), date(year + 1, 1, 1)
        return date(year, month_int, 1), date(year, month_int + 1, 1)
    return date(year, 1, 1), date(year + 1, 1, 1)


def _as_bound(field_def: FieldDescriptor, d: date) -> Any:
    if field_def.type == FieldType.DATETIME:
        return datetime(d.year, d.month, d.day)
    return d


def _coerce(field_def: FieldDescriptor, value: Any) -> Any:
    """Convert a filter value to the parameter form of the field's column."""
    try:
        return serialize_value(field_def, value)
    except ValueError as e:
        raise InvalidQueryError(
            f"Invalid value for {field_def.api_name}: {value!r}", field=field_def.api_name,
        ) from e


def _bind(params: list, value: Any) -> str:
    params.append(value)
    return f"${len(params)}"


def render_condition(col: str, field_def: FieldDescriptor, op: str, value: Any, params: list) -> list[str]:
    """
    Build SQL fragments for one operator applied to ``col``.

    Args:
        col: Qualified column reference (or trusted expression)
        field_def: Descriptor of the filtered field (drives value coercion)
        op: Operator name
        value: Caller-supplied operand
        params: Parameter list to append to

    Returns:
        List of condition strings, to be AND-ed with the rest.

    Raises:
        UnsupportedOperatorError: unknown operator
        InvalidQueryError: operand of the wrong shape
    """
    if op not in VALID_OPERATORS:
        raise UnsupportedOperatorError(
            f"Unsupported operator '{op}' on field '{field_def.api_name}'",
            field=field_def.api_name, operator=op, validOperators=sorted(VALID_OPERATORS),
        )

    if op in COMPARISON_OPERATORS:
        if value is None:
            if op == "eq":
                return [f"{col} IS NULL"]
            if op in ("ne", "neq"):
                return [f"{col} IS NOT NULL"]
            raise InvalidQueryError(f"Operator '{op}' on '{field_def.api_name}' needs a value", field=field_def.api_name)

        if field_def.type in (FieldType.DATE, FieldType.DATETIME) and isinstance(value, str):
            start, end = _expand_date_shorthand(value)
            if start is not None:
                start, end = _as_bound(field_def, start), _as_bound(field_def, end)
                if op == "eq":
                    return [f"{col} >= {_bind(params, start)}", f"{col} < {_bind(params, end)}"]
                if op in ("gte", "gt"):
                    # "after 2026-01" and "from 2026-01" both start at the period
                    return [f"{col} >= {_bind(params, start)}"]
                if op in ("lte", "lt"):
                    return [f"{col} < {_bind(params, end)}"]
                return [f"NOT ({col} >= {_bind(params, start)} AND {col} < {_bind(params, end)})"]

        return [f"{col} {COMPARISON_OPERATORS[op]} {_bind(params, _coerce(field_def, value))}"]

    if op in PATTERN_OPERATORS:
        if not isinstance(value, str):
            raise InvalidQueryError(f"Operator '{op}' on '{field_def.api_name}' needs a string", field=field_def.api_name)
        pattern = value if "%" in value else f"%{value}%"
        return [f"{col} {PATTERN_OPERATORS[op]} {_bind(params, pattern)}"]

    if op in LIST_OPERATORS:
        if not isinstance(value, (list, tuple, set, frozenset)) or not value:
            raise InvalidQueryError(
                f"Operator '{op}' on '{field_def.api_name}' needs a non-empty list", field=field_def.api_name,
            )
        placeholders = ",".join(_bind(params, _coerce(field_def, v)) for v in value)
        return [f"{col} {LIST_OPERATORS[op]} ({placeholders})"]

    if op == "between":
        if not isinstance(value, (list, tuple)) or len(value) != 2 or None in value:
            raise InvalidQueryError(
                f"Operator 'between' on '{field_def.api_name}' needs exactly two values", field=field_def.api_name,
            )
        low, high = (_coerce(field_def, v) for v in value)
        return [f"{col} BETWEEN {_bind(params, low)} AND {_bind(params, high)}"]

    # isNull
    return [f"{col} IS NULL" if value else f"{col} IS NOT NULL"]


def is_operator_object(field_def: FieldDescriptor, value: Any) -> bool:
    """
    Whether a where-value is an operator object ({"gte": 5}) rather than a
    literal. Dicts on JSON fields whose keys are not all operators are literals.
    """
    if not isinstance(value, dict):
        return False
    if field_def.type in JSON_TYPES:
        return bool(value) and all(k in VALID_OPERATORS for k in value)
    return True
