"""
Query layer: request model, operator grammar and SQL builders.
"""

from .request import QueryRequest, coerce_request
from .operators import VALID_OPERATORS, render_condition
from .builder import (
    SelectStatement,
    build_count,
    build_delete,
    build_exists,
    build_insert,
    build_related_select,
    build_select,
    build_soft_delete,
    build_update,
)

__all__ = [
    'QueryRequest',
    'coerce_request',
    'VALID_OPERATORS',
    'render_condition',
    'SelectStatement',
    'build_count',
    'build_delete',
    'build_exists',
    'build_insert',
    'build_related_select',
    'build_select',
    'build_soft_delete',
    'build_update',
]
