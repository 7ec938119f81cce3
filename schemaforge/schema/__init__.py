"""Dialect-agnostic schema model."""

from .objects import (
    CheckConstraint,
    Column,
    ExclusionConstraint,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from .table import Table, View

__all__ = [
    "CheckConstraint",
    "Column",
    "ExclusionConstraint",
    "ForeignKey",
    "Index",
    "Table",
    "UniqueConstraint",
    "View",
]
