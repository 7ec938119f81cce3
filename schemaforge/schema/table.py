"""Immutable table and view models."""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, TypeVar

from schemaforge.errors import NotFound

from .objects import (
    CheckConstraint,
    Column,
    ExclusionConstraint,
    ForeignKey,
    Index,
    UniqueConstraint,
)

T = TypeVar("T")


def _without(items: Sequence[T], predicate: Callable[[T], bool]) -> tuple[T, ...]:
    return tuple(item for item in items if not predicate(item))


def _replaced(items: Sequence[T], old: T, new: T) -> tuple[T, ...]:
    return tuple(new if item == old else item for item in items)


@dataclass(frozen=True)
class Table:
    """Table definition as cached and mutated by the migration executor.

    Every mutator returns a new ``Table``; instances are never edited in
    place, so a reference taken before a change still describes the old
    state.
    """

    name: str
    columns: tuple[Column, ...] = field(default_factory=tuple)
    indices: tuple[Index, ...] = field(default_factory=tuple)
    uniques: tuple[UniqueConstraint, ...] = field(default_factory=tuple)
    checks: tuple[CheckConstraint, ...] = field(default_factory=tuple)
    exclusions: tuple[ExclusionConstraint, ...] = field(default_factory=tuple)
    foreign_keys: tuple[ForeignKey, ...] = field(default_factory=tuple)
    engine: str | None = None

    def __post_init__(self) -> None:
        for name in (
            "columns",
            "indices",
            "uniques",
            "checks",
            "exclusions",
            "foreign_keys",
        ):
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def primary_columns(self) -> list[Column]:
        return [column for column in self.columns if column.is_primary]

    @property
    def primary_column_names(self) -> list[str]:
        return [column.name for column in self.columns if column.is_primary]

    @property
    def increment_column(self) -> Column | None:
        """First column generated by auto increment, if any."""
        for column in self.columns:
            if column.is_increment:
                return column
        return None

    def find_column(self, name: str) -> Column | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def get_column(self, name: str) -> Column:
        """Get a column by name.

        Args:
            name: Column name

        Returns:
            The matching column

        Raises:
            NotFound: If the table has no such column
        """
        column = self.find_column(name)
        if column is None:
            raise NotFound("Column", name, self.name)
        return column

    def find_index(self, name: str) -> Index | None:
        return next((index for index in self.indices if index.name == name), None)

    def find_unique(self, name: str) -> UniqueConstraint | None:
        return next((unique for unique in self.uniques if unique.name == name), None)

    def find_check(self, name: str) -> CheckConstraint | None:
        return next((check for check in self.checks if check.name == name), None)

    def find_exclusion(self, name: str) -> ExclusionConstraint | None:
        return next(
            (exclusion for exclusion in self.exclusions if exclusion.name == name),
            None,
        )

    def find_foreign_key(self, name: str) -> ForeignKey | None:
        return next(
            (foreign_key for foreign_key in self.foreign_keys if foreign_key.name == name),
            None,
        )

    def find_column_indices(self, column_name: str) -> list[Index]:
        return [index for index in self.indices if column_name in index.column_names]

    def find_column_uniques(self, column_name: str) -> list[UniqueConstraint]:
        return [unique for unique in self.uniques if column_name in unique.column_names]

    def find_column_checks(self, column_name: str) -> list[CheckConstraint]:
        names = [column.name for column in self.columns]
        return [
            check
            for check in self.checks
            if column_name in check.with_referenced_columns(names).column_names
        ]

    def find_column_foreign_keys(self, column_name: str) -> list[ForeignKey]:
        return [
            foreign_key
            for foreign_key in self.foreign_keys
            if column_name in foreign_key.column_names
        ]

    def find_single_column_unique_index(self, column_name: str) -> Index | None:
        for index in self.indices:
            if index.is_unique and index.column_names == (column_name,):
                return index
        return None

    def find_single_column_unique(self, column_name: str) -> UniqueConstraint | None:
        for unique in self.uniques:
            if unique.column_names == (column_name,):
                return unique
        return None

    # ------------------------------------------------------------------
    # Structural edits
    # ------------------------------------------------------------------

    def evolve(self, **changes: Any) -> "Table":
        return replace(self, **changes)

    def renamed(self, name: str) -> "Table":
        return replace(self, name=name)

    def add_column(self, column: Column) -> "Table":
        return replace(self, columns=self.columns + (column,))

    def remove_column(self, name: str) -> "Table":
        return replace(self, columns=_without(self.columns, lambda c: c.name == name))

    def replace_column(self, name: str, column: Column) -> "Table":
        return replace(
            self,
            columns=tuple(column if c.name == name else c for c in self.columns),
        )

    def update_column(self, name: str, **changes: Any) -> "Table":
        return self.replace_column(name, replace(self.get_column(name), **changes))

    def with_primary_columns(self, names: Iterable[str]) -> "Table":
        """Return a copy whose primary key covers exactly ``names``."""
        wanted = set(names)
        return replace(
            self,
            columns=tuple(
                replace(column, is_primary=column.name in wanted)
                for column in self.columns
            ),
        )

    def add_index(self, index: Index) -> "Table":
        return replace(self, indices=self.indices + (index,))

    def remove_index(self, index: Index) -> "Table":
        return replace(self, indices=_without(self.indices, lambda i: i == index))

    def replace_index(self, old: Index, new: Index) -> "Table":
        return replace(self, indices=_replaced(self.indices, old, new))

    def add_unique(self, unique: UniqueConstraint) -> "Table":
        return replace(self, uniques=self.uniques + (unique,))

    def remove_unique(self, unique: UniqueConstraint) -> "Table":
        return replace(self, uniques=_without(self.uniques, lambda u: u == unique))

    def replace_unique(self, old: UniqueConstraint, new: UniqueConstraint) -> "Table":
        return replace(self, uniques=_replaced(self.uniques, old, new))

    def add_check(self, check: CheckConstraint) -> "Table":
        return replace(self, checks=self.checks + (check,))

    def remove_check(self, check: CheckConstraint) -> "Table":
        return replace(self, checks=_without(self.checks, lambda c: c == check))

    def replace_check(self, old: CheckConstraint, new: CheckConstraint) -> "Table":
        return replace(self, checks=_replaced(self.checks, old, new))

    def add_exclusion(self, exclusion: ExclusionConstraint) -> "Table":
        return replace(self, exclusions=self.exclusions + (exclusion,))

    def remove_exclusion(self, exclusion: ExclusionConstraint) -> "Table":
        return replace(
            self, exclusions=_without(self.exclusions, lambda e: e == exclusion)
        )

    def add_foreign_key(self, foreign_key: ForeignKey) -> "Table":
        return replace(self, foreign_keys=self.foreign_keys + (foreign_key,))

    def remove_foreign_key(self, foreign_key: ForeignKey) -> "Table":
        return replace(
            self,
            foreign_keys=_without(self.foreign_keys, lambda f: f == foreign_key),
        )

    def replace_foreign_key(self, old: ForeignKey, new: ForeignKey) -> "Table":
        return replace(self, foreign_keys=_replaced(self.foreign_keys, old, new))


@dataclass(frozen=True)
class View:
    """View definition."""

    name: str
    expression: str
    materialized: bool = False
