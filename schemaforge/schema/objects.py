"""Column, index and constraint values that make up a table model."""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from schemaforge.types import GenerationStrategy


def _freeze(instance: Any, *names: str) -> None:
    """Coerce list-valued fields of a frozen dataclass into tuples."""
    for name in names:
        value = getattr(instance, name)
        if value is not None and not isinstance(value, tuple):
            object.__setattr__(instance, name, tuple(value))


def _swap_name(names: Sequence[str], old: str, new: str) -> tuple[str, ...]:
    # Position is kept: a physical rename never reorders key columns
    return tuple(new if name == old else name for name in names)


def _identifier_pattern(name: str) -> "re.Pattern[str]":
    """Match ``name`` as a quoted or bare identifier, never inside a longer word."""
    escaped = re.escape(name)
    return re.compile(
        rf'"{escaped}"|`{escaped}`|\[{escaped}\]|(?<![\w\'"`\[]){escaped}(?![\w\'"`\]])'
    )


def mentions_identifier(expression: str, name: str) -> bool:
    return _identifier_pattern(name).search(expression) is not None


def rename_identifier(expression: str, old: str, new: str) -> str:
    """Rename every reference to ``old`` in a SQL expression, keeping its quoting."""

    def swap(match: "re.Match[str]") -> str:
        text = match.group(0)
        if text == old:
            return new
        return f"{text[0]}{new}{text[-1]}"

    return _identifier_pattern(old).sub(swap, expression)


@dataclass(frozen=True)
class Column:
    """Table column definition."""

    name: str
    type: str
    length: str | None = None
    precision: int | None = None
    scale: int | None = None
    is_nullable: bool = False
    default: str | None = None
    generation_strategy: GenerationStrategy = GenerationStrategy.NONE
    is_primary: bool = False
    is_unique: bool = False
    is_array: bool = False
    enum: tuple[str, ...] | None = None
    enum_name: str | None = None
    charset: str | None = None
    collation: str | None = None
    spatial_feature_type: str | None = None
    srid: int | None = None
    as_expression: str | None = None
    generated_type: str | None = None
    comment: str | None = None

    def __post_init__(self) -> None:
        _freeze(self, "enum")
        if not isinstance(self.generation_strategy, GenerationStrategy):
            object.__setattr__(
                self,
                "generation_strategy",
                GenerationStrategy(self.generation_strategy or "none"),
            )

    @property
    def is_generated(self) -> bool:
        """Check if the database supplies this column's value."""
        return self.generation_strategy != GenerationStrategy.NONE

    @property
    def is_increment(self) -> bool:
        """Check if the column is an auto-increment / identity column."""
        return self.generation_strategy == GenerationStrategy.INCREMENT

    @property
    def is_enum(self) -> bool:
        """Check if the column holds an enumerated type."""
        return self.type in ("enum", "simple-enum")

    def without_identity(self) -> "Column":
        """Return a copy with the increment generation stripped."""
        return replace(self, generation_strategy=GenerationStrategy.NONE)

    def evolve(self, **changes: Any) -> "Column":
        """Return a copy with the given attributes replaced."""
        return replace(self, **changes)


@dataclass(frozen=True)
class Index:
    """Table index definition."""

    column_names: tuple[str, ...]
    name: str | None = None
    is_unique: bool = False
    is_spatial: bool = False
    is_fulltext: bool = False
    where: str | None = None
    parser: str | None = None

    def __post_init__(self) -> None:
        _freeze(self, "column_names")

    def rename_column(self, old: str, new: str) -> "Index":
        return replace(self, column_names=_swap_name(self.column_names, old, new))


@dataclass(frozen=True)
class ForeignKey:
    """Foreign key constraint definition."""

    column_names: tuple[str, ...]
    referenced_table_name: str
    referenced_column_names: tuple[str, ...]
    name: str | None = None
    on_delete: str | None = None
    on_update: str | None = None
    deferrable: str | None = None

    def __post_init__(self) -> None:
        _freeze(self, "column_names", "referenced_column_names")

    def rename_column(self, old: str, new: str) -> "ForeignKey":
        return replace(self, column_names=_swap_name(self.column_names, old, new))


@dataclass(frozen=True)
class UniqueConstraint:
    """Unique constraint definition."""

    column_names: tuple[str, ...]
    name: str | None = None

    def __post_init__(self) -> None:
        _freeze(self, "column_names")

    def rename_column(self, old: str, new: str) -> "UniqueConstraint":
        return replace(self, column_names=_swap_name(self.column_names, old, new))


@dataclass(frozen=True)
class CheckConstraint:
    """Check constraint definition.

    ``column_names`` lists the columns the expression refers to, when known.
    """

    expression: str
    name: str | None = None
    column_names: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        _freeze(self, "column_names")

    def rename_column(self, old: str, new: str) -> "CheckConstraint":
        return replace(
            self,
            expression=rename_identifier(self.expression, old, new),
            column_names=_swap_name(self.column_names, old, new),
        )

    def with_referenced_columns(self, column_names: Iterable[str]) -> "CheckConstraint":
        """Fill in ``column_names`` from the expression when they are unknown."""
        if self.column_names:
            return self
        return replace(
            self,
            column_names=tuple(
                name for name in column_names if mentions_identifier(self.expression, name)
            ),
        )


@dataclass(frozen=True)
class ExclusionConstraint:
    """Exclusion constraint definition."""

    expression: str
    name: str | None = None
