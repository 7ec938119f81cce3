"""Deterministic naming of indices and constraints."""

import hashlib
from abc import ABC, abstractmethod
from collections.abc import Sequence

from schemaforge.schema import Table


def _table_name(table_or_name: Table | str) -> str:
    name = table_or_name.name if isinstance(table_or_name, Table) else table_or_name
    return name.split(".")[-1]


def _sha1(value: str) -> str:
    return hashlib.sha1(value.encode("utf-8")).hexdigest()


class NamingStrategy(ABC):
    """Computes identifiers for constraints and indices.

    Implementations must be pure: the same arguments always produce the same
    name, since both halves of a reversible change recompute it independently.
    """

    @abstractmethod
    def primary_key_name(
        self, table_or_name: Table | str, column_names: Sequence[str]
    ) -> str:
        pass

    @abstractmethod
    def unique_constraint_name(
        self, table_or_name: Table | str, column_names: Sequence[str]
    ) -> str:
        pass

    @abstractmethod
    def default_constraint_name(
        self, table_or_name: Table | str, column_name: str
    ) -> str:
        pass

    @abstractmethod
    def foreign_key_name(
        self,
        table_or_name: Table | str,
        column_names: Sequence[str],
        referenced_table: str | None = None,
        referenced_column_names: Sequence[str] | None = None,
    ) -> str:
        pass

    @abstractmethod
    def index_name(
        self,
        table_or_name: Table | str,
        column_names: Sequence[str],
        where: str | None = None,
    ) -> str:
        pass

    @abstractmethod
    def check_constraint_name(
        self, table_or_name: Table | str, expression: str, is_enum: bool = False
    ) -> str:
        pass

    @abstractmethod
    def exclusion_constraint_name(
        self, table_or_name: Table | str, expression: str
    ) -> str:
        pass


class DefaultNamingStrategy(NamingStrategy):
    """Hash based names: a kind prefix plus a truncated SHA-1 of the inputs.

    Column lists are sorted before hashing, so column order never changes a
    name. Only the last segment of a qualified table name participates.
    """

    def primary_key_name(
        self, table_or_name: Table | str, column_names: Sequence[str]
    ) -> str:
        key = f"{_table_name(table_or_name)}_{'_'.join(sorted(column_names))}"
        return "PK_" + _sha1(key)[:27]

    def unique_constraint_name(
        self, table_or_name: Table | str, column_names: Sequence[str]
    ) -> str:
        key = f"{_table_name(table_or_name)}_{'_'.join(sorted(column_names))}"
        return "UQ_" + _sha1(key)[:27]

    def default_constraint_name(
        self, table_or_name: Table | str, column_name: str
    ) -> str:
        return "DF_" + _sha1(f"{_table_name(table_or_name)}_{column_name}")[:27]

    def foreign_key_name(
        self,
        table_or_name: Table | str,
        column_names: Sequence[str],
        referenced_table: str | None = None,
        referenced_column_names: Sequence[str] | None = None,
    ) -> str:
        key = f"{_table_name(table_or_name)}_{'_'.join(sorted(column_names))}"
        return "FK_" + _sha1(key)[:27]

    def index_name(
        self,
        table_or_name: Table | str,
        column_names: Sequence[str],
        where: str | None = None,
    ) -> str:
        key = f"{_table_name(table_or_name)}_{'_'.join(sorted(column_names))}"
        if where:
            key += f"_{where}"
        return "IDX_" + _sha1(key)[:26]

    def check_constraint_name(
        self, table_or_name: Table | str, expression: str, is_enum: bool = False
    ) -> str:
        name = "CHK_" + _sha1(f"{_table_name(table_or_name)}_{expression}")[:26]
        return f"{name}_ENUM" if is_enum else name

    def exclusion_constraint_name(
        self, table_or_name: Table | str, expression: str
    ) -> str:
        return "XCL_" + _sha1(f"{_table_name(table_or_name)}_{expression}")[:26]
