"""Statement values and forward/inverse statement lists."""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TypeAlias

from schemaforge.types import DatabaseParamType


@dataclass(frozen=True)
class Query:
    """One SQL statement with optional parameters."""

    query: str
    parameters: DatabaseParamType = None

    def __str__(self) -> str:
        return self.query


StatementLike: TypeAlias = str | Query


def _as_queries(statements: StatementLike | Iterable[StatementLike] | None) -> list[Query]:
    if statements is None:
        return []
    if isinstance(statements, (str, Query)):
        statements = [statements]
    return [s if isinstance(s, Query) else Query(s) for s in statements]


class Steps:
    """Ordered forward statements with their inverses.

    ``down`` is stored so that replaying it back to front undoes ``up``:
    the inverse of ``up[i]`` sits at the matching position, and a group of
    inverse statements added together is stored reversed.
    """

    def __init__(self) -> None:
        self.up: list[Query] = []
        self.down: list[Query] = []

    def add(
        self,
        up: StatementLike | Iterable[StatementLike] | None,
        down: StatementLike | Iterable[StatementLike] | None = None,
    ) -> "Steps":
        """Append forward statements and the statements that undo them.

        Args:
            up: Statements to run, in order
            down: Statements that undo ``up``, in the order they must run

        Returns:
            Self, for chaining
        """
        self.up.extend(_as_queries(up))
        self.down.extend(reversed(_as_queries(down)))
        return self

    def extend(self, other: "Steps") -> "Steps":
        self.up.extend(other.up)
        self.down.extend(other.down)
        return self

    def inverted(self) -> "Steps":
        """Steps that undo these, paired with the statements that redo them."""
        steps = Steps()
        steps.up = list(reversed(self.down))
        steps.down = list(reversed(self.up))
        return steps

    def __bool__(self) -> bool:
        return bool(self.up or self.down)

    def __repr__(self) -> str:
        return f"Steps(up={len(self.up)}, down={len(self.down)})"
