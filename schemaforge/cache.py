"""Per-session registry of table and view models."""

from collections.abc import Sequence

from schemaforge.errors import NotFound
from schemaforge.introspection import Introspector
from schemaforge.log import get_logger
from schemaforge.schema import Table, View

logger = get_logger(__name__)


class SchemaCache:
    """Holds exactly one ``Table`` per qualified name.

    Entries are loaded from the catalog on first access and afterwards only
    replaced as a whole, never edited. The cache is scoped to one session or
    migration run and is not shared.
    """

    def __init__(self, introspector: Introspector) -> None:
        """Initialize cache.

        Args:
            introspector: Catalog reader used to fill missing entries
        """
        self.introspector = introspector
        self.tables: dict[str, Table] = {}
        self.views: dict[str, View] = {}

    def __contains__(self, name: str) -> bool:
        return name in self.tables

    def __len__(self) -> int:
        return len(self.tables)

    async def load_tables(self, names: Sequence[str]) -> list[Table]:
        """Introspect tables missing from the cache in one batch.

        Args:
            names: Qualified table names

        Returns:
            Cached tables for the names that exist, in request order
        """
        missing = [name for name in dict.fromkeys(names) if name not in self.tables]
        if missing:
            logger.debug(f"Loading {len(missing)} table(s) from catalog: {missing}")
            for table in await self.introspector.load_tables(missing):
                self.tables[table.name] = table
        return [self.tables[name] for name in names if name in self.tables]

    async def load_views(self, names: Sequence[str] | None = None) -> list[View]:
        """Introspect recorded view definitions into the cache."""
        views = await self.introspector.load_views(names)
        for view in views:
            self.views[view.name] = view
        return views

    async def get_cached_table(self, name: str) -> Table:
        """Get a table, introspecting it on first access.

        Args:
            name: Qualified table name

        Returns:
            Cached table

        Raises:
            NotFound: If the table does not exist in the database
        """
        if name in self.tables:
            return self.tables[name]
        await self.load_tables([name])
        if name not in self.tables:
            raise NotFound("Table", name)
        return self.tables[name]

    async def get_cached_view(self, name: str) -> View:
        if name not in self.views:
            await self.load_views([name])
        if name not in self.views:
            raise NotFound("View", name)
        return self.views[name]

    def replace_cached_table(self, old: Table, new: Table) -> None:
        """Swap the entry holding ``old`` for ``new``.

        The entry is looked up by identity first, so a rename moves it to the
        new key.
        """
        for name, table in list(self.tables.items()):
            if table is old:
                del self.tables[name]
                break
        else:
            self.tables.pop(old.name, None)
        self.tables[new.name] = new

    def add_table(self, table: Table) -> None:
        self.tables[table.name] = table

    def evict_table(self, name: str) -> Table | None:
        return self.tables.pop(name, None)

    def add_view(self, view: View) -> None:
        self.views[view.name] = view

    def evict_view(self, name: str) -> View | None:
        return self.views.pop(name, None)

    def clear(self) -> None:
        self.tables.clear()
        self.views.clear()
