"""Fluent query builder rendering dialect-specific SQL text.

Predicate and value fragments are written verbatim: the builder guarantees
clause order and joining, escaping stays with the caller.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Union

if TYPE_CHECKING:
    from sqlbridge.db.base import DatabaseClient, ExecuteOptions
    from sqlbridge.db.descriptors import QueryResult

Fragment = Union[str, int, List[Any], Mapping[str, Any]]


@dataclass
class QueryDescriptor:
    """Accumulated, dialect-neutral description of one statement."""
    select: List[str] = field(default_factory=list)
    from_: Optional[str] = None
    schema: Optional[str] = None
    where: List[str] = field(default_factory=list)
    group_by: List[str] = field(default_factory=list)
    order_by: List[str] = field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None
    update: List[str] = field(default_factory=list)
    insert: List[Dict[str, Any]] = field(default_factory=list)
    delete: bool = False


def _flatten(args: tuple, mapping_format: str = '{key} {value}') -> List[str]:
    """Reduce builder arguments to clause fragments.

    Strings and numbers are kept, lists are spliced, mappings become one
    fragment per item rendered with ``mapping_format``.
    """
    fragments: List[str] = []
    for arg in args:
        if arg is None:
            continue
        if isinstance(arg, Mapping):
            fragments.extend(mapping_format.format(key=key, value=value) for key, value in arg.items())
        elif isinstance(arg, (list, tuple)):
            fragments.extend(_flatten(tuple(arg), mapping_format))
        else:
            fragments.append(str(arg))
    return fragments


def _insert_value(row: Mapping[str, Any], column: str) -> str:
    if column not in row:
        return 'DEFAULT'
    value = row[column]
    return 'NULL' if value is None else str(value)


class QueryBuilder:
    """Accumulates a statement through chained calls and renders it once.

    Example:
        sql = QueryBuilder().select('a', 'b').from_('t').where('id = 1').limit(10).render()
    """

    def __init__(self, client: Optional['DatabaseClient'] = None, identifier_quote: str = '"') -> None:
        self._client = client
        self._quote = identifier_quote
        self.descriptor = QueryDescriptor()

    def select(self, *columns: Fragment) -> 'QueryBuilder':
        self.descriptor.select.extend(_flatten(columns) or ['*'])
        return self

    def from_(self, table: str) -> 'QueryBuilder':
        self.descriptor.from_ = table
        return self

    def into(self, table: str) -> 'QueryBuilder':
        """Alias of ``from_`` that reads better for inserts."""
        return self.from_(table)

    def schema(self, schema: str) -> 'QueryBuilder':
        self.descriptor.schema = schema
        return self

    def where(self, *predicates: Fragment) -> 'QueryBuilder':
        """Add predicates joined with AND.

        Mapping items render as ``key fragment``, e.g. ``{'id': '= 1'}``.
        """
        self.descriptor.where.extend(_flatten(predicates))
        return self

    def group_by(self, *columns: Fragment) -> 'QueryBuilder':
        self.descriptor.group_by.extend(_flatten(columns))
        return self

    def order_by(self, *columns: Fragment) -> 'QueryBuilder':
        """Add ordering terms, e.g. ``'name'`` or ``{'position': 'ASC'}``."""
        self.descriptor.order_by.extend(_flatten(columns))
        return self

    def limit(self, count: int, offset: Optional[int] = None) -> 'QueryBuilder':
        self.descriptor.limit = count
        self.descriptor.offset = offset
        return self

    def update(self, *assignments: Fragment) -> 'QueryBuilder':
        """Add SET assignments; mapping items render as ``key = value``."""
        self.descriptor.update.extend(_flatten(assignments, '{key} = {value}'))
        return self

    def insert(self, *rows: Mapping[str, Any]) -> 'QueryBuilder':
        """Add rows to insert; columns a row lacks are written as DEFAULT."""
        for row in rows:
            if isinstance(row, Mapping):
                self.descriptor.insert.append(dict(row))
            else:
                self.descriptor.insert.extend(dict(item) for item in row)
        return self

    def delete(self) -> 'QueryBuilder':
        self.descriptor.delete = True
        return self

    def _target(self) -> str:
        query = self.descriptor
        if not query.from_:
            return ''
        return f"{query.schema}.{query.from_}" if query.schema else query.from_

    def render(self) -> str:
        """Render the accumulated clauses in their fixed order."""
        query = self.descriptor
        parts: List[str] = []

        if query.select:
            parts.append(f"SELECT {', '.join(query.select)}")
        if query.update:
            parts.append('UPDATE')
        if query.insert:
            parts.append('INSERT')
        if query.delete:
            parts.append('DELETE')

        target = self._target()
        if query.insert:
            parts.append(f"INTO {target}" if target else 'INTO')
        elif target and not query.update:
            parts.append(f"FROM {target}")
        elif target:
            parts.append(target)

        if query.update:
            parts.append(f"SET {', '.join(query.update)}")
        if query.where:
            parts.append(f"WHERE {' AND '.join(query.where)}")
        if query.group_by:
            parts.append(f"GROUP BY {', '.join(query.group_by)}")
        if query.order_by:
            parts.append(f"ORDER BY {', '.join(query.order_by)}")

        # LIMIT only applies to row-returning statements
        if query.select and query.limit is not None:
            parts.append(f"LIMIT {query.limit}")
            if query.offset:
                parts.append(f"OFFSET {query.offset}")

        if query.insert:
            columns = list(dict.fromkeys(key for row in query.insert for key in row))
            column_list = ', '.join(f"{self._quote}{column}{self._quote}" for column in columns)
            values = ', '.join(
                f"({', '.join(_insert_value(row, column) for column in columns)})"
                for row in query.insert
            )
            parts.append(f"({column_list}) VALUES {values}")

        return ' '.join(parts)

    def reset(self) -> None:
        self.descriptor = QueryDescriptor()

    async def run(self, options: Optional['ExecuteOptions'] = None) -> 'QueryResult':
        """Render, discard the accumulated state and execute on the bound client."""
        if self._client is None:
            raise RuntimeError("QueryBuilder.run() requires a client; use render() instead")
        sql = self.render()
        self.reset()
        return await self._client.raw(sql, options)
