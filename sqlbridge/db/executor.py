"""Raw execution helpers: statement splitting and result shaping.

Adapters own the I/O; everything here is synchronous and side-effect free so
each shaping step can be reused across dialects and tested on its own.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import sqlglot
import sqlparse
from sqlglot import exp
from sqlglot.errors import SqlglotError

from sqlbridge.db.base import DriverColumn
from sqlbridge.db.descriptors import ColumnDescriptor, FieldDescriptor, IndexDescriptor

logger = logging.getLogger(__name__)

TablesInfo = Dict[int, Dict[str, str]]


@dataclass(frozen=True)
class StatementOrigin:
    """Schema, table and alias of the first relation a statement reads from."""
    table: str
    schema: Optional[str] = None
    alias: Optional[str] = None


def split_statements(sql: str, split: bool = True) -> List[str]:
    """Partition SQL text into non-empty statements.

    Terminators inside string literals, quoted identifiers and dollar-quoted
    bodies do not split. With ``split`` false the text is one statement.
    """
    if not split:
        return [sql] if sql.strip() else []

    statements = []
    for statement in sqlparse.split(sql):
        statement = statement.strip().rstrip(';').strip()
        if statement:
            statements.append(statement)
    return statements


def resolve_origin(statement: str, dialect: str = 'postgres') -> Optional[StatementOrigin]:
    """Find where a statement's result columns come from, if it can be parsed.

    Only the first relation of the FROM clause is reported, so every field
    of a join is attributed to it. Nested rows keep joins apart through the
    per-column table OIDs instead.

    Returns None when the statement does not parse or has no FROM clause.
    """
    try:
        ast = sqlglot.parse_one(statement, read=dialect)
    except SqlglotError as e:
        logger.debug(f"Could not parse statement for field origins: {e}")
        return None

    if ast is None:
        return None

    from_clause = ast.find(exp.From)
    if from_clause is None:
        return None

    table = from_clause.find(exp.Table)
    if table is None or not table.name:
        return None

    return StatementOrigin(
        table=table.name,
        schema=table.db or None,
        alias=table.alias or None,
    )


def build_fields(
    columns: Sequence[DriverColumn],
    origin: Optional[StatementOrigin],
    default_schema: Optional[str],
    type_namer: Callable[[Optional[int]], Optional[str]],
    tables_info: Optional[TablesInfo] = None,
) -> List[FieldDescriptor]:
    """Describe result columns.

    Origins come from the parsed statement, or from the catalog reverse
    lookup when ``tables_info`` is given (nest mode).
    """
    fields = []
    for column in columns:
        schema = origin.schema if origin and origin.schema else default_schema
        table = origin.table if origin else None

        if tables_info is not None:
            info = tables_info.get(column.table_oid) if column.table_oid else None
            schema = info['schema'] if info else default_schema
            table = info['table'] if info else None

        fields.append(FieldDescriptor(
            name=column.name,
            alias=column.name,
            schema=schema,
            table=table,
            table_alias=origin.alias if origin else None,
            org_table=origin.table if origin else None,
            type=type_namer(column.type_oid),
            type_oid=column.type_oid,
            table_oid=column.table_oid,
        ))
    return fields


def nest_rows(
    rows: Iterable[Sequence[Any]],
    columns: Sequence[DriverColumn],
    tables_info: TablesInfo,
) -> List[Dict[str, Any]]:
    """Key positional rows by ``"<table>.<column>"``.

    Columns without a resolvable table keep their bare name.
    """
    keys = []
    for column in columns:
        info = tables_info.get(column.table_oid) if column.table_oid else None
        keys.append(f"{info['table']}.{column.name}" if info else column.name)

    return [dict(zip(keys, row)) for row in rows]


def guard_rows(rows: Optional[List[Any]]) -> Optional[List[Any]]:
    """Drop rows that are still array-shaped.

    Positional rows only exist as a nest-mode artifact and must not reach
    callers expecting mappings.
    """
    if rows is None:
        return None
    if any(isinstance(row, (list, tuple)) for row in rows):
        return []
    return rows


def distinct_origins(fields: Iterable[FieldDescriptor]) -> List[Tuple[Optional[str], Optional[str]]]:
    """Ordered, de-duplicated (schema, table) pairs referenced by fields."""
    seen: List[Tuple[Optional[str], Optional[str]]] = []
    for f in fields:
        pair = (f.schema, f.table)
        if pair not in seen:
            seen.append(pair)
    return seen


def merge_details(
    fields: List[FieldDescriptor],
    schema: str,
    table: str,
    columns: Sequence[ColumnDescriptor],
    indexes: Sequence[IndexDescriptor],
) -> List[FieldDescriptor]:
    """Merge catalog column and index attributes into matching fields.

    Only fields originating from ``schema.table`` are touched.
    """
    columns_by_name = {column.name: column for column in columns}
    merged = []

    for f in fields:
        if f.schema != schema or f.table != table:
            merged.append(f)
            continue

        detailed = columns_by_name.get(f.name)
        if detailed is not None:
            f = replace(
                f,
                type=detailed.type,
                length=detailed.length,
                nullable=detailed.nullable,
                default=detailed.default,
                is_array=detailed.is_array,
                column=detailed,
            )

        field_index = next((index for index in indexes if index.column == f.name), None)
        if field_index is not None:
            f = replace(f, key=field_index.key_marker)

        merged.append(f)

    return merged
