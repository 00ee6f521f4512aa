"""PostgreSQL DDL rendering.

Pure functions from schema diffs and object definitions to statement text.
The client executes what these return.
"""

import logging
from typing import List, Optional

from sqlbridge.db.data_types import accepts_length, is_serial, local_type
from sqlbridge.db.ddl import ColumnSpec, IndexSpec, SchemaDiff, quote_identifier, quote_literal
from sqlbridge.db.descriptors import RoutineDefinition, TriggerDefinition, ViewDefinition

logger = logging.getLogger(__name__)

q = quote_identifier


def qualified(schema: Optional[str], name: str) -> str:
    """``"schema"."name"``, or just ``"name"`` without a schema."""
    return f"{q(schema)}.{q(name)}" if schema else q(name)


def sequence_name(table: str, column: str) -> str:
    return f"{table}_{column}_seq".replace(' ', '_')


def _nextval(schema: Optional[str], sequence: str) -> str:
    return f"nextval({quote_literal(qualified(schema, sequence))})"


def _column_type(column: ColumnSpec) -> str:
    """Storage type with length modifier and array marker."""
    type_name = local_type(column.type)
    length = column.length if accepts_length(column.type) else None
    rendered = f"{type_name}({length})" if length else type_name
    return f"{rendered}[]" if column.is_array else rendered


def _needs_sequence(column: ColumnSpec) -> bool:
    return is_serial(column.type) or column.auto_increment


def _add_column_clause(column: ColumnSpec, default: Optional[str]) -> str:
    parts = [f"ADD COLUMN {q(column.name)} {_column_type(column)}"]
    if column.collation:
        parts.append(f"COLLATE {q(column.collation)}")
    parts.append('NULL' if column.nullable else 'NOT NULL')
    if default:
        parts.append(f"DEFAULT {default}")
    return ' '.join(parts)


def _change_column_clauses(column: ColumnSpec, default: Optional[str]) -> List[str]:
    """Type, nullability and default sub-clauses, always in that order."""
    name = q(column.current_name)
    column_type = _column_type(column)
    return [
        f"ALTER COLUMN {name} TYPE {column_type} USING {name}::{column_type}",
        f"ALTER COLUMN {name} {'DROP NOT NULL' if column.nullable else 'SET NOT NULL'}",
        f"ALTER COLUMN {name} {f'SET DEFAULT {default}' if default else 'DROP DEFAULT'}",
    ]


def _index_fields(index: IndexSpec) -> str:
    return ', '.join(q(f) for f in index.fields)


def _add_key_clause(index: IndexSpec) -> str:
    if index.type.upper() == 'PRIMARY':
        return f"ADD PRIMARY KEY ({_index_fields(index)})"
    return f"ADD CONSTRAINT {q(index.name)} UNIQUE ({_index_fields(index)})"


def render_alter_table(diff: SchemaDiff, schema: str) -> List[str]:
    """Render a schema diff as an ordered statement batch.

    Order: sequence creates, index drops, the combined ALTER TABLE, index
    creates, sequence ownership, comments, column renames, table rename.
    """
    schema = diff.schema_name or schema
    table = qualified(schema, diff.table)

    create_sequences: List[str] = []
    own_sequences: List[str] = []
    drop_indexes: List[str] = []
    create_indexes: List[str] = []
    comments: List[str] = []
    renames: List[str] = []

    add_columns: List[str] = []
    change_columns: List[str] = []
    drop_keys: List[str] = []
    add_keys: List[str] = []
    drop_foreigns: List[str] = []
    add_foreigns: List[str] = []
    drop_columns: List[str] = []

    # Columns
    for addition in diff.additions:
        default = addition.default
        if _needs_sequence(addition):
            sequence = sequence_name(diff.table, addition.name)
            create_sequences.append(f"CREATE SEQUENCE IF NOT EXISTS {qualified(schema, sequence)}")
            own_sequences.append(
                f"ALTER SEQUENCE {qualified(schema, sequence)} OWNED BY {table}.{q(addition.name)}"
            )
            default = _nextval(schema, sequence)
        add_columns.append(_add_column_clause(addition, default))
        if addition.comment:
            comments.append(
                f"COMMENT ON COLUMN {table}.{q(addition.name)} IS {quote_literal(addition.comment)}"
            )

    for change in diff.changes:
        default = change.default
        if _needs_sequence(change):
            sequence = sequence_name(diff.table, change.name)
            create_sequences.append(
                f"CREATE SEQUENCE IF NOT EXISTS {qualified(schema, sequence)} "
                f"OWNED BY {table}.{q(change.current_name)}"
            )
            default = _nextval(schema, sequence)
        change_columns.extend(_change_column_clauses(change, default))
        if change.comment is not None:
            comments.append(
                f"COMMENT ON COLUMN {table}.{q(change.current_name)} IS {quote_literal(change.comment)}"
            )
        if change.current_name != change.name:
            renames.append(f"ALTER TABLE {table} RENAME COLUMN {q(change.current_name)} TO {q(change.name)}")

    for deletion in diff.deletions:
        drop_columns.append(f"DROP COLUMN {q(deletion.name)}")

    # Indexes and keys
    for addition in diff.index_changes.additions:
        if addition.is_constraint:
            add_keys.append(_add_key_clause(addition))
        else:
            create_indexes.append(f"CREATE INDEX {q(addition.name)} ON {table} ({_index_fields(addition)})")

    for change in diff.index_changes.changes:
        old_name = change.old_name or change.name
        if (change.old_type or change.type).upper() in ('PRIMARY', 'UNIQUE'):
            drop_keys.append(f"DROP CONSTRAINT {q(old_name)}")
        else:
            drop_indexes.append(f"DROP INDEX IF EXISTS {qualified(schema, old_name)}")

        if change.is_constraint:
            add_keys.append(_add_key_clause(change))
        else:
            create_indexes.append(f"CREATE INDEX {q(change.name)} ON {table} ({_index_fields(change)})")

    for deletion in diff.index_changes.deletions:
        if deletion.is_constraint:
            drop_keys.append(f"DROP CONSTRAINT {q(deletion.name)}")
        else:
            drop_indexes.append(f"DROP INDEX IF EXISTS {qualified(schema, deletion.name)}")

    # Foreign keys
    for fk in diff.foreign_changes.additions + diff.foreign_changes.changes:
        if fk.old_name:
            drop_foreigns.append(f"DROP CONSTRAINT {q(fk.old_name)}")
        add_foreigns.append(
            f"ADD CONSTRAINT {q(fk.constraint_name)} FOREIGN KEY ({q(fk.field)}) "
            f"REFERENCES {qualified(fk.ref_schema or schema, fk.ref_table)} ({q(fk.ref_field)}) "
            f"ON UPDATE {fk.on_update} ON DELETE {fk.on_delete}"
        )

    for fk in diff.foreign_changes.deletions:
        drop_foreigns.append(f"DROP CONSTRAINT {q(fk.constraint_name)}")

    # Options
    options = diff.options
    if options.comment is not None:
        comments.append(f"COMMENT ON TABLE {table} IS {quote_literal(options.comment)}")
    for unsupported in ('engine', 'collation', 'auto_increment'):
        if getattr(options, unsupported) is not None:
            logger.debug(f"Table option '{unsupported}' has no PostgreSQL clause, ignored")

    alter_clauses = (
        add_columns + change_columns + drop_keys + add_keys + drop_foreigns + add_foreigns + drop_columns
    )

    statements = create_sequences + drop_indexes
    if alter_clauses:
        statements.append(f"ALTER TABLE {table} {', '.join(alter_clauses)}")
    statements += create_indexes + own_sequences + comments + renames
    if options.name:
        statements.append(f"ALTER TABLE {table} RENAME TO {q(options.name)}")

    return statements


def render_create_table(schema: str, name: str) -> str:
    """An empty, zero-column table ready for ``alter_table``."""
    return f"CREATE TABLE {qualified(schema, name)} ()"


def render_truncate_table(schema: str, name: str) -> str:
    return f"TRUNCATE TABLE {qualified(schema, name)}"


def render_drop_table(schema: str, name: str) -> str:
    return f"DROP TABLE {qualified(schema, name)}"


def render_create_schema(name: str) -> str:
    return f"CREATE SCHEMA {q(name)}"


def render_alter_schema(name: str, new_name: str) -> str:
    return f"ALTER SCHEMA {q(name)} RENAME TO {q(new_name)}"


def render_drop_schema(name: str) -> str:
    return f"DROP SCHEMA {q(name)}"


def render_create_view(schema: str, view: ViewDefinition) -> str:
    return f"CREATE VIEW {qualified(schema, view.name)} AS {view.sql}"


def render_drop_view(schema: str, name: str) -> str:
    return f"DROP VIEW {qualified(schema, name)}"


def render_create_trigger(schema: str, trigger: TriggerDefinition) -> str:
    events = ' OR '.join(trigger.events) or 'INSERT'
    parts = [
        f"CREATE TRIGGER {q(trigger.name)} {trigger.timing or 'BEFORE'} {events}",
        f"ON {qualified(schema, trigger.table)}",
        f"FOR EACH {trigger.level}",
    ]
    if trigger.condition:
        parts.append(f"WHEN ({trigger.condition})")
    parts.append(trigger.sql)
    return ' '.join(parts)


def render_drop_trigger(schema: str, name: str, table: str) -> str:
    return f"DROP TRIGGER {q(name)} ON {qualified(schema, table)}"


def _parameter_list(routine: RoutineDefinition) -> str:
    parameters = []
    for parameter in routine.parameters:
        length = f"({parameter.length})" if parameter.length else ''
        parts = [parameter.context, q(parameter.name) if parameter.name else None, f"{parameter.type}{length}"]
        parameters.append(' '.join(part for part in parts if part))
    return ', '.join(parameters)


def render_create_routine(schema: str, routine: RoutineDefinition) -> str:
    """CREATE PROCEDURE; ``routine.sql`` is the dollar-quoted body."""
    return (
        f"CREATE PROCEDURE {qualified(schema, routine.name)}({_parameter_list(routine)})\n"
        f"LANGUAGE {routine.language or 'plpgsql'}\n"
        f"SECURITY {routine.security}\n"
        f"AS {routine.sql}"
    )


def render_drop_routine(schema: str, name: str) -> str:
    return f"DROP PROCEDURE {qualified(schema, name)}"


def render_create_function(schema: str, func: RoutineDefinition) -> str:
    """CREATE FUNCTION; ``func.sql`` is the dollar-quoted body."""
    returns = func.returns or 'void'
    if func.returns_length:
        returns = f"{returns}({func.returns_length})"
    return (
        f"CREATE FUNCTION {qualified(schema, func.name)}({_parameter_list(func)})\n"
        f"RETURNS {returns}\n"
        f"LANGUAGE {func.language or 'plpgsql'}\n"
        f"SECURITY {func.security}\n"
        f"AS {func.sql}"
    )


def render_drop_function(schema: str, name: str) -> str:
    return f"DROP FUNCTION {qualified(schema, name)}"


def render_comment(kind: str, schema: str, name: str, comment: str) -> str:
    return f"COMMENT ON {kind} {qualified(schema, name)} IS {quote_literal(comment)}"
