"""Schema diff models and the object-replacement saga.

A :class:`SchemaDiff` is supplied wholesale by the caller. Dialect adapters
render it to an ordered statement batch; nothing here talks to a database.
"""

import logging
from dataclasses import dataclass, field, is_dataclass, replace
from typing import Any, Awaitable, Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sqlbridge.exceptions import DatabaseError, DiffApplicationError, StatementError

logger = logging.getLogger(__name__)

TEMP_PREFIX = 'sqlbridge_'


def quote_identifier(identifier: str, quote: str = '"') -> str:
    """Quote an identifier, doubling any embedded quote characters."""
    return f"{quote}{identifier.replace(quote, quote * 2)}{quote}"


def quote_literal(value: str) -> str:
    """Render a string literal, doubling embedded single quotes."""
    return "'" + str(value).replace("'", "''") + "'"


class DiffModel(BaseModel):
    """Base for diff models: accepts snake_case or camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ColumnSpec(DiffModel):
    """Desired state of one column.

    ``org_name`` is the current name for changed columns; it differs from
    ``name`` when the change includes a rename.
    """
    name: str
    type: str
    org_name: Optional[str] = None
    num_length: Optional[int] = None
    char_length: Optional[int] = None
    date_precision: Optional[int] = None
    is_array: bool = False
    nullable: bool = True
    default: Optional[str] = None
    auto_increment: bool = False
    comment: Optional[str] = None
    collation: Optional[str] = None

    @property
    def current_name(self) -> str:
        return self.org_name or self.name

    @property
    def length(self) -> Optional[int]:
        return self.num_length or self.char_length or self.date_precision


class IndexSpec(DiffModel):
    """Desired state of an index or key; ``old_*`` describe a changed one."""
    name: str
    type: str = 'INDEX'  # PRIMARY, UNIQUE or INDEX
    fields: List[str] = Field(default_factory=list)
    old_name: Optional[str] = None
    old_type: Optional[str] = None

    @property
    def is_constraint(self) -> bool:
        return self.type.upper() in ('PRIMARY', 'UNIQUE')


class ForeignKeySpec(DiffModel):
    """Desired state of a foreign key constraint."""
    constraint_name: str
    field: str
    ref_table: str
    ref_field: str
    ref_schema: Optional[str] = None
    on_update: str = 'NO ACTION'
    on_delete: str = 'NO ACTION'
    old_name: Optional[str] = None


class IndexChanges(DiffModel):
    additions: List[IndexSpec] = Field(default_factory=list)
    changes: List[IndexSpec] = Field(default_factory=list)
    deletions: List[IndexSpec] = Field(default_factory=list)


class ForeignKeyChanges(DiffModel):
    additions: List[ForeignKeySpec] = Field(default_factory=list)
    changes: List[ForeignKeySpec] = Field(default_factory=list)
    deletions: List[ForeignKeySpec] = Field(default_factory=list)


class TableOptions(DiffModel):
    """Table-level options; ``name`` renames the table."""
    name: Optional[str] = None
    comment: Optional[str] = None
    engine: Optional[str] = None
    collation: Optional[str] = None
    auto_increment: Optional[int] = None


class SchemaDiff(DiffModel):
    """Additions, changes and deletions to apply to one table."""
    table: str
    schema_name: Optional[str] = Field(default=None, alias='schema')
    additions: List[ColumnSpec] = Field(default_factory=list)
    changes: List[ColumnSpec] = Field(default_factory=list)
    deletions: List[ColumnSpec] = Field(default_factory=list)
    index_changes: IndexChanges = Field(default_factory=IndexChanges)
    foreign_changes: ForeignKeyChanges = Field(default_factory=ForeignKeyChanges)
    options: TableOptions = Field(default_factory=TableOptions)

    @property
    def is_empty(self) -> bool:
        return not (
            self.additions or self.changes or self.deletions
            or self.index_changes.additions or self.index_changes.changes or self.index_changes.deletions
            or self.foreign_changes.additions or self.foreign_changes.changes or self.foreign_changes.deletions
            or self.options.model_dump(exclude_none=True)
        )


@dataclass
class SagaStep:
    """One named, awaitable step of a saga."""
    name: str
    action: Callable[[], Awaitable[Any]]


@dataclass
class SagaResult:
    """How far a saga got.

    ``failed_at`` names the step that raised; every step in ``completed``
    stays applied since nothing is rolled back.
    """
    completed: List[str] = field(default_factory=list)
    failed_at: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.failed_at is None

    def raise_for_error(self) -> None:
        """Raise DiffApplicationError if a step failed."""
        if self.ok:
            return

        sql = getattr(self.error, 'sql', None)
        sqlstate = getattr(self.error, 'sqlstate', None)
        raise DiffApplicationError(
            f"Step '{self.failed_at}' failed after {len(self.completed)} completed step(s): {self.error}",
            step=self.failed_at,
            completed_steps=list(self.completed),
            sql=sql,
            sqlstate=sqlstate,
        ) from self.error


async def run_saga(steps: List[SagaStep]) -> SagaResult:
    """Run steps in order, stopping at the first database failure."""
    result: SagaResult = SagaResult()

    for step in steps:
        try:
            await step.action()
        except DatabaseError as e:
            logger.warning(f"Saga stopped at step '{step.name}': {e}")
            result.failed_at = step.name
            result.error = e
            return result
        result.completed.append(step.name)
        logger.debug(f"Saga step '{step.name}' completed")

    return result


def replacement_steps(
    create: Callable[[Any], Awaitable[Any]],
    drop: Callable[[str], Awaitable[Any]],
    definition: Any,
    old_name: str,
) -> List[SagaStep]:
    """Build the create-temp / drop-temp / drop-old / create-final steps.

    ``definition`` must be a dataclass-like object with a ``name`` attribute;
    a copy under a temporary name validates the new definition first.
    """
    temp_definition = _renamed(definition, f"{TEMP_PREFIX}{definition.name}_tmp")

    return [
        SagaStep('create_temp', lambda: create(temp_definition)),
        SagaStep('drop_temp', lambda: drop(temp_definition.name)),
        SagaStep('drop_old', lambda: drop(old_name)),
        SagaStep('create_final', lambda: create(definition)),
    ]


def _renamed(definition: Any, name: str) -> Any:
    if is_dataclass(definition):
        return replace(definition, name=name)
    return definition.model_copy(update={'name': name})


def wrap_batch_failure(error: StatementError, statements: List[str]) -> DiffApplicationError:
    """Describe a failed statement of a rendered DDL batch."""
    try:
        index = statements.index(error.sql) if error.sql else len(statements)
    except ValueError:
        index = len(statements)

    return DiffApplicationError(
        f"DDL statement {index + 1} of {len(statements)} failed: {error.message}",
        step=error.sql,
        completed_steps=statements[:index],
        sql=error.sql,
        sqlstate=error.sqlstate,
        database_type=error.database_type,
    )
