"""Dialect-neutral descriptors for catalog objects and query results.

Descriptors are snapshots: every introspection call builds fresh ones and the
client keeps no cache, so callers own their freshness policy.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import pandas as pd


class Unsupported(Enum):
    """Marks an attribute the connected dialect does not support.

    Distinct from ``None`` (supported but unset) so callers never mistake a
    missing capability for an empty value.
    """
    UNSUPPORTED = "unsupported"

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSUPPORTED"


UNSUPPORTED = Unsupported.UNSUPPORTED


def to_plain(value: Any) -> Any:
    """Convert descriptors into JSON-friendly builtins.

    ``UNSUPPORTED`` becomes ``None``.
    """
    if value is UNSUPPORTED:
        return None
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    return value


@dataclass
class TableDescriptor:
    """A table or view listed by ``get_structure``."""
    name: str
    type: str  # 'table' or 'view'
    rows: Optional[float] = None
    size: Optional[int] = None
    collation: Optional[str] = None
    comment: Optional[str] = None
    engine: Union[str, Unsupported] = UNSUPPORTED


@dataclass
class RoutineDescriptor:
    """A function or procedure listed by ``get_structure``."""
    name: str
    type: str
    security: Optional[str] = None


@dataclass
class TriggerDescriptor:
    """A trigger listed by ``get_structure``."""
    name: str
    table: Optional[str] = None
    timing: Optional[str] = None
    event: Optional[str] = None
    condition: Optional[str] = None
    definition: Optional[str] = None


@dataclass
class DatabaseStructure:
    """One schema/database as seen by ``get_structure``.

    Schemas outside the requested set are returned empty but present.
    """
    name: str
    tables: List[TableDescriptor] = field(default_factory=list)
    functions: List[RoutineDescriptor] = field(default_factory=list)
    procedures: List[RoutineDescriptor] = field(default_factory=list)
    triggers: List[TriggerDescriptor] = field(default_factory=list)
    trigger_functions: List[RoutineDescriptor] = field(default_factory=list)
    schedulers: Union[List[Any], Unsupported] = UNSUPPORTED

    @property
    def views(self) -> List[TableDescriptor]:
        """Tables of type ``view``."""
        return [table for table in self.tables if table.type == 'view']


@dataclass
class ColumnDescriptor:
    """Information about a table column."""
    name: str
    type: str
    schema: str
    table: str
    key: Optional[str] = None
    is_array: bool = False
    num_precision: Optional[int] = None
    date_precision: Optional[int] = None
    char_length: Optional[int] = None
    nullable: bool = True
    unsigned: Union[bool, Unsupported] = UNSUPPORTED
    zerofill: Union[bool, Unsupported] = UNSUPPORTED
    order: Optional[int] = None
    default: Optional[str] = None
    charset: Optional[str] = None
    collation: Optional[str] = None
    auto_increment: bool = False
    on_update: Union[str, Unsupported] = UNSUPPORTED
    comment: str = ''

    @property
    def length(self) -> Optional[int]:
        """Whichever precision or length applies to the column type."""
        return self.num_precision or self.char_length or self.date_precision or None


@dataclass
class IndexDescriptor:
    """One column of an index or key constraint."""
    name: str
    column: str
    type: str  # PRIMARY, UNIQUE or INDEX
    index_type: Optional[str] = None
    cardinality: Union[int, Unsupported] = UNSUPPORTED
    comment: str = ''
    index_comment: str = ''

    @property
    def key_marker(self) -> str:
        """Short key marker used on result fields: pri, uni or mul."""
        if self.type == 'PRIMARY':
            return 'pri'
        if self.type == 'UNIQUE':
            return 'uni'
        return 'mul'


@dataclass
class ForeignKeyDescriptor:
    """One column of a foreign key constraint."""
    schema: str
    table: str
    field: str
    constraint_name: str
    ref_schema: Optional[str] = None
    ref_table: Optional[str] = None
    ref_field: Optional[str] = None
    position: Optional[int] = None
    constraint_position: Optional[int] = None
    on_update: Optional[str] = None
    on_delete: Optional[str] = None


@dataclass
class UserDescriptor:
    """A database role able to log in."""
    name: str
    host: Optional[str] = None
    password: Optional[str] = None


@dataclass
class VariableDescriptor:
    """A server configuration variable."""
    name: str
    value: Optional[str] = None


@dataclass
class EngineDescriptor:
    """A storage engine offered by the server."""
    name: str
    support: str = 'YES'
    comment: str = ''
    is_default: bool = True


@dataclass
class VersionDescriptor:
    """Parsed server version banner."""
    number: Optional[str] = None
    name: Optional[str] = None
    arch: Optional[str] = None
    os: Optional[str] = None


@dataclass
class ProcessDescriptor:
    """A backend process/session."""
    id: int
    user: Optional[str] = None
    host: Optional[str] = None
    database: Optional[str] = None
    application: Optional[str] = None
    time: Optional[int] = None
    state: Optional[str] = None
    info: Optional[str] = None


@dataclass
class ViewDefinition:
    """Definition of a view, as read back or as input to view DDL."""
    name: str
    sql: str
    algorithm: Union[str, Unsupported] = UNSUPPORTED
    definer: Union[str, Unsupported] = UNSUPPORTED
    security: Union[str, Unsupported] = UNSUPPORTED
    update_option: Union[str, Unsupported] = UNSUPPORTED


@dataclass
class RoutineParameter:
    """A routine argument."""
    name: Optional[str]
    type: str
    length: Optional[str] = None
    context: Optional[str] = None  # IN, OUT, INOUT


@dataclass
class RoutineDefinition:
    """Definition of a procedure or function.

    ``returns`` is only meaningful for functions.
    """
    name: str
    sql: str = ''
    parameters: List[RoutineParameter] = field(default_factory=list)
    language: Optional[str] = None
    security: str = 'INVOKER'
    returns: Optional[str] = None
    returns_length: Optional[str] = None
    comment: str = ''
    definer: Union[str, Unsupported] = UNSUPPORTED
    deterministic: Union[bool, Unsupported] = UNSUPPORTED
    data_access: Union[str, Unsupported] = UNSUPPORTED


@dataclass
class TriggerDefinition:
    """Definition of a trigger.

    ``sql`` holds the action, e.g. ``EXECUTE FUNCTION audit()``.
    """
    name: str
    table: Optional[str] = None
    timing: Optional[str] = None  # BEFORE, AFTER, INSTEAD OF
    events: List[str] = field(default_factory=list)
    level: str = 'ROW'
    condition: Optional[str] = None
    sql: str = ''
    definer: Union[str, Unsupported] = UNSUPPORTED


@dataclass
class FieldDescriptor:
    """Metadata for one result column, rebuilt on every execution."""
    name: str
    alias: str
    schema: Optional[str] = None
    table: Optional[str] = None
    table_alias: Optional[str] = None
    org_table: Optional[str] = None
    type: Optional[str] = None
    type_oid: Optional[int] = None
    table_oid: Optional[int] = None
    length: Optional[int] = None
    key: Optional[str] = None
    nullable: Optional[bool] = None
    default: Optional[str] = None
    is_array: bool = False
    column: Optional[ColumnDescriptor] = None


@dataclass
class CommandReport:
    """Status of a statement that returns no rows."""
    command: str
    row_count: int = 0


@dataclass
class QueryResult:
    """Shaped result of one executed statement.

    Exactly one of ``rows`` and ``report`` is set. ``keys`` is only set when
    detail enrichment was requested. ``duration`` is wall-clock milliseconds.
    """
    fields: List[FieldDescriptor] = field(default_factory=list)
    rows: Optional[List[Dict[str, Any]]] = None
    report: Optional[CommandReport] = None
    keys: Optional[List[ForeignKeyDescriptor]] = None
    duration: float = 0.0

    @property
    def is_empty(self) -> bool:
        """Check if result has no rows."""
        return not self.rows

    @property
    def row_count(self) -> int:
        """Rows returned, or rows affected for commands."""
        if self.rows is not None:
            return len(self.rows)
        return self.report.row_count if self.report else 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return to_plain(self)

    def to_dataframe(self) -> pd.DataFrame:
        """Result rows as a DataFrame, columns in result order."""
        columns = [f.alias for f in self.fields]
        if not self.rows:
            return pd.DataFrame(columns=columns)
        frame = pd.DataFrame(self.rows)
        ordered = [c for c in frame.columns if c in columns] or list(frame.columns)
        return frame[ordered]
