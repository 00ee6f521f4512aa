"""Client contract shared by every dialect adapter.

Dialects do not inherit behaviour from a common base. Each adapter implements
the :class:`DatabaseClient` capability set on its own and composes the free
helpers in ``query_builder``, ``executor`` and ``ddl``.
"""

from dataclasses import dataclass, field
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
    runtime_checkable,
)

from sqlbridge.config.models import ConnectionParams
from sqlbridge.db.descriptors import (
    ColumnDescriptor,
    DatabaseStructure,
    EngineDescriptor,
    ForeignKeyDescriptor,
    IndexDescriptor,
    ProcessDescriptor,
    QueryResult,
    UserDescriptor,
    VariableDescriptor,
    VersionDescriptor,
)
from sqlbridge.exceptions import NotConnectedError


@dataclass(frozen=True)
class DriverColumn:
    """Column metadata reported by the driver for one result column."""
    name: str
    type_oid: Optional[int] = None
    table_oid: Optional[int] = None


@dataclass
class DriverResult:
    """Outcome of running one statement on a handle.

    ``columns`` is ``None`` for statements that return no rows.
    """
    rows: List[Tuple[Any, ...]] = field(default_factory=list)
    columns: Optional[List[DriverColumn]] = None
    status: str = ''
    rowcount: int = -1

    @property
    def returns_rows(self) -> bool:
        return self.columns is not None

    def records(self) -> List[Dict[str, Any]]:
        """Rows as mappings keyed by column name."""
        names = [column.name for column in self.columns or []]
        return [dict(zip(names, row)) for row in self.rows]


@dataclass(frozen=True)
class ExecuteOptions:
    """Switches recognised by ``raw``.

    Attributes:
        nest: Key rows by ``"<table>.<column>"`` using a catalog reverse lookup.
        details: Merge column, index and foreign key metadata into fields.
        split: Split the text on statement terminators and run each in order.
    """
    nest: bool = False
    details: bool = False
    split: bool = True


@dataclass
class ClientContext:
    """Mutable state of one connected logical client.

    One context per logical session: switching ``schema`` affects every
    statement issued afterwards through the same client.
    """
    params: ConnectionParams
    schema: Optional[str] = None
    engine: Any = None
    connection: Any = None

    @property
    def connected(self) -> bool:
        return self.engine is not None

    @property
    def pooled(self) -> bool:
        return self.params.is_pooled

    def require_connection(self) -> None:
        """Raise NotConnectedError unless connect() has succeeded."""
        if not self.connected:
            raise NotConnectedError(
                f"Client '{self.params.uid}' is not connected",
                database_type=self.params.client.value,
            )

    def clear(self) -> None:
        self.engine = None
        self.connection = None


@runtime_checkable
class DatabaseClient(Protocol):
    """Capability set every dialect adapter provides."""

    context: ClientContext

    async def connect(self) -> None: ...

    async def destroy(self) -> None: ...

    async def use(self, schema: str) -> QueryResult: ...

    async def ping(self) -> bool: ...

    async def get_structure(self, schemas: Iterable[str]) -> List[DatabaseStructure]: ...

    async def get_table_columns(
        self, schema: str, table: str, array_remap: bool = True
    ) -> List[ColumnDescriptor]: ...

    async def get_table_indexes(self, schema: str, table: str) -> List[IndexDescriptor]: ...

    async def get_key_usage(self, schema: str, table: str) -> List[ForeignKeyDescriptor]: ...

    async def get_table_by_ids(self, ids: Sequence[int]) -> Dict[int, Dict[str, str]]: ...

    async def get_users(self) -> List[UserDescriptor]: ...

    async def get_variables(self) -> List[VariableDescriptor]: ...

    async def get_engines(self) -> List[EngineDescriptor]: ...

    async def get_version(self) -> VersionDescriptor: ...

    async def get_processes(self) -> List[ProcessDescriptor]: ...

    async def raw(
        self, sql: str, options: Optional[ExecuteOptions] = None
    ) -> Union[QueryResult, List[QueryResult]]: ...
