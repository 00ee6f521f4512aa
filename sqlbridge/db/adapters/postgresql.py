"""PostgreSQL client adapter."""

import logging
import re
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import psycopg
from psycopg import postgres
from psycopg.types.string import TextLoader
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine

from sqlbridge.config.models import ConnectionParams
from sqlbridge.db.adapters import postgresql_ddl as ddl
from sqlbridge.db.base import ClientContext, DriverColumn, DriverResult, ExecuteOptions
from sqlbridge.db.data_types import get_array_type
from sqlbridge.db.ddl import (
    SagaResult,
    SchemaDiff,
    quote_identifier,
    quote_literal,
    replacement_steps,
    run_saga,
    wrap_batch_failure,
)
from sqlbridge.db.descriptors import (
    UNSUPPORTED,
    ColumnDescriptor,
    CommandReport,
    DatabaseStructure,
    EngineDescriptor,
    FieldDescriptor,
    ForeignKeyDescriptor,
    IndexDescriptor,
    ProcessDescriptor,
    QueryResult,
    RoutineDefinition,
    RoutineDescriptor,
    RoutineParameter,
    TableDescriptor,
    TriggerDefinition,
    TriggerDescriptor,
    Unsupported,
    UserDescriptor,
    VariableDescriptor,
    VersionDescriptor,
    ViewDefinition,
)
from sqlbridge.db.executor import (
    build_fields,
    distinct_origins,
    guard_rows,
    merge_details,
    nest_rows,
    resolve_origin,
    split_statements,
)
from sqlbridge.db.query_builder import QueryBuilder
from sqlbridge.exceptions import (
    DatabaseConnectionError,
    DatabaseError,
    StatementError,
    UnsupportedFeatureError,
)

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = 'public'

# date, time, timestamp, timestamptz, timetz
TEXT_LOADED_OIDS = (1082, 1083, 1114, 1184, 1266)

TABLES_SQL = """
SELECT t.table_name, t.table_type,
    pg_table_size(quote_ident(t.table_schema) || '.' || quote_ident(t.table_name))::bigint AS data_length,
    pg_relation_size(quote_ident(t.table_schema) || '.' || quote_ident(t.table_name))::bigint AS index_length,
    c.reltuples, obj_description(c.oid) AS comment
FROM information_schema.tables AS t
LEFT JOIN pg_namespace n ON t.table_schema = n.nspname
LEFT JOIN pg_class c ON n.oid = c.relnamespace AND c.relname = t.table_name
WHERE t.table_schema = {schema}
ORDER BY t.table_name
"""

TRIGGERS_SQL = """
SELECT event_object_table AS table_name,
    trigger_name,
    string_agg(event_manipulation, ',') AS event,
    action_timing AS activation,
    action_condition AS condition,
    action_statement AS definition
FROM information_schema.triggers
WHERE trigger_schema = {schema}
GROUP BY 1, 2, 4, 5, 6
ORDER BY table_name, trigger_name
"""

ROUTINES_SQL = """
SELECT routine_schema, routine_name, routine_type, security_type, data_type
FROM information_schema.routines
WHERE routine_type IN ('FUNCTION', 'PROCEDURE')
ORDER BY routine_name
"""

INDEXES_SQL = """
SELECT ic.relname AS constraint_name,
    CASE WHEN i.indisprimary THEN 'PRIMARY' WHEN i.indisunique THEN 'UNIQUE' ELSE 'INDEX' END AS constraint_type,
    a.attname AS column_name,
    am.amname AS index_type
FROM pg_index i
JOIN pg_class tc ON tc.oid = i.indrelid
JOIN pg_namespace n ON n.oid = tc.relnamespace
JOIN pg_class ic ON ic.oid = i.indexrelid
JOIN pg_am am ON am.oid = ic.relam
JOIN pg_attribute a ON a.attrelid = tc.oid AND a.attnum = ANY(i.indkey)
WHERE n.nspname = {schema} AND tc.relname = {table}
ORDER BY ic.relname, array_position(i.indkey::int2[], a.attnum)
"""

TABLES_BY_IDS_SQL = """
SELECT relid AS tableid, relname, schemaname FROM pg_statio_all_tables WHERE relid IN ({ids})
UNION
SELECT pg_class.oid AS tableid, relname, nspname AS schemaname
FROM pg_class JOIN pg_namespace ON pg_namespace.oid = pg_class.relnamespace
WHERE pg_class.oid IN ({ids})
"""

KEY_USAGE_SQL = """
SELECT tc.table_schema,
    tc.constraint_name,
    tc.table_name,
    kcu.column_name,
    kcu.position_in_unique_constraint,
    kcu.ordinal_position,
    ccu.table_schema AS foreign_table_schema,
    ccu.table_name AS foreign_table_name,
    ccu.column_name AS foreign_column_name,
    rc.update_rule,
    rc.delete_rule
FROM information_schema.table_constraints AS tc
JOIN information_schema.key_column_usage AS kcu
    ON tc.constraint_name = kcu.constraint_name AND tc.table_schema = kcu.table_schema
JOIN information_schema.constraint_column_usage AS ccu
    ON ccu.constraint_name = tc.constraint_name AND ccu.table_schema = tc.table_schema
JOIN information_schema.referential_constraints AS rc
    ON rc.constraint_name = kcu.constraint_name
WHERE tc.constraint_type = 'FOREIGN KEY' AND tc.table_schema = {schema} AND tc.table_name = {table}
"""

PROCESSES_SQL = """
SELECT pid, usename, client_addr::text AS client_addr, datname, application_name,
    EXTRACT(EPOCH FROM CURRENT_TIMESTAMP - query_start)::integer AS time, state, query
FROM pg_stat_activity
"""

TRIGGER_DEFINITION_SQL = """
SELECT t.tgname AS trigger_name, c.relname AS table_name, pg_get_triggerdef(t.oid) AS definition
FROM pg_trigger t
JOIN pg_class c ON c.oid = t.tgrelid
JOIN pg_namespace n ON n.oid = c.relnamespace
WHERE NOT t.tgisinternal AND n.nspname = {schema} AND t.tgname = {name}
"""

FUNCTION_DEFINITION_SQL = """
SELECT pg_get_functiondef(p.oid) AS definition, obj_description(p.oid, 'pg_proc') AS comment
FROM pg_proc p
JOIN pg_namespace n ON n.oid = p.pronamespace
WHERE n.nspname = {schema} AND p.proname = {name}
LIMIT 1
"""

PARAMETERS_SQL = """
SELECT args.parameter_name, args.parameter_mode, args.data_type
FROM information_schema.routines proc
LEFT JOIN information_schema.parameters args
    ON proc.specific_schema = args.specific_schema AND proc.specific_name = args.specific_name
WHERE proc.routine_type = {routine_type}
    AND proc.routine_name = {name}
    AND proc.specific_schema = {schema}
ORDER BY proc.specific_name, args.ordinal_position
"""


def pg_type_name(type_oid: Optional[int]) -> Optional[str]:
    """Upper-cased builtin type name for an OID, e.g. ``23`` -> ``INT4``."""
    if type_oid is None:
        return None
    type_info = postgres.types.get(type_oid)
    return type_info.name.upper() if type_info else None


def _register_text_loaders(dbapi_connection: Any, connection_record: Any) -> None:
    """Load date and time values as their text form on every new connection."""
    adapters = dbapi_connection.driver_connection.adapters
    for oid in TEXT_LOADED_OIDS:
        adapters.register_loader(oid, TextLoader)


def _extract(pattern: str, text: str, flags: int = 0) -> Optional[str]:
    """First group of ``pattern`` in ``text``, or None when absent."""
    match = re.search(pattern, text, flags)
    if match is None:
        logger.debug(f"Pattern {pattern!r} not found in definition")
        return None
    return match.group(1).strip()


def _truncate(sql: str, limit: int = 200) -> str:
    sql = ' '.join(sql.split())
    return sql if len(sql) <= limit else f"{sql[:limit]}..."


class PostgreSQLClient:
    """PostgreSQL-family implementation of :class:`~sqlbridge.db.base.DatabaseClient`.

    Every statement goes through :meth:`_execute_statement`, the single
    outbound primitive. Catalog reads are expressed as SQL over that primitive.
    """

    dialect = 'postgres'

    def __init__(self, params: ConnectionParams) -> None:
        self.params = params
        self.context = ClientContext(params=params, schema=params.schema_name or DEFAULT_SCHEMA)

    @property
    def database_type(self) -> str:
        return self.params.client.value

    # Connection management

    async def connect(self) -> None:
        """Open a pool or one persistent connection.

        Raises:
            DatabaseConnectionError: If the engine or connection cannot be opened.
        """
        params = self.params
        engine_kwargs: Dict[str, Any] = {
            'isolation_level': 'AUTOCOMMIT',
            'connect_args': {
                'connect_timeout': params.connect_timeout,
                'application_name': params.application_name,
            },
        }
        if params.is_pooled:
            engine_kwargs.update(pool_size=params.pool_size, max_overflow=0, pool_pre_ping=True)
        else:
            engine_kwargs.update(pool_size=1, max_overflow=0)

        engine = None
        try:
            engine = create_async_engine(params.url(), **engine_kwargs)
            event.listen(engine.sync_engine, 'connect', _register_text_loaders)
            connection = None if params.is_pooled else await engine.connect()
        except (SQLAlchemyError, psycopg.Error, OSError) as e:
            if engine is not None:
                await engine.dispose()
            raise DatabaseConnectionError(
                f"Failed to connect '{params.uid}' to {params.host}:{params.port}: {e}",
                database_type=self.database_type,
                details=params.redacted(),
            ) from e

        self.context.engine = engine
        self.context.connection = connection
        mode = f"pool of {params.pool_size}" if params.is_pooled else "single connection"
        logger.info(f"Connected '{params.uid}' to {params.host}:{params.port}/{params.database} ({mode})")

        if params.schema_name and params.schema_name != DEFAULT_SCHEMA:
            try:
                await self.use(params.schema_name)
            except DatabaseError:
                await self.destroy()
                raise

    async def destroy(self) -> None:
        """Close the connection or pool and invalidate the context."""
        context = self.context
        if not context.connected:
            return

        try:
            if context.connection is not None:
                await context.connection.close()
            await context.engine.dispose()
        except SQLAlchemyError as e:
            raise DatabaseConnectionError(
                f"Failed to close '{self.params.uid}': {e}",
                database_type=self.database_type,
            ) from e
        finally:
            context.clear()

        logger.info(f"Disconnected '{self.params.uid}'")

    async def use(self, schema: str) -> QueryResult:
        """Make ``schema`` the default for every following statement."""
        self.context.schema = schema
        return await self.raw(f"SET search_path TO {quote_identifier(schema)}")

    async def ping(self) -> bool:
        """Run ``SELECT 1``; False when it fails for any database reason."""
        try:
            await self.raw('SELECT 1')
        except DatabaseError as e:
            logger.warning(f"Ping failed for '{self.params.uid}': {e}")
            return False
        return True

    async def _acquire(self) -> Any:
        context = self.context
        context.require_connection()
        if not context.pooled:
            return context.connection
        try:
            return await context.engine.connect()
        except (SQLAlchemyError, OSError) as e:
            raise DatabaseConnectionError(
                f"Could not check out a pooled connection for '{self.params.uid}': {e}",
                database_type=self.database_type,
            ) from e

    async def _release(self, connection: Any) -> None:
        if self.context.pooled:
            await connection.close()

    @asynccontextmanager
    async def _handle(self) -> AsyncIterator[Any]:
        """The connection one batch runs on.

        Pooled connections outlive ``use`` and keep whatever search_path
        they last saw, so each checkout is brought in line with the
        current schema before the batch runs.
        """
        connection = await self._acquire()
        try:
            if self.context.pooled:
                await self._sync_search_path(connection)
            yield connection
        finally:
            await self._release(connection)

    async def _sync_search_path(self, connection: AsyncConnection) -> None:
        schema = self.context.schema
        if connection.info.get('search_path', DEFAULT_SCHEMA) == schema:
            return
        await self._execute_statement(connection, f"SET search_path TO {quote_identifier(schema)}")
        connection.info['search_path'] = schema

    async def _execute_statement(self, connection: AsyncConnection, sql: str) -> DriverResult:
        """Run one statement on a handle and return what the driver reports.

        Raises:
            StatementError: If the backend rejects the statement.
            DatabaseConnectionError: If the handle is unusable.
        """
        try:
            raw_connection = await connection.get_raw_connection()
            async with raw_connection.driver_connection.cursor() as cursor:
                await cursor.execute(sql)
                status = cursor.statusmessage or ''
                if cursor.description is None:
                    return DriverResult(status=status, rowcount=cursor.rowcount)

                columns = [
                    DriverColumn(
                        name=column.name,
                        type_oid=column.type_code,
                        table_oid=cursor.pgresult.ftable(i) or None,
                    )
                    for i, column in enumerate(cursor.description)
                ]
                rows = await cursor.fetchall()
                return DriverResult(
                    rows=[tuple(row) for row in rows],
                    columns=columns,
                    status=status,
                    rowcount=cursor.rowcount,
                )
        except psycopg.Error as e:
            sqlstate = getattr(e, 'sqlstate', None)
            raise StatementError(
                str(e).strip(),
                sql=sql,
                sqlstate=sqlstate,
                database_type=self.database_type,
                details={'sqlstate': sqlstate},
            ) from e
        except (SQLAlchemyError, OSError) as e:
            raise DatabaseConnectionError(
                f"Connection '{self.params.uid}' is unusable: {e}",
                database_type=self.database_type,
            ) from e

    # Raw execution

    async def raw(
        self, sql: str, options: Optional[ExecuteOptions] = None
    ) -> Union[QueryResult, List[QueryResult]]:
        """Execute SQL text and shape the results.

        Split statements run strictly in order on one connection. One
        statement yields one result, anything else a list.

        Raises:
            NotConnectedError: If the client is not connected.
            StatementError: If any statement is rejected; later ones do not run.
        """
        options = options or ExecuteOptions()
        self.context.require_connection()
        statements = split_statements(sql, options.split)
        logger.debug(f"[{self.params.uid}] {_truncate(sql)}")

        executed: List[Tuple[str, DriverResult, float]] = []
        async with self._handle() as connection:
            for statement in statements:
                started = time.perf_counter()
                result = await self._execute_statement(connection, statement)
                duration = round((time.perf_counter() - started) * 1000, 3)
                executed.append((statement, result, duration))

        results = [
            await self._shape(statement, result, duration, options)
            for statement, result, duration in executed
        ]
        return results[0] if len(results) == 1 else results

    async def _shape(
        self, statement: str, result: DriverResult, duration: float, options: ExecuteOptions
    ) -> QueryResult:
        if not result.returns_rows:
            return QueryResult(
                report=CommandReport(command=result.status, row_count=max(result.rowcount, 0)),
                duration=duration,
            )

        origin = resolve_origin(statement, self.dialect)
        tables_info = None
        if options.nest:
            tables_info = await self._tables_info(result.columns)
            rows = nest_rows(result.rows, result.columns, tables_info)
        else:
            rows = result.records()

        fields = build_fields(result.columns, origin, self.context.schema, pg_type_name, tables_info)

        keys = None
        if options.details:
            fields, keys = await self._enrich(fields)

        return QueryResult(fields=fields, rows=guard_rows(rows), keys=keys, duration=duration)

    async def _tables_info(self, columns: Sequence[DriverColumn]) -> Dict[int, Dict[str, str]]:
        ids = sorted({column.table_oid for column in columns if column.table_oid})
        try:
            return await self.get_table_by_ids(ids)
        except DatabaseError as e:
            logger.warning(f"Table lookup for nested rows failed: {e}")
            return {}

    async def _enrich(
        self, fields: List[FieldDescriptor]
    ) -> Tuple[List[FieldDescriptor], List[ForeignKeyDescriptor]]:
        """Merge catalog details into fields; unresolvable origins are skipped."""
        keys: List[ForeignKeyDescriptor] = []
        for schema, table in distinct_origins(fields):
            if not schema or not table:
                continue
            try:
                columns = await self.get_table_columns(schema, table, array_remap=False)
                indexes = await self.get_table_indexes(schema, table)
                keys.extend(await self.get_key_usage(schema, table))
            except DatabaseError as e:
                logger.debug(f"Skipping details for {schema}.{table}: {e}")
                continue
            fields = merge_details(fields, schema, table, columns, indexes)
        return fields, keys

    async def _records(self, sql: str) -> List[Dict[str, Any]]:
        """Rows of a single catalog query."""
        result = await self.raw(sql, ExecuteOptions(split=False))
        if isinstance(result, list):
            return []
        return result.rows or []

    def query(self) -> QueryBuilder:
        """A query builder bound to this client."""
        return QueryBuilder(client=self)

    def _schema_for(self, schema: Optional[str]) -> str:
        return schema or self.context.schema or DEFAULT_SCHEMA

    # Introspection

    async def get_structure(self, schemas: Iterable[str]) -> List[DatabaseStructure]:
        """Describe every schema, hydrating only the requested ones.

        Schemas outside ``schemas`` are listed with empty contents.
        """
        requested = set(schemas)
        databases = await self._records(
            'SELECT schema_name AS database FROM information_schema.schemata ORDER BY schema_name'
        )
        routines = await self._records(ROUTINES_SQL)

        structures = []
        for database in databases:
            name = database['database']
            if name not in requested:
                structures.append(DatabaseStructure(name=name))
                continue

            tables = await self._records(TABLES_SQL.format(schema=quote_literal(name)))
            triggers = await self._records(TRIGGERS_SQL.format(schema=quote_literal(name)))
            own_routines = [routine for routine in routines if routine['routine_schema'] == name]

            structures.append(DatabaseStructure(
                name=name,
                tables=[
                    TableDescriptor(
                        name=table['table_name'],
                        type='view' if table['table_type'] == 'VIEW' else 'table',
                        rows=table['reltuples'],
                        size=(table['data_length'] or 0) + (table['index_length'] or 0),
                        comment=table['comment'],
                    )
                    for table in tables
                ],
                functions=[
                    self._routine_descriptor(routine) for routine in own_routines
                    if routine['routine_type'] == 'FUNCTION' and routine['data_type'] != 'trigger'
                ],
                procedures=[
                    self._routine_descriptor(routine) for routine in own_routines
                    if routine['routine_type'] == 'PROCEDURE'
                ],
                trigger_functions=[
                    self._routine_descriptor(routine) for routine in own_routines
                    if routine['routine_type'] == 'FUNCTION' and routine['data_type'] == 'trigger'
                ],
                triggers=[
                    TriggerDescriptor(
                        name=trigger['trigger_name'],
                        table=trigger['table_name'],
                        timing=trigger['activation'],
                        event=trigger['event'],
                        condition=trigger['condition'],
                        definition=trigger['definition'],
                    )
                    for trigger in triggers
                ],
            ))

        return structures

    @staticmethod
    def _routine_descriptor(routine: Dict[str, Any]) -> RoutineDescriptor:
        return RoutineDescriptor(
            name=routine['routine_name'],
            type=routine['routine_type'],
            security=routine['security_type'],
        )

    async def get_table_columns(
        self, schema: str, table: str, array_remap: bool = True
    ) -> List[ColumnDescriptor]:
        """Columns of ``schema.table`` in ordinal order.

        Array columns report their element type when ``array_remap`` is set,
        e.g. ``_int4`` becomes ``INTEGER`` with ``is_array`` true.
        """
        result = await (
            self.query()
            .select('*')
            .schema('information_schema')
            .from_('columns')
            .where({'table_schema': f"= {quote_literal(schema)}", 'table_name': f"= {quote_literal(table)}"})
            .order_by({'ordinal_position': 'ASC'})
            .run(ExecuteOptions(split=False))
        )

        columns = []
        for row in result.rows or []:
            type_name = row['data_type']
            is_array = type_name == 'ARRAY'
            if is_array and array_remap:
                type_name = get_array_type(row['udt_name'])

            default = row['column_default']
            columns.append(ColumnDescriptor(
                name=row['column_name'],
                type=type_name.upper(),
                schema=row['table_schema'],
                table=row['table_name'],
                is_array=is_array,
                num_precision=row['numeric_precision'],
                date_precision=row['datetime_precision'],
                char_length=row['character_maximum_length'],
                nullable='YES' in row['is_nullable'],
                order=row['ordinal_position'],
                default=default,
                charset=row['character_set_name'],
                collation=row['collation_name'],
                auto_increment=bool(default and default.startswith('nextval(')),
            ))
        return columns

    async def get_table_indexes(self, schema: str, table: str) -> List[IndexDescriptor]:
        """One descriptor per indexed column of ``schema.table``."""
        rows = await self._records(
            INDEXES_SQL.format(schema=quote_literal(schema), table=quote_literal(table))
        )
        return [
            IndexDescriptor(
                name=row['constraint_name'],
                column=row['column_name'],
                type=row['constraint_type'],
                index_type=(row['index_type'] or '').upper() or None,
            )
            for row in rows
        ]

    async def get_table_by_ids(self, ids: Sequence[int]) -> Dict[int, Dict[str, str]]:
        """Reverse lookup of table OIDs to ``{'table': ..., 'schema': ...}``."""
        if not ids:
            return {}

        id_list = ', '.join(str(int(table_id)) for table_id in ids)
        rows = await self._records(TABLES_BY_IDS_SQL.format(ids=id_list))
        return {
            int(row['tableid']): {'table': row['relname'], 'schema': row['schemaname']}
            for row in rows
        }

    async def get_key_usage(self, schema: str, table: str) -> List[ForeignKeyDescriptor]:
        """Foreign key columns of ``schema.table``."""
        rows = await self._records(
            KEY_USAGE_SQL.format(schema=quote_literal(schema), table=quote_literal(table))
        )
        return [
            ForeignKeyDescriptor(
                schema=row['table_schema'],
                table=row['table_name'],
                field=row['column_name'],
                constraint_name=row['constraint_name'],
                ref_schema=row['foreign_table_schema'],
                ref_table=row['foreign_table_name'],
                ref_field=row['foreign_column_name'],
                position=row['ordinal_position'],
                constraint_position=row['position_in_unique_constraint'],
                on_update=row['update_rule'],
                on_delete=row['delete_rule'],
            )
            for row in rows
        ]

    async def get_users(self) -> List[UserDescriptor]:
        rows = await self._records('SELECT usename, passwd FROM pg_catalog.pg_user')
        return [UserDescriptor(name=row['usename'], password=row['passwd']) for row in rows]

    async def get_variables(self) -> List[VariableDescriptor]:
        rows = await self._records('SHOW ALL')
        return [VariableDescriptor(name=row['name'], value=row['setting']) for row in rows]

    async def get_engines(self) -> List[EngineDescriptor]:
        return [EngineDescriptor(name='PostgreSQL')]

    async def get_collations(self) -> Unsupported:
        return UNSUPPORTED

    async def get_version(self) -> VersionDescriptor:
        """Parse the ``version()`` banner into number, name, arch and os."""
        rows = await self._records('SELECT version()')
        if not rows:
            return VersionDescriptor()

        infos = [info.strip() for info in rows[0]['version'].split(',')]
        words = infos[0].split(' ')
        return VersionDescriptor(
            number=words[1] if len(words) > 1 else None,
            name=words[0],
            arch=infos[1] if len(infos) > 1 else None,
            os=infos[2] if len(infos) > 2 else None,
        )

    async def get_processes(self) -> List[ProcessDescriptor]:
        rows = await self._records(PROCESSES_SQL)
        return [
            ProcessDescriptor(
                id=row['pid'],
                user=row['usename'],
                host=row['client_addr'],
                database=row['datname'],
                application=row['application_name'],
                time=row['time'],
                state=row['state'],
                info=row['query'],
            )
            for row in rows
        ]

    async def get_view_informations(self, schema: str, view: str) -> Optional[ViewDefinition]:
        """Definition of a view, or None when it does not exist."""
        rows = await self._records(
            f"SELECT definition FROM pg_views "
            f"WHERE viewname = {quote_literal(view)} AND schemaname = {quote_literal(schema)}"
        )
        if not rows:
            return None
        return ViewDefinition(name=view, sql=(rows[0]['definition'] or '').strip())

    async def get_trigger_informations(self, schema: str, trigger: str) -> Optional[TriggerDefinition]:
        """Definition of a trigger parsed from ``pg_get_triggerdef``.

        Parts the pattern extraction cannot find are left empty.
        """
        rows = await self._records(
            TRIGGER_DEFINITION_SQL.format(schema=quote_literal(schema), name=quote_literal(trigger))
        )
        if not rows:
            return None

        definition = rows[0]['definition'] or ''
        events = _extract(r'(?:BEFORE|AFTER|INSTEAD OF)\s+(.*?)\s+ON\s', definition)
        return TriggerDefinition(
            name=trigger,
            table=rows[0]['table_name'],
            timing=_extract(r'\b(BEFORE|AFTER|INSTEAD OF)\b', definition),
            events=[e.strip() for e in events.split(' OR ')] if events else [],
            level=_extract(r'FOR EACH (ROW|STATEMENT)', definition) or 'ROW',
            condition=_extract(r'WHEN \((.*)\)\s+EXECUTE', definition, re.S),
            sql=_extract(r'(EXECUTE (?:FUNCTION|PROCEDURE) .*)$', definition, re.S) or '',
        )

    async def get_routine_informations(self, schema: str, routine: str) -> Optional[RoutineDefinition]:
        """Definition of a procedure, or None when it does not exist."""
        return await self._function_definition(schema, routine, 'PROCEDURE')

    async def get_function_informations(self, schema: str, func: str) -> Optional[RoutineDefinition]:
        """Definition of a function, or None when it does not exist."""
        return await self._function_definition(schema, func, 'FUNCTION')

    async def _function_definition(
        self, schema: str, name: str, routine_type: str
    ) -> Optional[RoutineDefinition]:
        rows = await self._records(
            FUNCTION_DEFINITION_SQL.format(schema=quote_literal(schema), name=quote_literal(name))
        )
        if not rows:
            return None

        definition = rows[0]['definition']
        if not definition:
            return RoutineDefinition(name=name)

        parameter_rows = await self._records(PARAMETERS_SQL.format(
            routine_type=quote_literal(routine_type),
            name=quote_literal(name),
            schema=quote_literal(schema),
        ))
        parameters = [
            RoutineParameter(
                name=row['parameter_name'],
                type=row['data_type'].upper(),
                context=row['parameter_mode'],
            )
            for row in parameter_rows
            if row['data_type']
        ]

        routine = RoutineDefinition(
            name=name,
            sql=_extract(r'(\$(\w*)\$.*\$\2\$)', definition, re.S) or '',
            parameters=parameters,
            language=_extract(r'LANGUAGE (\w+)', definition),
            security='DEFINER' if 'SECURITY DEFINER' in definition else 'INVOKER',
            comment=rows[0]['comment'] or '',
        )
        if routine_type == 'FUNCTION':
            returns = _extract(r'RETURNS\s+(?:SETOF\s+)?([^\n]+)', definition)
            routine.returns = returns.upper() if returns else None
        return routine

    # Schema DDL

    async def create_schema(self, name: str) -> QueryResult:
        return await self.raw(ddl.render_create_schema(name))

    async def alter_schema(self, name: str, new_name: str) -> QueryResult:
        return await self.raw(ddl.render_alter_schema(name, new_name))

    async def drop_schema(self, name: str) -> QueryResult:
        return await self.raw(ddl.render_drop_schema(name))

    # Table DDL

    async def create_table(self, name: str, schema: Optional[str] = None) -> QueryResult:
        return await self.raw(ddl.render_create_table(self._schema_for(schema), name))

    async def truncate_table(self, name: str, schema: Optional[str] = None) -> QueryResult:
        return await self.raw(ddl.render_truncate_table(self._schema_for(schema), name))

    async def drop_table(self, name: str, schema: Optional[str] = None) -> QueryResult:
        return await self.raw(ddl.render_drop_table(self._schema_for(schema), name))

    async def alter_table(self, diff: SchemaDiff, schema: Optional[str] = None) -> List[QueryResult]:
        """Apply a schema diff as one ordered statement batch.

        Raises:
            DiffApplicationError: If a statement fails; earlier ones stay applied.
        """
        statements = ddl.render_alter_table(diff, self._schema_for(schema))
        if not statements:
            logger.debug(f"Empty diff for table '{diff.table}', nothing to apply")
            return []

        try:
            results = await self.raw(';\n'.join(statements))
        except StatementError as e:
            raise wrap_batch_failure(e, statements) from e

        return results if isinstance(results, list) else [results]

    # View DDL

    async def create_view(self, view: ViewDefinition, schema: Optional[str] = None) -> QueryResult:
        return await self.raw(ddl.render_create_view(self._schema_for(schema), view), ExecuteOptions(split=False))

    async def drop_view(self, name: str, schema: Optional[str] = None) -> QueryResult:
        return await self.raw(ddl.render_drop_view(self._schema_for(schema), name))

    async def alter_view(
        self, view: ViewDefinition, old_name: Optional[str] = None, schema: Optional[str] = None
    ) -> SagaResult:
        """Replace a view through create-temp, drop-temp, drop-old, create-final."""
        schema = self._schema_for(schema)
        return await run_saga(replacement_steps(
            lambda definition: self.create_view(definition, schema),
            lambda name: self.drop_view(name, schema),
            view,
            old_name or view.name,
        ))

    # Trigger DDL

    async def create_trigger(self, trigger: TriggerDefinition, schema: Optional[str] = None) -> QueryResult:
        return await self.raw(
            ddl.render_create_trigger(self._schema_for(schema), trigger), ExecuteOptions(split=False)
        )

    async def drop_trigger(self, name: str, table: str, schema: Optional[str] = None) -> QueryResult:
        return await self.raw(ddl.render_drop_trigger(self._schema_for(schema), name, table))

    async def alter_trigger(
        self, trigger: TriggerDefinition, old_name: Optional[str] = None, schema: Optional[str] = None
    ) -> SagaResult:
        """Replace a trigger on the same table through the replacement saga."""
        schema = self._schema_for(schema)
        return await run_saga(replacement_steps(
            lambda definition: self.create_trigger(definition, schema),
            lambda name: self.drop_trigger(name, trigger.table, schema),
            trigger,
            old_name or trigger.name,
        ))

    # Routine DDL

    async def create_routine(self, routine: RoutineDefinition, schema: Optional[str] = None) -> QueryResult:
        return await self.raw(
            ddl.render_create_routine(self._schema_for(schema), routine), ExecuteOptions(split=False)
        )

    async def drop_routine(self, name: str, schema: Optional[str] = None) -> QueryResult:
        return await self.raw(ddl.render_drop_routine(self._schema_for(schema), name))

    async def alter_routine(
        self, routine: RoutineDefinition, old_name: Optional[str] = None, schema: Optional[str] = None
    ) -> SagaResult:
        schema = self._schema_for(schema)
        return await run_saga(replacement_steps(
            lambda definition: self.create_routine(definition, schema),
            lambda name: self.drop_routine(name, schema),
            routine,
            old_name or routine.name,
        ))

    # Function DDL

    async def create_function(self, func: RoutineDefinition, schema: Optional[str] = None) -> QueryResult:
        schema = self._schema_for(schema)
        result = await self.raw(ddl.render_create_function(schema, func), ExecuteOptions(split=False))
        if func.comment:
            await self.raw(ddl.render_comment('FUNCTION', schema, func.name, func.comment), ExecuteOptions(split=False))
        return result

    async def drop_function(self, name: str, schema: Optional[str] = None) -> QueryResult:
        return await self.raw(ddl.render_drop_function(self._schema_for(schema), name))

    async def alter_function(
        self, func: RoutineDefinition, old_name: Optional[str] = None, schema: Optional[str] = None
    ) -> SagaResult:
        schema = self._schema_for(schema)
        return await run_saga(replacement_steps(
            lambda definition: self.create_function(definition, schema),
            lambda name: self.drop_function(name, schema),
            func,
            old_name or func.name,
        ))

    # Schedulers

    def _no_events(self) -> UnsupportedFeatureError:
        return UnsupportedFeatureError(
            "Scheduled events are not supported by PostgreSQL",
            database_type=self.database_type,
        )

    async def get_event_informations(self, schema: str, scheduler: str) -> Any:
        raise self._no_events()

    async def create_event(self, scheduler: Any, schema: Optional[str] = None) -> Any:
        raise self._no_events()

    async def alter_event(self, scheduler: Any, schema: Optional[str] = None) -> Any:
        raise self._no_events()

    async def drop_event(self, name: str, schema: Optional[str] = None) -> Any:
        raise self._no_events()
