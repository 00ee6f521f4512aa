"""Tests for the PostgreSQL client over a scripted driver."""

from typing import Any, Dict, Optional

import pytest

from fakes import INT4_OID, TEXT_OID, FakePostgreSQLClient, command_result, records_result, rows_result
from sqlbridge.config.models import ConnectionParams
from sqlbridge.db.adapters import postgresql as postgresql_module
from sqlbridge.db.adapters.postgresql import PostgreSQLClient, pg_type_name
from sqlbridge.db.base import ExecuteOptions
from sqlbridge.db.ddl import ColumnSpec, IndexChanges, IndexSpec, SchemaDiff
from sqlbridge.db.descriptors import UNSUPPORTED, QueryResult, RoutineDefinition, ViewDefinition
from sqlbridge.exceptions import (
    DiffApplicationError,
    NotConnectedError,
    StatementError,
    UnsupportedFeatureError,
)

USERS_OID = 16384
ORDERS_OID = 16400


def column_row(name: str, data_type: str, udt_name: Optional[str] = None, **overrides: Any) -> Dict[str, Any]:
    """A row of information_schema.columns."""
    row = {
        'table_schema': 'public',
        'table_name': 'users',
        'column_name': name,
        'ordinal_position': 1,
        'column_default': None,
        'is_nullable': 'YES',
        'data_type': data_type,
        'udt_name': udt_name or data_type,
        'character_maximum_length': None,
        'numeric_precision': None,
        'datetime_precision': None,
        'character_set_name': None,
        'collation_name': None,
    }
    row.update(overrides)
    return row


def index_row(name: str, column: str, constraint_type: str) -> Dict[str, Any]:
    return {'constraint_name': name, 'constraint_type': constraint_type, 'column_name': column, 'index_type': 'btree'}


def key_row(column: str, constraint: str, ref_table: str) -> Dict[str, Any]:
    return {
        'table_schema': 'public',
        'constraint_name': constraint,
        'table_name': 'orders',
        'column_name': column,
        'position_in_unique_constraint': 1,
        'ordinal_position': 1,
        'foreign_table_schema': 'public',
        'foreign_table_name': ref_table,
        'foreign_column_name': 'id',
        'update_rule': 'NO ACTION',
        'delete_rule': 'CASCADE',
    }


class StubConnection:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class StubEngine:
    """Stands in for an AsyncEngine so the real connect() can run."""

    def __init__(self) -> None:
        self.sync_engine = object()
        self.connection = StubConnection()
        self.disposed = False

    async def connect(self) -> StubConnection:
        return self.connection

    async def dispose(self) -> None:
        self.disposed = True


class MissingSchemaClient(PostgreSQLClient):
    async def _execute_statement(self, connection: Any, sql: str) -> Any:
        raise StatementError('schema "ghost" does not exist', sql=sql, sqlstate='3F000')


def reject(message: str, sqlstate: str = '42P07'):
    def raise_error(sql: str):
        raise StatementError(message, sql=sql, sqlstate=sqlstate)
    return raise_error


class TestConnectionState:
    """Context and connection-mode behaviour."""

    @pytest.mark.asyncio
    async def test_unconnected_client_raises(self, params: ConnectionParams) -> None:
        client = PostgreSQLClient(params)
        with pytest.raises(NotConnectedError):
            await client.raw('SELECT 1')

    @pytest.mark.asyncio
    async def test_destroyed_client_raises(self, client: FakePostgreSQLClient) -> None:
        await client.destroy()
        with pytest.raises(NotConnectedError):
            await client.get_version()

    def test_initial_schema(self) -> None:
        assert PostgreSQLClient(ConnectionParams()).context.schema == 'public'
        assert PostgreSQLClient(ConnectionParams(schema='sales')).context.schema == 'sales'

    @pytest.mark.asyncio
    async def test_use_switches_schema_on_single_connection(self, client: FakePostgreSQLClient) -> None:
        await client.use('sales')
        await client.raw('SELECT 1')

        assert client.context.schema == 'sales'
        assert client.executed == ['SET search_path TO "sales"', 'SELECT 1']

    @pytest.mark.asyncio
    async def test_pooled_batches_reapply_schema(self, pooled_client: FakePostgreSQLClient) -> None:
        await pooled_client.raw('SELECT 1')
        assert pooled_client.executed == ['SELECT 1']

        await pooled_client.use('sales')
        await pooled_client.raw('SELECT 1; SELECT 2')

        assert pooled_client.executed[-3:] == ['SET search_path TO "sales"', 'SELECT 1', 'SELECT 2']

    @pytest.mark.asyncio
    async def test_pooled_switch_back_to_public(self) -> None:
        fake = FakePostgreSQLClient(ConnectionParams(uid='pair', pool_size=2))
        await fake.connect()

        await fake.use('sales')
        await fake.raw('SELECT 1')
        await fake.use('public')
        await fake.raw('SELECT 2')
        await fake.raw('SELECT 3')

        assert [handle.search_path for handle in fake.pool] == ['public', 'public']
        assert all(handle.info['search_path'] == 'public' for handle in fake.pool)
        assert fake.pool[1].executed[-2:] == ['SET search_path TO "public"', 'SELECT 2']
        assert fake.pool[0].executed[-1] == 'SELECT 3'
        await fake.destroy()

    @pytest.mark.asyncio
    async def test_failed_initial_schema_releases_engine(self, monkeypatch) -> None:
        engine = StubEngine()
        monkeypatch.setattr(postgresql_module, 'create_async_engine', lambda url, **kwargs: engine)
        monkeypatch.setattr(postgresql_module.event, 'listen', lambda *args: None)
        client = MissingSchemaClient(ConnectionParams(uid='ghost', schema='ghost'))

        with pytest.raises(StatementError, match='ghost'):
            await client.connect()

        assert engine.disposed
        assert engine.connection.closed
        assert not client.context.connected

    @pytest.mark.asyncio
    async def test_ping(self, client: FakePostgreSQLClient) -> None:
        assert await client.ping() is True

        client.on(r'^SELECT 1$', StatementError('terminating connection'))
        assert await client.ping() is False


class TestRaw:
    """Raw execution and result shaping."""

    @pytest.mark.asyncio
    async def test_single_statement_returns_one_result(self, client: FakePostgreSQLClient) -> None:
        client.on(r'^SELECT 1$', rows_result(['?column?'], [[1]], [INT4_OID]))

        result = await client.raw('SELECT 1')

        assert isinstance(result, QueryResult)
        assert result.rows == [{'?column?': 1}]
        assert result.report is None
        assert result.duration >= 0

    @pytest.mark.asyncio
    async def test_split_statements_return_a_list(self, client: FakePostgreSQLClient) -> None:
        client.on(r'^SELECT 1$', rows_result(['a'], [[1]], [INT4_OID]))
        client.on(r'^UPDATE', command_result('UPDATE 3', 3))

        results = await client.raw('SELECT 1; UPDATE users SET active = true;')

        assert isinstance(results, list)
        assert len(results) == 2
        assert results[0].rows == [{'a': 1}]
        assert results[1].rows is None
        assert results[1].report.command == 'UPDATE 3'
        assert results[1].row_count == 3

    @pytest.mark.asyncio
    async def test_no_split_sends_text_whole(self, client: FakePostgreSQLClient) -> None:
        await client.raw('SELECT 1; SELECT 2', ExecuteOptions(split=False))
        assert client.executed == ['SELECT 1; SELECT 2']

    @pytest.mark.asyncio
    async def test_empty_text_returns_empty_list(self, client: FakePostgreSQLClient) -> None:
        assert await client.raw('  ;  ') == []
        assert client.executed == []

    @pytest.mark.asyncio
    async def test_failure_stops_later_statements(self, client: FakePostgreSQLClient) -> None:
        client.on(r'^SELECT 2$', StatementError('division by zero', sql='SELECT 2', sqlstate='22012'))

        with pytest.raises(StatementError) as exc_info:
            await client.raw('SELECT 1; SELECT 2; SELECT 3')

        assert exc_info.value.sqlstate == '22012'
        assert client.executed == ['SELECT 1', 'SELECT 2']

    @pytest.mark.asyncio
    async def test_fields_carry_origin_and_type(self, client: FakePostgreSQLClient) -> None:
        client.on(r'FROM users$', rows_result(
            ['id', 'name'], [[1, 'ada']], [INT4_OID, TEXT_OID], [USERS_OID, USERS_OID],
        ))

        result = await client.raw('SELECT id, name FROM users')

        assert [(f.name, f.schema, f.table, f.type) for f in result.fields] == [
            ('id', 'public', 'users', 'INT4'),
            ('name', 'public', 'users', 'TEXT'),
        ]
        assert result.fields[0].table_oid == USERS_OID
        assert result.keys is None

    @pytest.mark.asyncio
    async def test_nest_keys_rows_by_table(self, client: FakePostgreSQLClient) -> None:
        client.on(r'pg_statio_all_tables', records_result([
            {'tableid': USERS_OID, 'relname': 'users', 'schemaname': 'public'},
            {'tableid': ORDERS_OID, 'relname': 'orders', 'schemaname': 'public'},
        ]))
        client.on(r'^SELECT u\.id', rows_result(
            ['id', 'id'], [[1, 10], [2, 20]], [INT4_OID, INT4_OID], [USERS_OID, ORDERS_OID],
        ))

        result = await client.raw(
            'SELECT u.id, o.id FROM users u JOIN orders o ON o.user_id = u.id',
            ExecuteOptions(nest=True),
        )

        assert result.rows == [{'users.id': 1, 'orders.id': 10}, {'users.id': 2, 'orders.id': 20}]
        assert [f.table for f in result.fields] == ['users', 'orders']

    @pytest.mark.asyncio
    async def test_nest_with_failing_lookup_keeps_bare_names(self, client: FakePostgreSQLClient) -> None:
        client.on(r'pg_statio_all_tables', StatementError('permission denied'))
        client.on(r'^SELECT id, total', rows_result(
            ['id', 'total'], [[1, 5]], [INT4_OID, INT4_OID], [ORDERS_OID, ORDERS_OID],
        ))

        result = await client.raw('SELECT id, total FROM orders', ExecuteOptions(nest=True))

        assert result.rows == [{'id': 1, 'total': 5}]
        assert result.fields[0].table is None

    @pytest.mark.asyncio
    async def test_details_merge_catalog_metadata(self, client: FakePostgreSQLClient) -> None:
        client.on(r'FROM orders$', rows_result(
            ['id', 'user_id'], [[1, 7]], [INT4_OID, INT4_OID], [ORDERS_OID, ORDERS_OID],
        ))
        client.on(r'information_schema\.columns', records_result([
            column_row('id', 'integer', 'int4', table_name='orders', is_nullable='NO', numeric_precision=32,
                       column_default="nextval('orders_id_seq'::regclass)"),
            column_row('user_id', 'integer', 'int4', table_name='orders', ordinal_position=2),
        ]))
        client.on(r'FROM pg_index', records_result([
            index_row('orders_pkey', 'id', 'PRIMARY'),
            index_row('orders_user_idx', 'user_id', 'INDEX'),
        ]))
        client.on(r'referential_constraints', records_result([key_row('user_id', 'orders_user_fk', 'users')]))

        result = await client.raw('SELECT id, user_id FROM orders', ExecuteOptions(details=True))

        id_field, user_field = result.fields
        assert id_field.type == 'INTEGER'
        assert id_field.key == 'pri'
        assert id_field.nullable is False
        assert id_field.length == 32
        assert id_field.column.auto_increment is True
        assert user_field.key == 'mul'
        assert user_field.nullable is True
        assert len(result.keys) == 1
        assert result.keys[0].ref_table == 'users'
        assert result.keys[0].on_delete == 'CASCADE'

    @pytest.mark.asyncio
    async def test_details_never_fail_the_query(self, client: FakePostgreSQLClient) -> None:
        client.on(r'FROM ghosts$', rows_result(['id'], [[1]], [INT4_OID]))
        client.on(r'information_schema\.columns', StatementError('permission denied for schema'))

        result = await client.raw('SELECT id FROM ghosts', ExecuteOptions(details=True))

        assert result.rows == [{'id': 1}]
        assert result.fields[0].type == 'INT4'
        assert result.keys == []

    @pytest.mark.asyncio
    async def test_details_skip_unresolvable_origins(self, client: FakePostgreSQLClient) -> None:
        client.on(r'^SELECT 1 AS n', rows_result(['n'], [[1]], [INT4_OID]))

        result = await client.raw('SELECT 1 AS n', ExecuteOptions(details=True))

        assert result.keys == []
        assert client.executed == ['SELECT 1 AS n']

    @pytest.mark.asyncio
    async def test_result_exports(self, client: FakePostgreSQLClient) -> None:
        client.on(r'FROM users$', rows_result(['id', 'name'], [[1, 'ada'], [2, 'bob']], [INT4_OID, TEXT_OID]))

        result = await client.raw('SELECT id, name FROM users')

        frame = result.to_dataframe()
        assert list(frame.columns) == ['id', 'name']
        assert len(frame) == 2
        data = result.to_dict()
        assert data['rows'][1] == {'id': 2, 'name': 'bob'}
        assert data['fields'][0]['column'] is None

    @pytest.mark.asyncio
    async def test_query_builder_runs_on_client(self, client: FakePostgreSQLClient) -> None:
        await client.query().select('id').from_('users').limit(1).run()
        assert client.executed == ['SELECT id FROM users LIMIT 1']


class TestIntrospection:
    """Catalog reads normalized into descriptors."""

    def test_type_names(self) -> None:
        assert pg_type_name(INT4_OID) == 'INT4'
        assert pg_type_name(TEXT_OID) == 'TEXT'
        assert pg_type_name(None) is None
        assert pg_type_name(987654321) is None

    @pytest.mark.asyncio
    async def test_table_columns_remap_arrays(self, client: FakePostgreSQLClient) -> None:
        client.on(r'information_schema\.columns', records_result([
            column_row('scores', 'ARRAY', '_int4'),
            column_row('labels', 'ARRAY', '_custom', ordinal_position=2),
            column_row('email', 'character varying', 'varchar', ordinal_position=3, character_maximum_length=255),
        ]))

        columns = await client.get_table_columns('public', 'users')

        assert [(c.name, c.type, c.is_array) for c in columns] == [
            ('scores', 'INTEGER', True),
            ('labels', 'CUSTOM', True),
            ('email', 'CHARACTER VARYING', False),
        ]
        assert columns[2].length == 255
        assert "table_schema = 'public'" in client.executed[0]
        assert client.executed[0].endswith('ORDER BY ordinal_position ASC')

    @pytest.mark.asyncio
    async def test_table_columns_without_remap(self, client: FakePostgreSQLClient) -> None:
        client.on(r'information_schema\.columns', records_result([column_row('scores', 'ARRAY', '_int4')]))

        columns = await client.get_table_columns('public', 'users', array_remap=False)

        assert columns[0].type == 'ARRAY'
        assert columns[0].is_array is True

    @pytest.mark.asyncio
    async def test_table_by_ids(self, client: FakePostgreSQLClient) -> None:
        assert await client.get_table_by_ids([]) == {}
        assert client.executed == []

        client.on(r'pg_statio_all_tables', records_result([
            {'tableid': USERS_OID, 'relname': 'users', 'schemaname': 'public'},
        ]))
        assert await client.get_table_by_ids([USERS_OID]) == {USERS_OID: {'table': 'users', 'schema': 'public'}}

    @pytest.mark.asyncio
    async def test_structure_hydrates_requested_schemas_only(self, client: FakePostgreSQLClient) -> None:
        client.on(r'information_schema\.schemata', records_result([{'database': 'public'}, {'database': 'sales'}]))
        client.on(r'information_schema\.routines', records_result([
            {'routine_schema': 'public', 'routine_name': 'total', 'routine_type': 'FUNCTION',
             'security_type': 'INVOKER', 'data_type': 'integer'},
            {'routine_schema': 'public', 'routine_name': 'audit_fn', 'routine_type': 'FUNCTION',
             'security_type': 'INVOKER', 'data_type': 'trigger'},
            {'routine_schema': 'public', 'routine_name': 'cleanup', 'routine_type': 'PROCEDURE',
             'security_type': 'DEFINER', 'data_type': None},
            {'routine_schema': 'sales', 'routine_name': 'forecast', 'routine_type': 'FUNCTION',
             'security_type': 'INVOKER', 'data_type': 'numeric'},
        ]))
        client.on(r'information_schema\.tables', records_result([
            {'table_name': 'active_users', 'table_type': 'VIEW', 'data_length': 0, 'index_length': 0,
             'reltuples': -1.0, 'comment': None},
            {'table_name': 'users', 'table_type': 'BASE TABLE', 'data_length': 8192, 'index_length': 16384,
             'reltuples': 42.0, 'comment': 'People'},
        ]))
        client.on(r'information_schema\.triggers', records_result([
            {'table_name': 'users', 'trigger_name': 'users_audit', 'event': 'INSERT,UPDATE',
             'activation': 'AFTER', 'condition': None, 'definition': 'EXECUTE FUNCTION audit_fn()'},
        ]))

        structures = await client.get_structure({'public'})

        assert [s.name for s in structures] == ['public', 'sales']
        public, sales = structures
        assert [t.name for t in public.tables] == ['active_users', 'users']
        assert [v.name for v in public.views] == ['active_users']
        assert public.tables[1].size == 8192 + 16384
        assert public.tables[1].comment == 'People'
        assert [f.name for f in public.functions] == ['total']
        assert [p.name for p in public.procedures] == ['cleanup']
        assert [f.name for f in public.trigger_functions] == ['audit_fn']
        assert public.triggers[0].event == 'INSERT,UPDATE'
        assert public.schedulers is UNSUPPORTED

        assert sales.tables == []
        assert sales.functions == []

        assert await client.get_structure({'public'}) == structures

    @pytest.mark.asyncio
    async def test_indexes_and_key_usage(self, client: FakePostgreSQLClient) -> None:
        client.on(r'FROM pg_index', records_result([
            index_row('users_pkey', 'id', 'PRIMARY'),
            index_row('users_email_key', 'email', 'UNIQUE'),
        ]))
        client.on(r'referential_constraints', records_result([key_row('user_id', 'orders_user_fk', 'users')]))

        indexes = await client.get_table_indexes('public', 'users')
        keys = await client.get_key_usage('public', 'orders')

        assert [(i.name, i.key_marker, i.index_type) for i in indexes] == [
            ('users_pkey', 'pri', 'BTREE'),
            ('users_email_key', 'uni', 'BTREE'),
        ]
        assert keys[0].constraint_name == 'orders_user_fk'
        assert keys[0].ref_field == 'id'

    @pytest.mark.asyncio
    async def test_server_information(self, client: FakePostgreSQLClient) -> None:
        client.on(r'version\(\)', records_result([
            {'version': 'PostgreSQL 16.2 on x86_64-pc-linux-gnu, compiled by gcc 12.2.0, 64-bit'},
        ]))
        client.on(r'^SHOW ALL$', records_result([
            {'name': 'work_mem', 'setting': '4MB', 'description': 'Working memory'},
        ]))
        client.on(r'pg_user', records_result([{'usename': 'postgres', 'passwd': '********'}]))
        client.on(r'pg_stat_activity', records_result([
            {'pid': 42, 'usename': 'app', 'client_addr': '10.0.0.1', 'datname': 'app',
             'application_name': 'sqlbridge', 'time': 3, 'state': 'active', 'query': 'SELECT 1'},
        ]))

        version = await client.get_version()
        assert (version.name, version.number) == ('PostgreSQL', '16.2')
        assert version.os == '64-bit'

        variables = await client.get_variables()
        assert (variables[0].name, variables[0].value) == ('work_mem', '4MB')

        users = await client.get_users()
        assert users[0].name == 'postgres'

        processes = await client.get_processes()
        assert (processes[0].id, processes[0].application, processes[0].state) == (42, 'sqlbridge', 'active')

        engines = await client.get_engines()
        assert [e.name for e in engines] == ['PostgreSQL']

        assert await client.get_collations() is UNSUPPORTED


class TestDefinitions:
    """Reading back object definitions."""

    @pytest.mark.asyncio
    async def test_missing_objects_are_none(self, client: FakePostgreSQLClient) -> None:
        assert await client.get_view_informations('public', 'nope') is None
        assert await client.get_trigger_informations('public', 'nope') is None
        assert await client.get_function_informations('public', 'nope') is None
        assert await client.get_routine_informations('public', 'nope') is None

    @pytest.mark.asyncio
    async def test_view(self, client: FakePostgreSQLClient) -> None:
        client.on(r'pg_views', records_result([{'definition': '\n SELECT id FROM users;'}]))

        view = await client.get_view_informations('public', 'active_users')

        assert view.name == 'active_users'
        assert view.sql == 'SELECT id FROM users;'
        assert view.algorithm is UNSUPPORTED

    @pytest.mark.asyncio
    async def test_trigger(self, client: FakePostgreSQLClient) -> None:
        client.on(r'pg_get_triggerdef', records_result([{
            'trigger_name': 'users_audit',
            'table_name': 'users',
            'definition': (
                'CREATE TRIGGER users_audit AFTER INSERT OR UPDATE ON public.users '
                'FOR EACH ROW WHEN ((new.id > 0)) EXECUTE FUNCTION audit_fn()'
            ),
        }]))

        trigger = await client.get_trigger_informations('public', 'users_audit')

        assert trigger.table == 'users'
        assert trigger.timing == 'AFTER'
        assert trigger.events == ['INSERT', 'UPDATE']
        assert trigger.level == 'ROW'
        assert trigger.condition == '(new.id > 0)'
        assert trigger.sql == 'EXECUTE FUNCTION audit_fn()'

    @pytest.mark.asyncio
    async def test_function(self, client: FakePostgreSQLClient) -> None:
        client.on(r'pg_get_functiondef', records_result([{
            'definition': (
                'CREATE OR REPLACE FUNCTION public.add(a integer, b integer)\n'
                ' RETURNS integer\n'
                ' LANGUAGE sql\n'
                ' SECURITY DEFINER\n'
                'AS $function$ SELECT a + b $function$\n'
            ),
            'comment': 'Adds two numbers',
        }]))
        client.on(r'information_schema\.parameters', records_result([
            {'parameter_name': 'a', 'parameter_mode': 'IN', 'data_type': 'integer'},
            {'parameter_name': 'b', 'parameter_mode': 'IN', 'data_type': 'integer'},
        ]))

        func = await client.get_function_informations('public', 'add')

        assert func.sql == '$function$ SELECT a + b $function$'
        assert func.language == 'sql'
        assert func.security == 'DEFINER'
        assert func.returns == 'INTEGER'
        assert func.comment == 'Adds two numbers'
        assert [(p.name, p.type, p.context) for p in func.parameters] == [
            ('a', 'INTEGER', 'IN'),
            ('b', 'INTEGER', 'IN'),
        ]
        assert "'FUNCTION'" in client.executed[-1]

    @pytest.mark.asyncio
    async def test_routine_without_readable_definition(self, client: FakePostgreSQLClient) -> None:
        client.on(r'pg_get_functiondef', records_result([{'definition': None, 'comment': None}]))

        routine = await client.get_routine_informations('public', 'cleanup')

        assert routine == RoutineDefinition(name='cleanup')

    @pytest.mark.asyncio
    async def test_events_are_unsupported(self, client: FakePostgreSQLClient) -> None:
        with pytest.raises(UnsupportedFeatureError):
            await client.get_event_informations('public', 'nightly')
        with pytest.raises(UnsupportedFeatureError):
            await client.create_event({'name': 'nightly'})
        with pytest.raises(UnsupportedFeatureError):
            await client.drop_event('nightly')


class TestDDL:
    """DDL execution through the client."""

    @pytest.mark.asyncio
    async def test_table_statements_use_current_schema(self, client: FakePostgreSQLClient) -> None:
        await client.create_table('events')
        await client.create_table('events', schema='audit')
        await client.use('sales')
        await client.truncate_table('orders')
        await client.drop_table('orders')

        assert client.executed == [
            'CREATE TABLE "public"."events" ()',
            'CREATE TABLE "audit"."events" ()',
            'SET search_path TO "sales"',
            'TRUNCATE TABLE "sales"."orders"',
            'DROP TABLE "sales"."orders"',
        ]

    @pytest.mark.asyncio
    async def test_schema_statements(self, client: FakePostgreSQLClient) -> None:
        await client.create_schema('staging')
        await client.alter_schema('staging', 'archive')
        await client.drop_schema('archive')

        assert client.executed == [
            'CREATE SCHEMA "staging"',
            'ALTER SCHEMA "staging" RENAME TO "archive"',
            'DROP SCHEMA "archive"',
        ]

    @pytest.mark.asyncio
    async def test_alter_table_runs_batch(self, client: FakePostgreSQLClient) -> None:
        diff = SchemaDiff(
            table='users',
            additions=[ColumnSpec(name='email', type='TEXT')],
            index_changes=IndexChanges(additions=[IndexSpec(name='users_email_idx', fields=['email'])]),
        )

        results = await client.alter_table(diff)

        assert len(results) == 2
        assert client.executed == [
            'ALTER TABLE "public"."users" ADD COLUMN "email" text NULL',
            'CREATE INDEX "users_email_idx" ON "public"."users" ("email")',
        ]

    @pytest.mark.asyncio
    async def test_alter_table_empty_diff(self, client: FakePostgreSQLClient) -> None:
        assert await client.alter_table(SchemaDiff(table='users')) == []
        assert client.executed == []

    @pytest.mark.asyncio
    async def test_alter_table_failure_reports_applied_statements(self, client: FakePostgreSQLClient) -> None:
        client.on(r'^CREATE INDEX', reject('relation "users_email_idx" already exists'))
        diff = SchemaDiff(
            table='users',
            additions=[ColumnSpec(name='email', type='TEXT')],
            index_changes=IndexChanges(additions=[IndexSpec(name='users_email_idx', fields=['email'])]),
            options={'comment': 'People'},
        )

        with pytest.raises(DiffApplicationError) as exc_info:
            await client.alter_table(diff)

        error = exc_info.value
        assert error.completed_steps == ['ALTER TABLE "public"."users" ADD COLUMN "email" text NULL']
        assert error.step.startswith('CREATE INDEX')
        assert error.sqlstate == '42P07'
        assert isinstance(error.__cause__, StatementError)
        assert not any(sql.startswith('COMMENT') for sql in client.executed)

    @pytest.mark.asyncio
    async def test_alter_view_replaces_through_temporary_view(self, client: FakePostgreSQLClient) -> None:
        view = ViewDefinition(name='active_users', sql='SELECT id FROM users WHERE active')

        result = await client.alter_view(view, old_name='live_users')

        assert result.ok
        assert client.executed == [
            'CREATE VIEW "public"."sqlbridge_active_users_tmp" AS SELECT id FROM users WHERE active',
            'DROP VIEW "public"."sqlbridge_active_users_tmp"',
            'DROP VIEW "public"."live_users"',
            'CREATE VIEW "public"."active_users" AS SELECT id FROM users WHERE active',
        ]

    @pytest.mark.asyncio
    async def test_alter_view_stops_when_new_definition_is_invalid(self, client: FakePostgreSQLClient) -> None:
        client.on(r'^CREATE VIEW .*sqlbridge_', reject('column "activ" does not exist', '42703'))
        view = ViewDefinition(name='active_users', sql='SELECT id FROM users WHERE activ')

        result = await client.alter_view(view)

        assert result.failed_at == 'create_temp'
        assert result.completed == []
        assert len(client.executed) == 1
        with pytest.raises(DiffApplicationError):
            result.raise_for_error()

    @pytest.mark.asyncio
    async def test_alter_function_keeps_old_object_on_late_failure(self, client: FakePostgreSQLClient) -> None:
        client.on(r'^CREATE FUNCTION "public"\."total"', reject('permission denied', '42501'))
        func = RoutineDefinition(name='total', sql='$$ SELECT 1 $$', language='sql', returns='INTEGER')

        result = await client.alter_function(func)

        assert result.completed == ['create_temp', 'drop_temp', 'drop_old']
        assert result.failed_at == 'create_final'

    @pytest.mark.asyncio
    async def test_create_function_with_comment(self, client: FakePostgreSQLClient) -> None:
        func = RoutineDefinition(name='total', sql='$$ SELECT 1 $$', language='sql', returns='INTEGER',
                                 comment='Grand total')

        await client.create_function(func)

        assert client.executed[0].startswith('CREATE FUNCTION "public"."total"()')
        assert client.executed[1] == 'COMMENT ON FUNCTION "public"."total" IS \'Grand total\''

    @pytest.mark.asyncio
    async def test_trigger_statements(self, client: FakePostgreSQLClient) -> None:
        await client.drop_trigger('users_audit', 'users')
        assert client.executed == ['DROP TRIGGER "users_audit" ON "public"."users"']
