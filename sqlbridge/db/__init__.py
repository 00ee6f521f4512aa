"""Database clients, introspection and DDL synthesis."""

from sqlbridge.db.base import ClientContext, DatabaseClient, DriverColumn, DriverResult, ExecuteOptions
from sqlbridge.db.connection import (
    ClientFactory,
    ConnectionManager,
    get_connection_manager,
    set_connection_manager,
)
from sqlbridge.db.adapters import PostgreSQLClient
from sqlbridge.db.ddl import SagaResult, SchemaDiff
from sqlbridge.db.descriptors import UNSUPPORTED, FieldDescriptor, QueryResult
from sqlbridge.db.query_builder import QueryBuilder

__all__ = [
    # Contract
    "ClientContext",
    "DatabaseClient",
    "DriverColumn",
    "DriverResult",
    "ExecuteOptions",
    # Connection management
    "ClientFactory",
    "ConnectionManager",
    "get_connection_manager",
    "set_connection_manager",
    # Clients
    "PostgreSQLClient",
    # Results and diffs
    "FieldDescriptor",
    "QueryResult",
    "SagaResult",
    "SchemaDiff",
    "UNSUPPORTED",
    "QueryBuilder",
]
