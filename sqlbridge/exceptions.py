"""Core exceptions for SQLBridge."""

from typing import Any, Dict, List, Optional


class SQLBridgeError(Exception):
    """Base exception for all SQLBridge errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(SQLBridgeError):
    """Raised when there's an error in configuration parsing or validation."""
    pass


class DatabaseError(SQLBridgeError):
    """Raised when there's an error connecting to or querying a database."""

    def __init__(
        self,
        message: str,
        database_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.database_type = database_type


class DatabaseConnectionError(DatabaseError):
    """Raised when a connection or pool cannot be opened or is refused.

    Never retried by the client; retry policy belongs to the caller.
    """
    pass


class NotConnectedError(DatabaseError):
    """Raised when a data operation runs on a client that is not connected."""
    pass


class StatementError(DatabaseError):
    """Raised when the backend rejects a SQL statement.

    The original driver exception is chained as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        sql: Optional[str] = None,
        sqlstate: Optional[str] = None,
        database_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, database_type, details)
        self.sql = sql
        self.sqlstate = sqlstate


class DiffApplicationError(StatementError):
    """Raised when one step of a multi-statement DDL sequence fails.

    Steps before ``step`` have already been applied; nothing is rolled back.
    """

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        completed_steps: Optional[List[str]] = None,
        sql: Optional[str] = None,
        sqlstate: Optional[str] = None,
        database_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, sql, sqlstate, database_type, details)
        self.step = step
        self.completed_steps = completed_steps or []


class UnsupportedFeatureError(DatabaseError):
    """Raised for operations the connected dialect does not support."""
    pass
