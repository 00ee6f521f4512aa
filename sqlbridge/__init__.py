"""SQLBridge: a dialect-abstracting relational database client.

SQLBridge provides:
- Live connections, single or pooled, with a switchable default schema
- A fluent query builder rendering dialect-specific SQL
- Catalog introspection normalized into dialect-neutral descriptors
- DDL synthesis from structured schema diffs
- Raw execution with per-statement timing and result-column enrichment
"""

__version__ = "0.1.0"
__author__ = "David Schaaf"
__email__ = "your.email@example.com"
__license__ = "MIT"

# Core exports
from sqlbridge.exceptions import (
    SQLBridgeError,
    ConfigurationError,
    DatabaseError,
    DatabaseConnectionError,
    NotConnectedError,
    StatementError,
    DiffApplicationError,
)

__all__ = [
    "__version__",
    "SQLBridgeError",
    "ConfigurationError",
    "DatabaseError",
    "DatabaseConnectionError",
    "NotConnectedError",
    "StatementError",
    "DiffApplicationError",
]
