"""Database client adapters for the supported dialects."""

from sqlbridge.db.adapters.postgresql import PostgreSQLClient

__all__ = [
    "PostgreSQLClient",
]
