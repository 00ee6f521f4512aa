"""Client factory and the connection command surface."""

import logging
import time
from typing import Any, Dict, List, Optional, Type

from sqlbridge.config.models import ClientType, ConnectionParams, SQLBridgeConfig
from sqlbridge.db.adapters.postgresql import PostgreSQLClient
from sqlbridge.db.base import DatabaseClient
from sqlbridge.exceptions import DatabaseError, NotConnectedError

logger = logging.getLogger(__name__)


class ClientFactory:
    """Factory for creating database clients."""

    _clients: Dict[ClientType, Type[DatabaseClient]] = {
        ClientType.POSTGRESQL: PostgreSQLClient,
    }

    @classmethod
    def create_client(cls, params: ConnectionParams) -> DatabaseClient:
        """Create an unconnected client for the parameters' dialect.

        Args:
            params: Connection parameters.

        Returns:
            Database client instance.

        Raises:
            DatabaseError: If the client type is not supported.
        """
        client_class = cls._clients.get(params.client)
        if not client_class:
            supported_types = [client_type.value for client_type in cls._clients]
            raise DatabaseError(
                f"Unsupported client type: {params.client}. "
                f"Supported types: {supported_types}"
            )

        return client_class(params)

    @classmethod
    def register_client(cls, client_type: ClientType, client_class: Type[DatabaseClient]) -> None:
        """Register a client class for a dialect.

        Args:
            client_type: Client type.
            client_class: Class implementing the DatabaseClient capability set.
        """
        cls._clients[client_type] = client_class

    @classmethod
    def get_supported_types(cls) -> List[ClientType]:
        """Get list of supported client types."""
        return list(cls._clients.keys())


class ConnectionManager:
    """Owns the connected clients, keyed by connection uid.

    Parameters arrive fresh on every ``connect``; named profiles from the
    configuration file are only a convenience for resolving them.
    """

    def __init__(self, config: Optional[SQLBridgeConfig] = None) -> None:
        """Initialize connection manager.

        Args:
            config: Optional profiles configuration.
        """
        self.config = config
        self._clients: Dict[str, DatabaseClient] = {}
        self._factory = ClientFactory()

    def resolve_params(self, name: Optional[str] = None) -> ConnectionParams:
        """Look up a configured profile by name.

        Args:
            name: Profile name. If None, uses the default connection.

        Raises:
            DatabaseError: If no configuration is loaded or the profile is unknown.
        """
        if self.config is None:
            raise DatabaseError("No configuration loaded; pass ConnectionParams explicitly")

        name = name or self.config.default_connection
        if not name or name not in self.config.connections:
            available = list(self.config.connections.keys())
            raise DatabaseError(
                f"Connection '{name}' not found in configuration. "
                f"Available connections: {available}"
            )
        return self.config.connections[name]

    async def connect(self, params: ConnectionParams) -> DatabaseClient:
        """Create and connect a client, registering it under ``params.uid``.

        Raises:
            DatabaseError: If a client with the same uid is already connected.
            DatabaseConnectionError: If the connection cannot be opened.
        """
        if params.uid in self._clients:
            raise DatabaseError(
                f"Connection '{params.uid}' is already open; disconnect it first",
                database_type=params.client.value,
            )

        client = self._factory.create_client(params)
        await client.connect()
        self._clients[params.uid] = client
        return client

    async def test_connection(self, params: ConnectionParams) -> Dict[str, Any]:
        """Open a throwaway client, run a probe query and close it again.

        Returns:
            Connection test result with timing and status information.
        """
        start_time = time.time()
        client = self._factory.create_client(params)

        try:
            await client.connect()
            try:
                await client.raw('SELECT 1')
                version = await client.get_version()
            finally:
                await client.destroy()

            return {
                'connection': params.uid,
                'status': 'success',
                'message': 'Connection successful',
                'response_time': round((time.time() - start_time) * 1000, 2),
                'database_type': params.client.value,
                'server_version': version.number,
            }

        except DatabaseError as e:
            logger.info(f"Connection test for '{params.uid}' failed: {e}")
            return {
                'connection': params.uid,
                'status': 'failed',
                'message': str(e),
                'response_time': round((time.time() - start_time) * 1000, 2),
                'error': type(e).__name__,
            }

    async def check_connection(self, uid: str) -> bool:
        """True when ``uid`` is connected and answers a ping."""
        client = self._clients.get(uid)
        if client is None:
            return False
        return await client.ping()

    async def disconnect(self, uid: str) -> None:
        """Destroy and forget the client registered under ``uid``."""
        client = self._clients.pop(uid, None)
        if client is not None:
            await client.destroy()

    def get_client(self, uid: str) -> DatabaseClient:
        """Get a connected client.

        Raises:
            NotConnectedError: If nothing is connected under ``uid``.
        """
        client = self._clients.get(uid)
        if client is None:
            raise NotConnectedError(f"Connection '{uid}' is not open")
        return client

    def get_connection_status(self) -> Dict[str, Any]:
        """Get status of configured and open connections."""
        configured = self.config.connections if self.config else {}
        status: Dict[str, Any] = {
            'total_configured': len(configured),
            'total_active': len(self._clients),
            'default_connection': self.config.default_connection if self.config else None,
            'connections': {},
        }

        for name in sorted(set(configured) | set(self._clients)):
            client = self._clients.get(name)
            status['connections'][name] = {
                'active': client is not None,
                'pooled': client.context.pooled if client else configured[name].is_pooled,
                'schema': client.context.schema if client else configured[name].schema_name,
            }

        return status

    async def close_all(self) -> None:
        """Disconnect every open client; the first failure is re-raised after all are tried."""
        first_error: Optional[DatabaseError] = None
        for uid in list(self._clients):
            try:
                await self.disconnect(uid)
            except DatabaseError as e:
                logger.warning(f"Failed to close '{uid}': {e}")
                first_error = first_error or e

        if first_error is not None:
            raise first_error


# Global connection manager instance
_connection_manager: Optional[ConnectionManager] = None


def get_connection_manager(config: Optional[SQLBridgeConfig] = None) -> ConnectionManager:
    """Get the global connection manager instance.

    Args:
        config: Configuration used when the manager is first created.
    """
    global _connection_manager

    if _connection_manager is None:
        _connection_manager = ConnectionManager(config)

    return _connection_manager


def set_connection_manager(manager: Optional[ConnectionManager]) -> None:
    """Set (or with None, reset) the global connection manager instance."""
    global _connection_manager
    _connection_manager = manager
