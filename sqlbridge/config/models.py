"""Pydantic models for SQLBridge configuration."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import (
    BaseModel,
    Field,
    field_validator,
    model_validator,
    AliasChoices,
    ConfigDict,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import URL


class ClientType(str, Enum):
    """Supported database client families."""
    POSTGRESQL = "pg"


class ConnectionParams(BaseModel):
    """Connection parameters for one logical client.

    Immutable once a client is constructed. ``pool_size`` greater than zero
    selects pooled mode, otherwise a single persistent connection is used.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    uid: str = Field(default="default", description="Identifier of the logical connection")
    client: ClientType = Field(
        default=ClientType.POSTGRESQL,
        validation_alias=AliasChoices("client", "type", "driver"),
    )
    host: str = "localhost"
    port: Optional[int] = None
    user: Optional[str] = Field(default=None, validation_alias=AliasChoices("user", "username"))
    password: Optional[str] = None
    database: Optional[str] = None
    schema_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("schema", "schema_name"),
    )  # Renamed to avoid BaseModel conflict
    pool_size: int = Field(default=0, ge=0, le=1000, validation_alias=AliasChoices("pool_size", "poolSize"))
    ssl: bool = False
    application_name: str = "sqlbridge"
    connect_timeout: int = Field(default=10, ge=1, le=3600)
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('port')
    def validate_port(cls, v):
        """Validate port number range."""
        if v is not None and (v < 1 or v > 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @model_validator(mode='after')
    def set_default_port(self):
        """Fill in the dialect's default port."""
        if self.port is None and self.client == ClientType.POSTGRESQL:
            object.__setattr__(self, 'port', 5432)
        return self

    @property
    def is_pooled(self) -> bool:
        """True when the client should open a pool instead of one connection."""
        return self.pool_size > 0

    def url(self) -> URL:
        """Build the SQLAlchemy URL for the async psycopg driver."""
        query = {k: str(v) for k, v in self.options.items()}
        if self.ssl and 'sslmode' not in query:
            query['sslmode'] = 'require'

        return URL.create(
            drivername="postgresql+psycopg",
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
            query=query,
        )

    def redacted(self) -> Dict[str, Any]:
        """Dump parameters with the password masked, for logs and CLI output."""
        data = self.model_dump(by_alias=False)
        if data.get('password'):
            data['password'] = '***'
        return data


class SQLBridgeConfig(BaseModel):
    """Main configuration model: named connection profiles."""
    connections: Dict[str, ConnectionParams]
    default_connection: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def assign_profile_uids(cls, data: Any) -> Any:
        """Use the profile name as uid when a profile does not set one."""
        if isinstance(data, dict) and isinstance(data.get('connections'), dict):
            connections = {}
            for name, profile in data['connections'].items():
                if isinstance(profile, dict) and 'uid' not in profile:
                    profile = {**profile, 'uid': name}
                connections[name] = profile
            data = {**data, 'connections': connections}
        return data

    @model_validator(mode='after')
    def validate_default_connection(self):
        """Ensure default_connection exists, or pick the first profile."""
        if self.default_connection and self.default_connection not in self.connections:
            raise ValueError(f"default_connection '{self.default_connection}' not found in connections")
        if not self.default_connection and self.connections:
            self.default_connection = next(iter(self.connections))
        return self


class EnvironmentSettings(BaseSettings):
    """Environment-specific settings."""

    model_config = SettingsConfigDict(env_prefix="SQLBRIDGE_", case_sensitive=False)

    log_level: str = Field(default="WARNING")
    debug: bool = Field(default=False)
    config_file: Optional[str] = Field(default=None)
