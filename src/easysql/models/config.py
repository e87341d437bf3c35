"""Connection configuration models."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

LOOPBACK_HOST = "127.0.0.1"


def resolve_host(host: str) -> str:
    """Rewrite the literal ``localhost`` to the IPv4 loopback address.

    Drivers would otherwise hand the name to the OS resolver, which may
    prefer ``::1`` where the server only listens on IPv4.
    """
    if host == "localhost":
        return LOOPBACK_HOST
    return host


class SSHSettings(BaseModel):
    """SSH endpoint and credentials used to reach a remote database."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(..., description="SSH server host")
    port: int = Field(default=22, ge=1, le=65535, description="SSH server port")
    user: str = Field(default="", description="SSH login user")
    password: Optional[str] = Field(None, description="SSH password")
    key_path: Optional[str] = Field(
        None, description="Private key file; takes precedence over the password"
    )


class PoolSettings(BaseModel):
    """Pool sizing for one engine."""

    model_config = ConfigDict(frozen=True)

    max_connections: int = Field(default=10, ge=1, le=100)
    min_connections: int = Field(default=1, ge=0, le=100)
    acquire_timeout: int = Field(
        default=30, ge=1, le=300, description="Pool checkout timeout in seconds"
    )
    idle_timeout: Optional[int] = Field(
        default=600, ge=1, description="Recycle connections older than this (seconds)"
    )


LIVE_POOL = PoolSettings()
PROBE_POOL = PoolSettings(
    max_connections=1, min_connections=1, acquire_timeout=10, idle_timeout=None
)
SQLITE_POOL = PoolSettings(max_connections=5, min_connections=0, idle_timeout=None)


class ConnectionConfig(BaseModel):
    """How to reach one database.

    Field aliases match the camelCase JSON the presentation layer persists,
    so a saved ``connections.json`` validates without translation.
    """

    id: str = Field(..., min_length=1, description="Caller-assigned session id")
    db_type: str = Field(
        ...,
        alias="type",
        description="Engine kind (mysql, mariadb, postgres, sqlite, sqlserver)",
    )
    name: str = Field(default="", description="Display name")
    host: str = Field(default="localhost", description="Server host or SQLite path")
    port: int = Field(default=0, ge=0, le=65535, description="Server port")
    username: str = Field(default="")
    password: str = Field(default="")
    database: Optional[str] = Field(None, description="Default database")
    ssh_enabled: Optional[bool] = Field(None, alias="sshEnabled")
    ssh_host: Optional[str] = Field(None, alias="sshHost")
    ssh_port: Optional[int] = Field(None, alias="sshPort", ge=1, le=65535)
    ssh_user: Optional[str] = Field(None, alias="sshUser")
    ssh_password: Optional[str] = Field(None, alias="sshPassword")
    ssh_key: Optional[str] = Field(None, alias="sshKey")

    @property
    def engine(self) -> str:
        """Normalised engine name used for adapter lookup."""
        return self.db_type.strip().lower()

    @property
    def ssh_settings(self) -> Optional[SSHSettings]:
        """SSH parameters, or None when no tunnel was requested."""
        if not self.ssh_enabled or not self.ssh_host:
            return None
        return SSHSettings(
            host=self.ssh_host,
            port=self.ssh_port or 22,
            user=self.ssh_user or "",
            password=self.ssh_password,
            key_path=self.ssh_key,
        )

    @property
    def sqlite_path(self) -> str:
        """File path for SQLite configs (database field, falling back to host)."""
        return self.database or self.host

    def to_json_dict(self) -> dict:
        """Dump using the persisted camelCase field names."""
        return self.model_dump(by_alias=True)

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "id": "local-pg",
                    "type": "postgres",
                    "name": "Local Postgres",
                    "host": "localhost",
                    "port": 5432,
                    "username": "postgres",
                    "password": "secret",
                    "database": "app",
                    "sshEnabled": False,
                }
            ]
        },
    )
