"""easysql MCP Server

A Model Context Protocol (MCP) server that connects to MySQL/MariaDB,
PostgreSQL, SQLite and SQL Server databases (optionally through an SSH
tunnel), runs SQL and browses schemas by session id.
"""

import asyncio
import json
import logging
import os
from typing import Any, Optional

from dotenv import load_dotenv
from mcp.server import Server
from mcp.types import TextContent, Tool
from pydantic import ValidationError

from easysql.adapters import supported_types
from easysql.core.exporter import EXPORT_FORMATS
from easysql.models.config import ConnectionConfig
from easysql.models.query import CommandResult
from easysql.models.table import PrimaryKey
from easysql.service import DatabaseService

logger = logging.getLogger(__name__)

# Response size limits (in characters) for MCP tool responses
MAX_RESPONSE_COMMAND = 2000  # connect/disconnect/mutation outcomes
MAX_RESPONSE_LIST_DATABASES = 3000  # Database listings
MAX_RESPONSE_LIST_TABLES = 5000  # Table listings with row counts
MAX_RESPONSE_DESCRIBE_TABLE = 8000  # Column metadata
MAX_RESPONSE_TABLE_DATA = 10000  # One page of table rows
MAX_RESPONSE_EXECUTE_QUERY = 10000  # Query results

SESSION_ID_SCHEMA = {"type": "string", "description": "Session id used in connect"}
DATABASE_SCHEMA = {
    "type": "string",
    "description": "Database name (SQLite always uses 'main')",
}


def truncate_json_response(data: str, max_length: int) -> str:
    """
    Truncate JSON response to a maximum length while preserving JSON structure.

    Args:
        data: JSON string to truncate
        max_length: Maximum length in characters

    Returns:
        Truncated JSON string with truncation notice if needed
    """
    if len(data) <= max_length:
        return data

    truncation_msg = (
        f"\n\n... [Response truncated: {len(data)} chars -> {max_length} chars]"
    )
    available_length = max_length - len(truncation_msg)

    if available_length < 100:
        return json.dumps(
            {
                "error": "Response too large",
                "original_size": len(data),
                "limit": max_length,
                "message": "Response exceeds size limit. Use paging or a narrower query.",
            },
            indent=2,
        )

    truncated = data[:available_length]

    # Prefer cutting at a line end when one is close to the limit
    last_newline = truncated.rfind("\n")
    if last_newline > available_length * 0.8:
        truncated = truncated[:last_newline]

    return truncated + truncation_msg


def _text_response(payload: Any, max_length: int) -> list[TextContent]:
    response = json.dumps(payload, indent=2)
    return [TextContent(type="text", text=truncate_json_response(response, max_length))]


def _config_schema() -> dict[str, Any]:
    return {
        "type": "object",
        "description": "Connection config with the saved camelCase keys",
        "properties": {
            "id": {"type": "string"},
            "type": {"type": "string", "enum": supported_types()},
            "name": {"type": "string"},
            "host": {
                "type": "string",
                "description": "Server host, or the file path for SQLite",
            },
            "port": {"type": "integer"},
            "username": {"type": "string"},
            "password": {"type": "string"},
            "database": {"type": "string"},
            "sshEnabled": {"type": "boolean"},
            "sshHost": {"type": "string"},
            "sshPort": {"type": "integer"},
            "sshUser": {"type": "string"},
            "sshPassword": {"type": "string"},
            "sshKey": {"type": "string", "description": "Private key file path"},
        },
        "required": ["id", "type"],
    }


def _table_arguments_schema(
    extra: Optional[dict[str, Any]] = None, required: tuple[str, ...] = ()
) -> dict[str, Any]:
    properties = {
        "session_id": SESSION_ID_SCHEMA,
        "database": DATABASE_SCHEMA,
        "table": {"type": "string", "description": "Table name"},
    }
    properties.update(extra or {})
    return {
        "type": "object",
        "properties": properties,
        "required": ["session_id", "table", *required],
    }


class EasySQLMCPServer:
    """MCP server exposing the easysql command surface."""

    def __init__(self, service: Optional[DatabaseService] = None):
        """
        Initialize the MCP server.

        Args:
            service: Command surface to expose; a default one when not given
        """
        self.service = service if service is not None else DatabaseService()
        self.server = Server("easysql-mcp")

    def list_tools(self) -> list[Tool]:
        return [
            self._create_test_connection_tool(),
            self._create_connect_tool(),
            self._create_disconnect_tool(),
            self._create_list_sessions_tool(),
            self._create_execute_query_tool(),
            self._create_list_databases_tool(),
            self._create_list_tables_tool(),
            self._create_describe_table_tool(),
            self._create_get_table_data_tool(),
            self._create_update_row_tool(),
            self._create_delete_row_tool(),
            self._create_export_table_tool(),
            self._create_backup_database_tool(),
            self._create_save_connections_tool(),
            self._create_load_connections_tool(),
        ]

    def _create_test_connection_tool(self) -> Tool:
        """Create test_connection tool."""
        return Tool(
            name="test_connection",
            description="Check that a connection config works without keeping a session",
            inputSchema={
                "type": "object",
                "properties": {"config": _config_schema()},
                "required": ["config"],
            },
        )

    def _create_connect_tool(self) -> Tool:
        """Create connect tool."""
        return Tool(
            name="connect",
            description=(
                "Open a session for a connection config. The config id becomes the "
                "session id; an existing session with that id is replaced."
            ),
            inputSchema={
                "type": "object",
                "properties": {"config": _config_schema()},
                "required": ["config"],
            },
        )

    def _create_disconnect_tool(self) -> Tool:
        """Create disconnect tool."""
        return Tool(
            name="disconnect",
            description="Close a session",
            inputSchema={
                "type": "object",
                "properties": {"session_id": SESSION_ID_SCHEMA},
                "required": ["session_id"],
            },
        )

    def _create_list_sessions_tool(self) -> Tool:
        """Create list_sessions tool."""
        return Tool(
            name="list_sessions",
            description="List open sessions",
            inputSchema={"type": "object", "properties": {}, "required": []},
        )

    def _create_execute_query_tool(self) -> Tool:
        """Create execute_query tool."""
        return Tool(
            name="execute_query",
            description=(
                "Run one SQL statement. Reads return columns and rows, other "
                "statements return the affected row count."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "session_id": SESSION_ID_SCHEMA,
                    "query": {"type": "string", "description": "SQL statement"},
                    "timeout": {
                        "type": "number",
                        "description": "Seconds to wait before giving up",
                    },
                },
                "required": ["session_id", "query"],
            },
        )

    def _create_list_databases_tool(self) -> Tool:
        """Create list_databases tool."""
        return Tool(
            name="list_databases",
            description="List databases visible to a session",
            inputSchema={
                "type": "object",
                "properties": {"session_id": SESSION_ID_SCHEMA},
                "required": ["session_id"],
            },
        )

    def _create_list_tables_tool(self) -> Tool:
        """Create list_tables tool."""
        return Tool(
            name="list_tables",
            description="List tables and views with row counts (estimates except SQLite)",
            inputSchema={
                "type": "object",
                "properties": {
                    "session_id": SESSION_ID_SCHEMA,
                    "database": DATABASE_SCHEMA,
                },
                "required": ["session_id"],
            },
        )

    def _create_describe_table_tool(self) -> Tool:
        """Create describe_table tool."""
        return Tool(
            name="describe_table",
            description="List the columns of a table with type, nullability and key",
            inputSchema=_table_arguments_schema(),
        )

    def _create_get_table_data_tool(self) -> Tool:
        """Create get_table_data tool."""
        return Tool(
            name="get_table_data",
            description="Read one page of table rows in natural order with the total",
            inputSchema=_table_arguments_schema(
                {
                    "page": {"type": "integer", "default": 1, "minimum": 1},
                    "page_size": {"type": "integer", "default": 100, "minimum": 1},
                }
            ),
        )

    def _create_update_row_tool(self) -> Tool:
        """Create update_row tool."""
        return Tool(
            name="update_row",
            description="Update one row identified by a primary key column and value",
            inputSchema=_table_arguments_schema(
                {
                    "primary_key": {
                        "type": "object",
                        "properties": {"column": {"type": "string"}, "value": {}},
                        "required": ["column", "value"],
                    },
                    "updates": {
                        "type": "object",
                        "description": "Column name to new value",
                    },
                },
                required=("primary_key", "updates"),
            ),
        )

    def _create_delete_row_tool(self) -> Tool:
        """Create delete_row tool."""
        return Tool(
            name="delete_row",
            description="Delete one row identified by a primary key column and value",
            inputSchema=_table_arguments_schema(
                {
                    "primary_key": {
                        "type": "object",
                        "properties": {"column": {"type": "string"}, "value": {}},
                        "required": ["column", "value"],
                    },
                },
                required=("primary_key",),
            ),
        )

    def _create_export_table_tool(self) -> Tool:
        """Create export_table tool."""
        return Tool(
            name="export_table",
            description="Write every row of a table to a local CSV or SQL file",
            inputSchema=_table_arguments_schema(
                {
                    "path": {"type": "string", "description": "Destination file"},
                    "format": {
                        "type": "string",
                        "enum": list(EXPORT_FORMATS),
                        "default": "csv",
                    },
                },
                required=("path",),
            ),
        )

    def _create_backup_database_tool(self) -> Tool:
        """Create backup_database tool."""
        return Tool(
            name="backup_database",
            description="Write a SQL script restoring every table of a database",
            inputSchema={
                "type": "object",
                "properties": {
                    "session_id": SESSION_ID_SCHEMA,
                    "database": DATABASE_SCHEMA,
                    "path": {"type": "string", "description": "Destination file"},
                },
                "required": ["session_id", "path"],
            },
        )

    def _create_save_connections_tool(self) -> Tool:
        """Create save_connections tool."""
        return Tool(
            name="save_connections",
            description="Replace the saved connection list",
            inputSchema={
                "type": "object",
                "properties": {
                    "connections": {"type": "array", "items": _config_schema()}
                },
                "required": ["connections"],
            },
        )

    def _create_load_connections_tool(self) -> Tool:
        """Create load_connections tool."""
        return Tool(
            name="load_connections",
            description="Read the saved connection list",
            inputSchema={"type": "object", "properties": {}, "required": []},
        )

    async def handle_test_connection(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle test_connection request."""
        try:
            config = ConnectionConfig.model_validate(arguments["config"])
        except ValidationError as e:
            result = CommandResult.fail(f"Invalid config: {e}")
        else:
            result = await self.service.test(config)
        return _text_response(result.model_dump(by_alias=True), MAX_RESPONSE_COMMAND)

    async def handle_connect(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle connect request."""
        try:
            config = ConnectionConfig.model_validate(arguments["config"])
        except ValidationError as e:
            result = CommandResult.fail(f"Invalid config: {e}")
        else:
            result = await self.service.connect(config)
        return _text_response(result.model_dump(by_alias=True), MAX_RESPONSE_COMMAND)

    async def handle_disconnect(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle disconnect request."""
        result = await self.service.disconnect(arguments["session_id"])
        return _text_response(result.model_dump(by_alias=True), MAX_RESPONSE_COMMAND)

    async def handle_list_sessions(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle list_sessions request."""
        sessions = [
            {"id": config.id, "type": config.db_type, "name": config.name}
            for config in self.service.sessions()
        ]
        return _text_response(sessions, MAX_RESPONSE_COMMAND)

    async def handle_execute_query(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle execute_query request."""
        result = await self.service.query(
            arguments["session_id"], arguments["query"], arguments.get("timeout")
        )
        return _text_response(
            result.model_dump(by_alias=True), MAX_RESPONSE_EXECUTE_QUERY
        )

    async def handle_list_databases(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle list_databases request."""
        databases = await self.service.list_databases(arguments["session_id"])
        return _text_response(databases, MAX_RESPONSE_LIST_DATABASES)

    async def handle_list_tables(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle list_tables request."""
        tables = await self.service.list_tables(
            arguments["session_id"], arguments.get("database")
        )
        return _text_response(
            [t.model_dump(by_alias=True) for t in tables], MAX_RESPONSE_LIST_TABLES
        )

    async def handle_describe_table(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle describe_table request."""
        columns = await self.service.list_columns(
            arguments["session_id"], arguments.get("database"), arguments["table"]
        )
        return _text_response(
            [c.model_dump(by_alias=True) for c in columns],
            MAX_RESPONSE_DESCRIBE_TABLE,
        )

    async def handle_get_table_data(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle get_table_data request."""
        result = await self.service.get_page(
            arguments["session_id"],
            arguments.get("database"),
            arguments["table"],
            int(arguments.get("page", 1)),
            int(arguments.get("page_size", 100)),
        )
        return _text_response(result.model_dump(by_alias=True), MAX_RESPONSE_TABLE_DATA)

    async def handle_update_row(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle update_row request."""
        result = await self.service.update_row(
            arguments["session_id"],
            arguments.get("database"),
            arguments["table"],
            PrimaryKey.model_validate(arguments["primary_key"]),
            dict(arguments.get("updates") or {}),
        )
        return _text_response(result.model_dump(by_alias=True), MAX_RESPONSE_COMMAND)

    async def handle_delete_row(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle delete_row request."""
        result = await self.service.delete_row(
            arguments["session_id"],
            arguments.get("database"),
            arguments["table"],
            PrimaryKey.model_validate(arguments["primary_key"]),
        )
        return _text_response(result.model_dump(by_alias=True), MAX_RESPONSE_COMMAND)

    async def handle_export_table(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle export_table request."""
        result = await self.service.export_table(
            arguments["session_id"],
            arguments.get("database"),
            arguments["table"],
            arguments["path"],
            arguments.get("format", "csv"),
        )
        return _text_response(result.model_dump(by_alias=True), MAX_RESPONSE_COMMAND)

    async def handle_backup_database(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle backup_database request."""
        result = await self.service.backup_database(
            arguments["session_id"], arguments.get("database"), arguments["path"]
        )
        return _text_response(result.model_dump(by_alias=True), MAX_RESPONSE_COMMAND)

    async def handle_save_connections(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle save_connections request."""
        try:
            configs = [
                ConnectionConfig.model_validate(item)
                for item in arguments["connections"]
            ]
        except ValidationError as e:
            result = CommandResult.fail(f"Invalid config: {e}")
        else:
            result = self.service.save_connections(configs)
        return _text_response(result.model_dump(by_alias=True), MAX_RESPONSE_COMMAND)

    async def handle_load_connections(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle load_connections request."""
        configs = self.service.load_connections()
        return _text_response(
            [config.to_json_dict() for config in configs], MAX_RESPONSE_LIST_TABLES
        )

    async def call_tool(
        self, name: str, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Dispatch a tool call to its handler."""
        handlers = {
            "test_connection": self.handle_test_connection,
            "connect": self.handle_connect,
            "disconnect": self.handle_disconnect,
            "list_sessions": self.handle_list_sessions,
            "execute_query": self.handle_execute_query,
            "list_databases": self.handle_list_databases,
            "list_tables": self.handle_list_tables,
            "describe_table": self.handle_describe_table,
            "get_table_data": self.handle_get_table_data,
            "update_row": self.handle_update_row,
            "delete_row": self.handle_delete_row,
            "export_table": self.handle_export_table,
            "backup_database": self.handle_backup_database,
            "save_connections": self.handle_save_connections,
            "load_connections": self.handle_load_connections,
        }

        handler = handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")

        return await handler(arguments or {})

    def register_handlers(self) -> None:
        """Wire list_tools and call_tool into the underlying MCP server."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            """List available tools."""
            return self.list_tools()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Handle tool calls."""
            return await self.call_tool(name, arguments)

    async def cleanup(self) -> None:
        """Cleanup resources."""
        await self.service.close()
        logger.info("easysql MCP server cleaned up")


def _query_timeout_from_env() -> Optional[float]:
    value = os.getenv("EASYSQL_QUERY_TIMEOUT")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid EASYSQL_QUERY_TIMEOUT={value!r}")
        return None


async def main() -> None:
    """Main entry point for the MCP server."""
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("EASYSQL_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    mcp_server = EasySQLMCPServer(
        DatabaseService(query_timeout=_query_timeout_from_env())
    )
    mcp_server.register_handlers()

    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await mcp_server.server.run(
                read_stream,
                write_stream,
                mcp_server.server.create_initialization_options(),
            )
    finally:
        await mcp_server.cleanup()


def cli_entry() -> None:
    """
    Synchronous entry point for console script.

    This function is called by the 'easysql-mcp' console script.
    It sets up the event loop and runs the async main() function.
    """
    # Windows-specific event loop policy
    if os.name == "nt":
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())  # type: ignore[attr-defined]

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    cli_entry()
