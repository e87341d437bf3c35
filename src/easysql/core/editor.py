"""Single-row UPDATE and DELETE by primary key."""

import logging
from typing import Any, Optional

from sqlalchemy import text

from easysql.core.executor import QueryExecutor
from easysql.models.query import QueryResult
from easysql.models.table import PrimaryKey

logger = logging.getLogger(__name__)

INVALID_ARGUMENTS = "Invalid arguments"


class RowEditor:
    """Builds row mutations with quoted identifiers and bound values."""

    def __init__(self, executor: QueryExecutor):
        self.executor = executor

    async def update_row(
        self,
        session_id: str,
        database: Optional[str],
        table: str,
        primary_key: PrimaryKey,
        updates: dict[str, Any],
    ) -> QueryResult:
        """
        Update the row whose primary key column equals the given value.

        Args:
            session_id: Registered session id
            database: Database holding the table
            table: Table name
            primary_key: Key column and value identifying the row
            updates: Column name to new value

        Returns:
            Write result with the affected row count, or an error result
        """
        if not table or not primary_key.column or not updates:
            return QueryResult.failure(INVALID_ARGUMENTS)
        if any(not column for column in updates):
            return QueryResult.failure(INVALID_ARGUMENTS)

        info = self.executor.registry.get(session_id)
        if info is None:
            return QueryResult.failure("Not connected")

        adapter = info.adapter
        assignments = []
        params: dict[str, Any] = {}
        for index, (column, value) in enumerate(updates.items()):
            assignments.append(f"{adapter.quote_for_text(column)} = :v{index}")
            params[f"v{index}"] = value
        params["pk"] = primary_key.value

        statement = text(
            f"UPDATE {adapter.qualify_for_text(database, table)} "
            f"SET {', '.join(assignments)} "
            f"WHERE {adapter.quote_for_text(primary_key.column)} = :pk"
        )
        logger.debug(f"Updating {table} where {primary_key.column} on '{session_id}'")

        async with info.lease():
            return await self.executor.run(info, statement, params, database)

    async def delete_row(
        self,
        session_id: str,
        database: Optional[str],
        table: str,
        primary_key: PrimaryKey,
    ) -> QueryResult:
        """Delete the row whose primary key column equals the given value."""
        if not table or not primary_key.column:
            return QueryResult.failure(INVALID_ARGUMENTS)

        info = self.executor.registry.get(session_id)
        if info is None:
            return QueryResult.failure("Not connected")

        adapter = info.adapter
        statement = text(
            f"DELETE FROM {adapter.qualify_for_text(database, table)} "
            f"WHERE {adapter.quote_for_text(primary_key.column)} = :pk"
        )

        async with info.lease():
            return await self.executor.run(
                info, statement, {"pk": primary_key.value}, database
            )
