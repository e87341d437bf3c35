"""Query and command result models."""

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# One decoded result cell
CellValue = Union[None, bool, int, float, str]

ResultKind = Literal["read", "write", "error"]


class QueryResult(BaseModel):
    """Outcome of one statement.

    ``kind`` tells the three shapes apart: a read carries columns and rows,
    a write carries ``affected_rows`` and an error carries ``error``. A read
    that matched zero rows is ``kind="read"`` with empty columns, which is
    how it differs from a write that touched zero rows.
    """

    model_config = ConfigDict(populate_by_name=True)

    kind: ResultKind = Field(..., description="read, write or error")
    columns: list[str] = Field(default_factory=list, description="Column names")
    rows: list[list[CellValue]] = Field(
        default_factory=list, description="Rows as positional cell lists"
    )
    error: Optional[str] = Field(None, description="Error message for failures")
    affected_rows: Optional[int] = Field(
        None, alias="affectedRows", description="Rows changed by a write"
    )

    @classmethod
    def read(
        cls, columns: list[str], rows: list[list[CellValue]]
    ) -> "QueryResult":
        return cls(kind="read", columns=columns, rows=rows)

    @classmethod
    def write(cls, affected_rows: int) -> "QueryResult":
        return cls(kind="write", affected_rows=affected_rows)

    @classmethod
    def failure(cls, message: str) -> "QueryResult":
        return cls(kind="error", error=message)

    @property
    def ok(self) -> bool:
        return self.kind != "error"

    @property
    def is_empty(self) -> bool:
        """Check if result set is empty."""
        return not self.rows

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def get_column_values(self, column: str) -> list[CellValue]:
        """Extract all values for a specific column."""
        index = self.columns.index(column)
        return [row[index] for row in self.rows]

    def to_table_string(self, max_rows: int = 10) -> str:
        """Format result as a simple table string."""
        if self.kind == "error":
            return f"Error: {self.error}"
        if self.kind == "write":
            return f"{self.affected_rows} row(s) affected"
        if self.is_empty:
            return "No rows returned"

        # Header
        result_lines = [" | ".join(self.columns)]
        result_lines.append("-" * len(result_lines[0]))

        for row in self.rows[:max_rows]:
            result_lines.append(
                " | ".join("NULL" if v is None else str(v) for v in row)
            )

        if len(self.rows) > max_rows:
            result_lines.append(f"... ({self.row_count - max_rows} more rows)")

        return "\n".join(result_lines)


class CommandResult(BaseModel):
    """Success flag and message returned by connect/disconnect/mutations."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    session_id: Optional[str] = Field(None, alias="sessionId")

    @classmethod
    def ok(cls, message: str, session_id: Optional[str] = None) -> "CommandResult":
        return cls(success=True, message=message, session_id=session_id)

    @classmethod
    def fail(cls, message: str) -> "CommandResult":
        return cls(success=False, message=message)
