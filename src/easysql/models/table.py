"""Table, column and paging models."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from easysql.models.query import CellValue


class TableInfo(BaseModel):
    """A table or view with its row count."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., description="Table or view name")
    rows: int = Field(
        default=0,
        description="Row count; a catalog estimate except on SQLite, where it is exact",
    )
    is_view: bool = Field(default=False, alias="isView")


class ColumnInfo(BaseModel):
    """Column metadata as reported by the engine."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., description="Column name")
    data_type: str = Field(
        ..., alias="type", description="Engine type name, not normalised across engines"
    )
    nullable: bool = Field(default=True)
    key: Optional[str] = Field(None, description="Key role, e.g. PRI")
    comment: Optional[str] = Field(None, description="Column comment (MySQL only)")

    @property
    def is_primary_key(self) -> bool:
        return self.key == "PRI"


class TableDataResult(BaseModel):
    """One page of table rows plus column metadata."""

    model_config = ConfigDict(populate_by_name=True)

    columns: list[ColumnInfo] = Field(default_factory=list)
    rows: list[list[CellValue]] = Field(default_factory=list)
    total: int = Field(default=0, description="Exact row count of the table")
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=100, ge=1, alias="pageSize")
    error: Optional[str] = Field(None, description="Set when a read failed")

    @property
    def page_count(self) -> int:
        if self.total <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size


class PrimaryKey(BaseModel):
    """Column/value pair identifying the row to change."""

    column: str
    value: Any = None
