"""Reflected table and column information models."""

from typing import Optional

from pydantic import BaseModel, Field


class ColumnInfo(BaseModel):
    """Information about a table column."""

    name: str = Field(..., description="Column name")
    data_type: str = Field(..., description="Column data type")
    nullable: bool = Field(..., description="Whether column allows NULL")
    default: Optional[str] = Field(None, description="Default value expression")
    primary_key: bool = Field(
        default=False, description="Whether column is part of primary key"
    )
    is_json: bool = Field(
        default=False, description="Whether column stores JSON/JSONB documents"
    )
    comment: Optional[str] = Field(None, description="Column comment/description")


class TableColumns(BaseModel):
    """Column layout of a single table, as used to configure an accessor."""

    name: str = Field(..., description="Table name")
    table_schema: Optional[str] = Field(None, description="Schema name")
    columns: list[ColumnInfo] = Field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        return [col.name for col in self.columns]

    @property
    def json_columns(self) -> list[str]:
        return [col.name for col in self.columns if col.is_json]

    @property
    def primary_key(self) -> list[str]:
        return [col.name for col in self.columns if col.primary_key]

    def get_column(self, name: str) -> Optional[ColumnInfo]:
        """Get column by name."""
        for col in self.columns:
            if col.name == name:
                return col
        return None
