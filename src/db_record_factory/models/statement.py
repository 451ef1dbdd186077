"""Statement, pagination and record models."""

import math
from typing import Any, Generic, Literal, Mapping, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from db_record_factory.utils.serialization import convert_rows_to_json_safe, dumps

StatementValue = Union[str, int, float, bool, None, list[Any], dict[str, Any]]
Statement = Mapping[str, StatementValue]
Row = dict[str, Any]

RowT = TypeVar("RowT")


class BaseRecord(BaseModel):
    """Lifecycle fields every stored record carries.

    Timestamps are epoch milliseconds. Subclass to describe a table's rows and
    pass the subclass as ``model`` to get validated records back instead of
    plain dicts.
    """

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    id: Optional[Union[str, int]] = Field(None, description="Primary key")
    created_at: int = Field(..., description="Creation time (epoch ms)")
    updated_at: int = Field(..., description="Last write time (epoch ms)")
    meta: Optional[dict[str, Any]] = Field(None, description="Free-form metadata")


class OrderBy(BaseModel):
    """Sort order for paginated reads."""

    field: str = Field(..., description="Field to sort by (camelCase or snake_case)")
    direction: Literal["ASC", "DESC"] = Field(default="ASC")

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v


class PaginateOptions(BaseModel):
    """Page request: 1-based page number, page size, filter and ordering."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    page: int = Field(..., ge=1, description="1-based page number")
    page_size: int = Field(..., ge=1, description="Rows per page")
    where: Optional[dict[str, Any]] = Field(
        None, description="Equality filter, ANDed"
    )
    order_by: Optional[OrderBy] = Field(
        None, description="Sort order; defaults to created_at DESC"
    )

    @property
    def offset(self) -> int:
        """Rows to skip before this page."""
        return (self.page - 1) * self.page_size


class PaginatedResult(BaseModel, Generic[RowT]):
    """One page of rows plus the totals of the full filtered set."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    data: list[RowT] = Field(default_factory=list)
    total_count: int = Field(..., ge=0)
    total_pages: int = Field(..., ge=0)
    current_page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)

    @classmethod
    def build(
        cls, data: list[RowT], total_count: int, page: int, page_size: int
    ) -> "PaginatedResult[RowT]":
        """Assemble a page, deriving ``total_pages`` from the total count."""
        return cls(
            data=data,
            total_count=total_count,
            total_pages=math.ceil(total_count / page_size),
            current_page=page,
            page_size=page_size,
        )

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe envelope with camelCase keys, as route handlers return it."""
        envelope = self.model_dump(by_alias=True, exclude={"data"})
        envelope["data"] = convert_rows_to_json_safe(
            [row.model_dump() if isinstance(row, BaseModel) else row for row in self.data]
        )
        return envelope

    def to_json(self) -> str:
        """Serialize the envelope with orjson."""
        return dumps(self.to_dict())
