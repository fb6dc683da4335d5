"""
Query argument schemas.

These models describe the declarative query objects accepted by the
repositories: field filters, sort specifications, pagination, selection and
aggregation requests. Structural problems are rejected here, before the query
builder turns anything into SQL.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class QueryMode(str, Enum):
    DEFAULT = "default"
    INSENSITIVE = "insensitive"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class NullsOrder(str, Enum):
    FIRST = "first"
    LAST = "last"


class _StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


# Field filters

class ScalarFilter(_StrictModel):
    """Operators accepted by every scalar field. Unset operators are ignored."""

    equals: Any = None
    in_: Optional[List[Any]] = Field(None, alias="in")
    not_in: Optional[List[Any]] = None
    not_: Any = Field(None, alias="not")


class ComparableFilter(ScalarFilter):
    lt: Any = None
    lte: Any = None
    gt: Any = None
    gte: Any = None


class StringFilter(ComparableFilter):
    contains: Optional[str] = None
    starts_with: Optional[str] = None
    ends_with: Optional[str] = None
    mode: QueryMode = QueryMode.DEFAULT


class StringListFilter(_StrictModel):
    equals: Optional[List[str]] = None
    has: Optional[str] = None
    has_every: Optional[List[str]] = None
    has_some: Optional[List[str]] = None
    is_empty: Optional[bool] = None


class SortSpec(_StrictModel):
    sort: SortOrder
    nulls: Optional[NullsOrder] = None


# Atomic field updates

class IntFieldUpdate(_StrictModel):
    set: Optional[int] = None
    increment: Optional[int] = None
    decrement: Optional[int] = None
    multiply: Optional[int] = None
    divide: Optional[int] = None

    @model_validator(mode="after")
    def single_operation(self):
        if len(self.model_fields_set) != 1:
            raise ValueError("Exactly one of set, increment, decrement, multiply, divide is allowed")
        return self


class DecimalFieldUpdate(IntFieldUpdate):
    set: Optional[Decimal] = None
    increment: Optional[Decimal] = None
    decrement: Optional[Decimal] = None
    multiply: Optional[Decimal] = None
    divide: Optional[Decimal] = None


class StringListUpdate(_StrictModel):
    set: Optional[List[str]] = None
    push: Optional[Union[str, List[str]]] = None

    @model_validator(mode="after")
    def single_operation(self):
        if len(self.model_fields_set) != 1:
            raise ValueError("Exactly one of set, push is allowed")
        return self


# Operation arguments

OrderByInput = Union[Dict[str, Any], List[Dict[str, Any]]]
SelectionInput = Dict[str, Union[bool, Dict[str, Any]]]


class FindArgs(_StrictModel):
    """Arguments of find_first / find_many and of nested to-many includes."""

    where: Optional[Dict[str, Any]] = None
    order_by: Optional[OrderByInput] = None
    cursor: Optional[Dict[str, Any]] = None
    take: Optional[int] = None
    skip: Optional[int] = Field(None, ge=0)
    distinct: Optional[List[str]] = None
    select: Optional[SelectionInput] = None
    include: Optional[SelectionInput] = None
    omit: Optional[Dict[str, bool]] = None

    @model_validator(mode="after")
    def select_or_include(self):
        if self.select is not None and self.include is not None:
            raise ValueError("Please either use `include` or `select`, but not both at the same time")
        return self


class AggregateArgs(_StrictModel):
    where: Optional[Dict[str, Any]] = None
    order_by: Optional[OrderByInput] = None
    cursor: Optional[Dict[str, Any]] = None
    take: Optional[int] = None
    skip: Optional[int] = Field(None, ge=0)
    count: Optional[Union[bool, Dict[str, bool]]] = Field(None, alias="_count")
    sum: Optional[Dict[str, bool]] = Field(None, alias="_sum")
    avg: Optional[Dict[str, bool]] = Field(None, alias="_avg")
    min: Optional[Dict[str, bool]] = Field(None, alias="_min")
    max: Optional[Dict[str, bool]] = Field(None, alias="_max")

    def requested(self) -> Dict[str, Dict[str, bool]]:
        """Aggregates keyed by their result name ("_count", "_sum", ...)."""
        result = {}
        for name in ("count", "sum", "avg", "min", "max"):
            value = getattr(self, name)
            if value is None:
                continue
            if value is True:
                value = {"_all": True}
            elif value is False:
                continue
            result[f"_{name}"] = {field: True for field, flag in value.items() if flag}
        return result


class GroupByArgs(AggregateArgs):
    by: List[str]
    having: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def check_grouping(self):
        if not self.by:
            raise ValueError("`by` must contain at least one field")
        if (self.take is not None or self.skip is not None) and not self.order_by:
            raise ValueError("Every group_by query with `take` or `skip` must also specify `order_by`")
        if self.cursor is not None:
            raise ValueError("`cursor` is not supported by group_by")
        return self
