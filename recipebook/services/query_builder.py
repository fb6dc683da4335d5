"""
Translation of declarative query objects into SQLAlchemy expressions.

A filter is a dict keyed by field name, relation name or one of the logical
operators AND / OR / NOT. Every key and operator is checked against the
mapped model before an expression is produced, so malformed arguments surface
as ValidationError without touching the database.
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import (
    JSON,
    DateTime,
    Integer,
    Numeric,
    String,
    and_,
    bindparam,
    exists,
    false,
    func,
    inspect,
    literal,
    not_,
    or_,
    select,
    true,
    type_coerce,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import RelationshipProperty
from sqlalchemy.sql.elements import ColumnElement

from recipebook.schemas.query import (
    ComparableFilter,
    NullsOrder,
    QueryMode,
    ScalarFilter,
    SortOrder,
    SortSpec,
    StringFilter,
    StringListFilter,
)
from recipebook.services.async_error_handler import ValidationError


class FieldKind(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    DATETIME = "datetime"
    ENUM = "enum"
    LIST = "list"


FILTER_MODELS = {
    FieldKind.STRING: StringFilter,
    FieldKind.INTEGER: ComparableFilter,
    FieldKind.DECIMAL: ComparableFilter,
    FieldKind.DATETIME: ComparableFilter,
    FieldKind.ENUM: ScalarFilter,
    FieldKind.LIST: StringListFilter,
}

NUMERIC_KINDS = {FieldKind.INTEGER, FieldKind.DECIMAL}
COMPARABLE_KINDS = {FieldKind.STRING, FieldKind.INTEGER, FieldKind.DECIMAL, FieldKind.DATETIME, FieldKind.ENUM}


def pydantic_to_validation_error(error: PydanticValidationError, path: Sequence[str]) -> ValidationError:
    first = error.errors()[0]
    location = [str(part) for part in first.get("loc", ())]
    return ValidationError(first.get("msg", str(error)), path=[*path, *location])


class ModelInfo:
    """Column, relation and uniqueness metadata of one mapped model."""

    def __init__(self, model: Type):
        self.model = model
        self.name = model.__name__
        self.entity = re.sub(r"(?<!^)(?=[A-Z])", "_", self.name).lower()
        mapper = inspect(model)
        self.columns = {prop.key: prop.columns[0] for prop in mapper.column_attrs}
        self.relationships: Dict[str, RelationshipProperty] = {rel.key: rel for rel in mapper.relationships}
        primary_keys = [key for key, column in self.columns.items() if column.primary_key]
        self.pk_name = primary_keys[0]
        self.unique_fields = {key for key, column in self.columns.items() if column.primary_key or column.unique}
        self.kinds = {key: _field_kind(column) for key, column in self.columns.items()}

    def attr(self, name: str):
        return getattr(self.model, name)

    def kind(self, name: str) -> FieldKind:
        return self.kinds[name]

    def is_numeric(self, name: str) -> bool:
        return self.kinds.get(name) in NUMERIC_KINDS

    def is_comparable(self, name: str) -> bool:
        return self.kinds.get(name) in COMPARABLE_KINDS

    def relation_target(self, name: str) -> "ModelInfo":
        return model_info(self.relationships[name].mapper.class_)

    def relation_keys(self, name: str) -> Tuple[str, str]:
        """(local attribute, remote attribute) joining this model to a relation."""
        relationship = self.relationships[name]
        local_column, remote_column = relationship.local_remote_pairs[0]
        target = inspect(relationship.mapper.class_)
        local_key = inspect(self.model).get_property_by_column(local_column).key
        remote_key = target.get_property_by_column(remote_column).key
        return local_key, remote_key

    def require_field(self, name: str, path: Sequence[str]) -> None:
        if name not in self.columns:
            raise ValidationError(f"Unknown field `{name}` for model {self.name}", path=[*path, name])


def _field_kind(column) -> FieldKind:
    column_type = column.type
    if isinstance(column_type, JSON):
        return FieldKind.LIST
    if isinstance(column_type, SAEnum):
        return FieldKind.ENUM
    if isinstance(column_type, String):
        return FieldKind.STRING
    if isinstance(column_type, Integer):
        return FieldKind.INTEGER
    if isinstance(column_type, Numeric):
        return FieldKind.DECIMAL
    if isinstance(column_type, DateTime):
        return FieldKind.DATETIME
    raise TypeError(f"Unsupported column type {column_type!r} on {column}")


@lru_cache(maxsize=None)
def model_info(model: Type) -> ModelInfo:
    return ModelInfo(model)


@dataclass
class OrderTerm:
    expression: ColumnElement
    order: SortOrder = SortOrder.ASC
    nulls: Optional[NullsOrder] = None

    def reversed(self) -> "OrderTerm":
        order = SortOrder.DESC if self.order == SortOrder.ASC else SortOrder.ASC
        nulls = None
        if self.nulls is not None:
            nulls = NullsOrder.LAST if self.nulls == NullsOrder.FIRST else NullsOrder.FIRST
        return OrderTerm(self.expression, order, nulls)

    def clause(self):
        clause = self.expression.desc() if self.order == SortOrder.DESC else self.expression.asc()
        if self.nulls == NullsOrder.FIRST:
            clause = clause.nulls_first()
        elif self.nulls == NullsOrder.LAST:
            clause = clause.nulls_last()
        return clause


class QueryBuilder:
    """
    Compiles filters and sort specifications for one SQL dialect.

    Args:
        dialect_name: Name of the SQLAlchemy dialect ("postgresql", "sqlite", ...)
    """

    def __init__(self, dialect_name: str):
        self.dialect_name = dialect_name

    # Filters

    def build_where(self, info: ModelInfo, where: Optional[Dict[str, Any]], path: Sequence[str] = ("where",)) -> ColumnElement:
        if where is None:
            return true()
        if not isinstance(where, dict):
            raise ValidationError("Filter must be an object", path=path)

        conditions = []
        for key, value in where.items():
            if key == "AND":
                items = value if isinstance(value, list) else [value]
                conditions.append(and_(true(), *[self.build_where(info, item, [*path, "AND"]) for item in items]))
            elif key == "OR":
                if not isinstance(value, list):
                    raise ValidationError("OR expects a list of filters", path=[*path, "OR"])
                conditions.append(or_(false(), *[self.build_where(info, item, [*path, "OR"]) for item in value]))
            elif key == "NOT":
                items = value if isinstance(value, list) else [value]
                conditions.extend(not_(self.build_where(info, item, [*path, "NOT"])) for item in items)
            elif key in info.columns:
                conditions.append(self._field_condition(info, key, value, [*path, key]))
            elif key in info.relationships:
                conditions.append(self._relation_condition(info, key, value, [*path, key]))
            else:
                raise ValidationError(f"Unknown argument `{key}` for model {info.name}", path=[*path, key])

        return and_(true(), *conditions)

    def build_unique_where(self, info: ModelInfo, where: Optional[Dict[str, Any]], path: Sequence[str] = ("where",)) -> ColumnElement:
        """A filter that must identify at most one row through a unique field."""
        if not where or not any(
            key in info.unique_fields and value is not None and not isinstance(value, dict)
            for key, value in where.items()
        ):
            unique = ", ".join(sorted(info.unique_fields))
            raise ValidationError(
                f"Argument `where` of type {info.name}WhereUniqueInput needs at least one of: {unique}",
                path=path,
            )
        return self.build_where(info, where, path)

    def _field_condition(self, info: ModelInfo, name: str, value: Any, path: List[str]) -> ColumnElement:
        return self.scalar_condition(info.attr(name), info.kind(name), value, path)

    def scalar_condition(self, column, kind: FieldKind, value: Any, path: List[str]) -> ColumnElement:
        """Filter on any scalar expression, a column or an aggregate."""
        if value is None:
            return column.is_(None)
        if not isinstance(value, dict):
            if kind == FieldKind.LIST:
                if not isinstance(value, list):
                    raise ValidationError("List fields must be compared to a list", path=path)
                return self._list_equals(column, value)
            return column == value

        try:
            parsed = FILTER_MODELS[kind].model_validate(value)
        except PydanticValidationError as e:
            raise pydantic_to_validation_error(e, path) from e

        if kind == FieldKind.LIST:
            return self._list_condition(column, parsed)

        insensitive = getattr(parsed, "mode", QueryMode.DEFAULT) == QueryMode.INSENSITIVE
        target = func.lower(column) if insensitive else column

        def fold(operand):
            return operand.lower() if insensitive and isinstance(operand, str) else operand

        conditions = []
        for operator in parsed.model_fields_set:
            operand = getattr(parsed, operator)
            if operator == "mode":
                continue
            if operator == "equals":
                conditions.append(column.is_(None) if operand is None else target == fold(operand))
            elif operator == "in_":
                conditions.append(target.in_([fold(item) for item in operand or []]))
            elif operator == "not_in":
                conditions.append(target.not_in([fold(item) for item in operand or []]))
            elif operator == "not_":
                if operand is None:
                    conditions.append(column.is_not(None))
                elif isinstance(operand, dict):
                    nested = dict(operand)
                    if insensitive:
                        nested.setdefault("mode", QueryMode.INSENSITIVE.value)
                    conditions.append(not_(self.scalar_condition(column, kind, nested, [*path, "not"])))
                else:
                    conditions.append(target != fold(operand))
            elif operator in ("lt", "lte", "gt", "gte"):
                comparison = {"lt": "__lt__", "lte": "__le__", "gt": "__gt__", "gte": "__ge__"}[operator]
                conditions.append(getattr(target, comparison)(fold(operand)))
            elif operator == "contains":
                conditions.append(column.icontains(operand, autoescape=True) if insensitive else column.contains(operand, autoescape=True))
            elif operator == "starts_with":
                conditions.append(column.istartswith(operand, autoescape=True) if insensitive else column.startswith(operand, autoescape=True))
            elif operator == "ends_with":
                conditions.append(column.iendswith(operand, autoescape=True) if insensitive else column.endswith(operand, autoescape=True))

        return and_(true(), *conditions)

    # List fields are ARRAY on PostgreSQL and JSON arrays elsewhere

    def _list_condition(self, column, parsed: StringListFilter) -> ColumnElement:
        conditions = []
        for operator in parsed.model_fields_set:
            operand = getattr(parsed, operator)
            if operand is None:
                continue
            if operator == "equals":
                conditions.append(self._list_equals(column, operand))
            elif operator == "has":
                conditions.append(self._list_has(column, operand))
            elif operator == "has_every":
                if self.dialect_name == "postgresql":
                    conditions.append(type_coerce(column, ARRAY(String)).contains(operand))
                else:
                    conditions.append(and_(true(), *[self._list_has(column, item) for item in operand]))
            elif operator == "has_some":
                if self.dialect_name == "postgresql":
                    conditions.append(type_coerce(column, ARRAY(String)).overlap(operand))
                else:
                    conditions.append(or_(false(), *[self._list_has(column, item) for item in operand]))
            elif operator == "is_empty":
                length = self._list_length(column)
                conditions.append(length == 0 if operand else length > 0)
        return and_(true(), *conditions)

    def _list_has(self, column, item: str) -> ColumnElement:
        if self.dialect_name == "postgresql":
            return type_coerce(column, ARRAY(String)).contains([item])
        elements = func.json_each(column).table_valued("value")
        return exists(select(literal(1)).select_from(elements).where(elements.c.value == item))

    def _list_length(self, column):
        if self.dialect_name == "postgresql":
            return func.coalesce(func.cardinality(type_coerce(column, ARRAY(String))), 0)
        return func.json_array_length(column)

    def _list_equals(self, column, items: List[str]) -> ColumnElement:
        if self.dialect_name == "postgresql":
            return type_coerce(column, ARRAY(String)) == bindparam(None, items, type_=ARRAY(String))
        return func.json(type_coerce(column, String)) == func.json(bindparam(None, json.dumps(items), type_=String))

    def _relation_condition(self, info: ModelInfo, name: str, value: Any, path: List[str]) -> ColumnElement:
        relationship = info.relationships[name]
        attribute = info.attr(name)
        target = info.relation_target(name)

        if relationship.uselist:
            if not isinstance(value, dict) or not set(value) <= {"some", "every", "none"}:
                raise ValidationError("To-many relation filters take `some`, `every` or `none`", path=path)
            conditions = []
            for operator, nested in value.items():
                condition = self.build_where(target, nested, [*path, operator])
                if operator == "some":
                    conditions.append(attribute.any(condition))
                elif operator == "none":
                    conditions.append(not_(attribute.any(condition)))
                else:
                    conditions.append(not_(attribute.any(not_(condition))))
            return and_(true(), *conditions)

        if value is None:
            return attribute == None  # noqa: E711
        if not isinstance(value, dict):
            raise ValidationError("To-one relation filters take an object or null", path=path)
        if set(value) & {"is", "is_not"}:
            if not set(value) <= {"is", "is_not"}:
                raise ValidationError("`is` / `is_not` cannot be mixed with field filters", path=path)
            conditions = []
            if "is" in value:
                nested = value["is"]
                conditions.append(attribute == None if nested is None else attribute.has(self.build_where(target, nested, [*path, "is"])))  # noqa: E711
            if "is_not" in value:
                nested = value["is_not"]
                conditions.append(attribute != None if nested is None else not_(attribute.has(self.build_where(target, nested, [*path, "is_not"]))))  # noqa: E711
            return and_(true(), *conditions)
        return attribute.has(self.build_where(target, value, path))

    # Sorting

    def build_order_by(self, info: ModelInfo, order_by: Any, path: Sequence[str] = ("order_by",)) -> List[OrderTerm]:
        if order_by is None:
            return []
        entries = order_by if isinstance(order_by, list) else [order_by]
        terms = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise ValidationError("order_by entries must be objects", path=[*path, str(index)])
            for key, value in entry.items():
                if key in info.columns:
                    terms.append(self.order_term(info.attr(key), value, [*path, key]))
                elif key in info.relationships and not info.relationships[key].uselist:
                    terms.extend(self._relation_order_terms(info, key, value, [*path, key]))
                else:
                    raise ValidationError(f"Cannot order {info.name} by `{key}`", path=[*path, key])
        return terms

    def order_term(self, expression, value: Any, path: List[str]) -> OrderTerm:
        try:
            spec = SortSpec.model_validate({"sort": value} if isinstance(value, str) else value)
        except PydanticValidationError as e:
            raise pydantic_to_validation_error(e, path) from e
        return OrderTerm(expression, spec.sort, spec.nulls)

    def _relation_order_terms(self, info: ModelInfo, name: str, value: Any, path: List[str]) -> List[OrderTerm]:
        if not isinstance(value, dict):
            raise ValidationError("Relation ordering takes an object of target fields", path=path)
        target = info.relation_target(name)
        local_key, remote_key = info.relation_keys(name)
        terms = []
        for field, direction in value.items():
            target.require_field(field, path)
            expression = (
                select(target.attr(field))
                .where(target.attr(remote_key) == info.attr(local_key))
                .correlate(info.model)
                .scalar_subquery()
            )
            terms.append(self.order_term(expression, direction, [*path, field]))
        return terms

    def nulls_last(self, term: OrderTerm) -> bool:
        """Whether NULLs sort after non-NULL values for this term on this dialect."""
        if term.nulls is not None:
            return term.nulls == NullsOrder.LAST
        # PostgreSQL treats NULL as largest, SQLite and MySQL as smallest
        nulls_largest = self.dialect_name == "postgresql"
        return nulls_largest == (term.order == SortOrder.ASC)

    # Cursor pagination

    def cursor_condition(self, terms: List[OrderTerm], values: Sequence[Any]) -> ColumnElement:
        """
        Rows at or after the cursor row under the given ordering.

        Args:
            terms: Effective ordering, ending with a unique tie-breaker
            values: The cursor row's value for every term
        """
        alternatives = []
        for index, term in enumerate(terms):
            prefix = [self._equals(terms[j].expression, values[j]) for j in range(index)]
            alternatives.append(and_(true(), *prefix, self._after(term, values[index])))
        alternatives.append(and_(true(), *[self._equals(term.expression, value) for term, value in zip(terms, values)]))
        return or_(false(), *alternatives)

    @staticmethod
    def _equals(expression, value) -> ColumnElement:
        return expression.is_(None) if value is None else expression == value

    def _after(self, term: OrderTerm, value: Any) -> ColumnElement:
        nulls_last = self.nulls_last(term)
        if value is None:
            return false() if nulls_last else term.expression.is_not(None)
        comparison = term.expression > value if term.order == SortOrder.ASC else term.expression < value
        if nulls_last:
            return or_(comparison, term.expression.is_(None))
        return comparison
